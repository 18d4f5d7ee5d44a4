"""Composition root for a glassmem pipeline.

Builds every collaborator from configuration and wires them into one
AgentPipeline. Used by the inspection API and the replay script:

    from glassmem.bootstrap import build_pipeline

    pipeline = build_pipeline()
    await pipeline.enable(audio_source, photo_source)
    ...
    summary = await pipeline.disable()
"""

from typing import Any

from .agents.pipeline import AgentPipeline
from .agents.recognizers import MockSpeechRecognizer, MockTextRecognizer
from .core.config import (
    EMBED_DIM, get_embedding_index, get_embedding_provider, get_tool_planner,
    validate_config
)
from .core.context import SessionContext
from .core.correlation import TemporalCorrelator
from .core.output_store import OutputStore
from .vector.memory_service import MemoryService
from util.logging import emit_event


def build_pipeline(sink: Any = None, context: SessionContext = None,
                   load_existing: bool = False) -> AgentPipeline:
    """Create a pipeline from environment configuration.

    Args:
        sink: Event sink shared by every component (default: util.logging.logger)
        context: Pre-built session context; overrides ``sink``
        load_existing: Reload outputs and memories from the document store
    """
    context = context or SessionContext.from_config(sink=sink)

    issues = validate_config()
    for issue in issues:
        emit_event(context.sink, "config.invalid", "degraded", issue=issue)

    embedder = get_embedding_provider()
    index = get_embedding_index(dimension=embedder.get_dimension() or EMBED_DIM, context=context)
    outputs = OutputStore(context)
    if load_existing and context.persistent:
        outputs.load()
        index.load()

    planner = get_tool_planner()
    if hasattr(planner, "sink"):
        planner.sink = context.sink

    return AgentPipeline(
        speech=MockSpeechRecognizer(),
        text=MockTextRecognizer(),
        memory=MemoryService(index, embedder, sink=context.sink, clock=context.clock),
        planner=planner,
        context=context,
        outputs=outputs,
        correlator=TemporalCorrelator(sink=context.sink),
    )
