"""
End-to-end tests for the agent pipeline state machine and processing flow.
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from typing import Optional

from glassmem.agents.pipeline import AgentPipeline, PipelineState
from glassmem.agents.planner import RuleBasedPlanner
from glassmem.agents.recognizers import ISpeechRecognizer, MockTextRecognizer, Transcription
from glassmem.core.context import SessionContext
from glassmem.core.errors import AlreadyEnabled, NotEnabled
from glassmem.core.models import OutputKind
from glassmem.vector import DeterministicHashEmbedding, EmbeddingIndex, MemoryService
from util.logging import RecordingEventSink

DIM = 64
T0 = datetime(2024, 7, 1, 9, 0, 0)


class ManualClock:
    def __init__(self, start=T0):
        self.current = start

    def __call__(self):
        return self.current

    def set(self, seconds):
        self.current = T0 + timedelta(seconds=seconds)


class FixedSpeech(ISpeechRecognizer):
    """Transcribes every chunk to the same text."""

    def __init__(self, text="hello", confidence=0.9):
        self.text = text
        self.confidence = confidence
        self.calls = 0

    async def initialize(self) -> bool:
        return True

    @property
    def is_ready(self) -> bool:
        return True

    async def transcribe(self, audio: bytes) -> Optional[Transcription]:
        self.calls += 1
        return Transcription(text=self.text, confidence=self.confidence)


class GatedSpeech(FixedSpeech):
    """Blocks inside transcribe() until released."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def transcribe(self, audio: bytes) -> Optional[Transcription]:
        self.started.set()
        await self.release.wait()
        return await super().transcribe(audio)


class FlakySpeech(FixedSpeech):
    """Fails on the first chunk only."""

    async def transcribe(self, audio: bytes) -> Optional[Transcription]:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("decoder crashed")
        return Transcription(text=self.text, confidence=self.confidence)


class BrokenSpeech(FixedSpeech):
    async def initialize(self) -> bool:
        raise OSError("model file missing")


def make_pipeline(speech=None, text=None, clock=None, **kwargs):
    sink = RecordingEventSink()
    context = SessionContext(sink=sink, clock=clock or datetime.now)
    memory = MemoryService(EmbeddingIndex(dimension=DIM, context=context),
                           DeterministicHashEmbedding(dimension=DIM), sink=sink)
    return AgentPipeline(
        speech=speech if speech is not None else FixedSpeech(),
        text=text if text is not None else MockTextRecognizer(),
        memory=memory,
        planner=RuleBasedPlanner(),
        context=context,
        **kwargs,
    )


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def chunks(items):
    for item in items:
        yield item
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_initialize_reports_capabilities():
    pipeline = make_pipeline()
    capabilities = await pipeline.initialize()
    assert capabilities == {"asr": True, "ocr": True, "memory": True, "planner": True}


@pytest.mark.asyncio
async def test_failing_recognizer_degrades_without_blocking():
    pipeline = make_pipeline(speech=BrokenSpeech())
    capabilities = await pipeline.initialize()

    assert capabilities["asr"] is False
    assert capabilities["ocr"] is True
    event = pipeline.sink.named("pipeline.capability_failed")[0]
    assert event.details["capability"] == "asr"

    await pipeline.enable()
    assert pipeline.is_enabled
    await pipeline.disable()


@pytest.mark.asyncio
async def test_state_transitions_and_typed_errors():
    pipeline = make_pipeline()

    assert await pipeline.disable() is None
    with pytest.raises(NotEnabled):
        pipeline.ingest_audio(b"audio")

    await pipeline.enable()
    assert pipeline.state == PipelineState.ENABLED
    with pytest.raises(AlreadyEnabled):
        await pipeline.enable()

    summary = await pipeline.disable()
    assert summary is not None
    assert pipeline.state == PipelineState.DISABLED
    states = [e.details["state"] for e in pipeline.sink.named("pipeline.state")]
    assert states == ["enabling", "enabled", "disabling", "disabled"]


@pytest.mark.asyncio
async def test_audio_correlates_with_nearby_photos():
    """Audio at 10.0s with photos at 9.0s and 11.5s correlates with both, 9.0s first."""
    clock = ManualClock()
    pipeline = make_pipeline(clock=clock)
    await pipeline.enable()

    clock.set(9.0)
    pipeline.ingest_photo(b"photo-a")
    clock.set(11.5)
    pipeline.ingest_photo(b"photo-b")
    await wait_until(lambda: len(pipeline.photo_buffer) == 2)

    clock.set(10.0)
    pipeline.ingest_audio(b"audio")
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.ASR))

    output = pipeline.outputs.by_kind(OutputKind.ASR)[0]
    assert output.text == "hello"
    assert output.produced_at == T0 + timedelta(seconds=10)
    assert output.correlated_timestamps == (T0 + timedelta(seconds=9), T0 + timedelta(seconds=11.5))
    assert output.metadata.get_int("audio_length") == 5

    summary = await pipeline.disable()
    assert summary.counts_by_kind["asr"] == 1
    assert summary.report.correlated_count_by_kind["asr"] == 1


@pytest.mark.asyncio
async def test_followup_indexes_output_and_records_planner_reply():
    pipeline = make_pipeline()
    await pipeline.enable()

    pipeline.ingest_audio(b"audio")
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.ASR))
    await pipeline.disable()

    asr = pipeline.outputs.by_kind(OutputKind.ASR)[0]
    llm = pipeline.outputs.by_kind(OutputKind.LLM)
    tools = pipeline.outputs.by_kind(OutputKind.TOOL_CALL)

    assert len(llm) == 1
    assert llm[0].confidence == 1.0
    assert llm[0].metadata.get_str("original_output_id") == asr.id
    assert llm[0].metadata.get_int("tool_calls_executed") == 1
    assert [t.metadata.get_str("tool_name") for t in tools] == ["store_memory"]

    stats = pipeline.memory.memory_stats()
    assert stats["asr_outputs"] == 1
    assert stats["total_records"] == 2


@pytest.mark.asyncio
async def test_planner_context_lists_recent_outputs():
    pipeline = make_pipeline(tool_dispatch=False, auto_index=False)
    await pipeline.enable()
    pipeline.ingest_photo(b"\x05" * 2000)
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.OCR))
    pipeline.ingest_audio(b"audio")
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.ASR))

    asr = pipeline.outputs.by_kind(OutputKind.ASR)[0]
    context = pipeline.build_planner_context(asr, image_count=1)

    assert context.startswith("Agent Output Analysis:\nType: asr")
    assert 'Content: "hello"' in context
    assert "Associated Images: 1" in context
    assert "Recent Context:\n- ocr:" in context
    await pipeline.disable()


@pytest.mark.asyncio
async def test_ocr_output_correlates_with_its_own_photo():
    clock = ManualClock()
    pipeline = make_pipeline(clock=clock, tool_dispatch=False)
    await pipeline.enable()

    clock.set(3.0)
    pipeline.ingest_photo(b"\x07" * 4000)
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.OCR))
    await pipeline.disable()

    output = pipeline.outputs.by_kind(OutputKind.OCR)[0]
    assert output.produced_at == T0 + timedelta(seconds=3)
    assert output.correlated_timestamps == (T0 + timedelta(seconds=3),)
    assert output.text in MockTextRecognizer.MOCK_TEXTS
    assert pipeline.outputs.by_kind(OutputKind.LLM) == []
    assert pipeline.memory.memory_stats()["ocr_outputs"] == 1


@pytest.mark.asyncio
async def test_disable_during_recognition_discards_result_and_reenables():
    speech = GatedSpeech()
    pipeline = make_pipeline(speech=speech)
    await pipeline.enable()

    pipeline.ingest_audio(b"audio")
    await speech.started.wait()

    disabling = asyncio.create_task(pipeline.disable())
    await wait_until(lambda: pipeline.state == PipelineState.DISABLING)
    speech.release.set()
    summary = await disabling

    assert summary.discarded_results == 1
    assert pipeline.outputs.count() == 0
    assert pipeline.state == PipelineState.DISABLED

    await pipeline.enable()
    pipeline.ingest_audio(b"audio")
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.ASR))
    await pipeline.disable()


@pytest.mark.asyncio
async def test_disable_timeout_cancels_stuck_recognition():
    speech = GatedSpeech()
    pipeline = make_pipeline(speech=speech, disable_timeout=0.05)
    await pipeline.enable()

    pipeline.ingest_audio(b"audio")
    await speech.started.wait()
    summary = await pipeline.disable()

    assert summary is not None
    assert pipeline.sink.named("pipeline.disable_timeout")[0].details["cancelled"] >= 1
    assert pipeline.state == PipelineState.DISABLED


@pytest.mark.asyncio
async def test_item_failure_does_not_stop_processing():
    pipeline = make_pipeline(speech=FlakySpeech(), tool_dispatch=False)
    await pipeline.enable()

    pipeline.ingest_audio(b"first")
    pipeline.ingest_audio(b"second")
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.ASR))
    summary = await pipeline.disable()

    assert summary.failed_items == 1
    assert pipeline.sink.named("pipeline.item_failed")[0].details["modality"] == "audio"
    assert pipeline.outputs.by_kind(OutputKind.ASR)[0].metadata.get_int("audio_length") == 6


@pytest.mark.asyncio
async def test_finite_sources_drain():
    pipeline = make_pipeline(tool_dispatch=False, auto_index=False)
    await pipeline.enable(chunks([b"a1", b"a2", b"a3"]), chunks([b"\x01" * 1500, b"\x02" * 1500]))

    await pipeline.wait_idle()
    summary = await pipeline.disable()

    assert summary.audio_items == 3
    assert summary.photo_items == 2
    assert summary.counts_by_kind == {"asr": 3, "ocr": 2, "llm": 0, "tool_call": 0}
    assert "Session Report:" in summary.render()
    assert pipeline.sink.named("pipeline.summary")[0].details["total_outputs"] == 5


@pytest.mark.asyncio
async def test_status_and_clear_outputs():
    pipeline = make_pipeline(tool_dispatch=False)
    await pipeline.enable()
    pipeline.ingest_photo(b"\x03" * 2000)
    await wait_until(lambda: pipeline.outputs.count() == 1)

    status = pipeline.status()
    assert status["state"] == "enabled"
    assert status["recent_images"] == 1
    assert status["channels"]["photo"]["items"] == 1
    assert set(status["processing"]) == {"audio", "photo"}

    pipeline.clear_outputs()
    assert pipeline.recent_outputs() == []
    assert len(pipeline.photo_buffer) == 1
    await pipeline.disable()


@pytest.mark.asyncio
async def test_planner_stores_transcript_not_placeholder():
    pipeline = make_pipeline(speech=FixedSpeech("buy milk at the corner shop"))
    await pipeline.enable()

    pipeline.ingest_audio(b"audio")
    await wait_until(lambda: pipeline.outputs.by_kind(OutputKind.LLM))
    await pipeline.disable()

    texts = [record.text for record in pipeline.memory.index.all()]
    assert texts == ["buy milk at the corner shop", "buy milk at the corner shop"]
    stored = [r for r in pipeline.memory.index.all() if r.metadata.get("category") == "speech_interaction"]
    assert stored[0].metadata["source"] == "agent_asr"
