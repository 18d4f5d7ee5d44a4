"""
Agent pipeline - observes the audio and photo streams and turns them into memories.

Flow per item:
1. TimestampedChannel stamps audio/photo items and hands copies to the pipeline
2. Speech or text recognition runs (one call at a time per modality)
3. Results are correlated with nearby photos and appended to the OutputStore
4. A follow-up task indexes the text and runs the planner + tool dispatcher

Audio and photo are processed concurrently; within a modality items are handled
in arrival order. No lock is held across a recognition, embedding or planner call.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterable, Dict, List, Optional, Set

from util.logging import emit_event, preview

from ..core.config import (
    AUTO_INDEX_OUTPUTS, DISABLE_TIMEOUT_SEC, PHOTO_BUFFER_CAPACITY, TOOL_DISPATCH_ENABLED
)
from ..core.context import SessionContext
from ..core.correlation import CorrelationReport, TemporalCorrelator
from ..core.errors import AlreadyEnabled, NotEnabled
from ..core.models import AgentOutput, OutputKind
from ..core.output_store import OutputStore
from ..streams.buffer import RecentItemBuffer
from ..streams.channel import Subscription, TimestampedChannel, TimestampedItem
from ..vector.memory_service import MemoryService
from .planner import TOOL_DEFINITIONS, IToolPlanner
from .recognizers import ISpeechRecognizer, ITextRecognizer
from .tools import ToolDispatcher


class PipelineState(str, Enum):
    DISABLED = "disabled"
    ENABLING = "enabling"
    ENABLED = "enabled"
    DISABLING = "disabling"


@dataclass
class SessionSummary:
    """Emitted when a session is disabled."""
    session_id: str
    started_at: Optional[datetime]
    ended_at: datetime
    counts_by_kind: Dict[str, int]
    total_outputs: int
    audio_items: int
    photo_items: int
    planner_calls: int
    discarded_results: int
    failed_items: int
    memory_records: int
    report: CorrelationReport
    capabilities: Dict[str, bool] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat(),
            "duration_sec": self.duration_seconds,
            "counts_by_kind": dict(self.counts_by_kind),
            "total_outputs": self.total_outputs,
            "audio_items": self.audio_items,
            "photo_items": self.photo_items,
            "planner_calls": self.planner_calls,
            "discarded_results": self.discarded_results,
            "failed_items": self.failed_items,
            "memory_records": self.memory_records,
            "capabilities": dict(self.capabilities),
            "report": self.report.to_dict(),
        }

    def render(self) -> str:
        lines = [
            "Session Report:",
            f"  Duration: {self.duration_seconds:.0f}s",
            f"  ASR Outputs: {self.counts_by_kind.get('asr', 0)}",
            f"  OCR Outputs: {self.counts_by_kind.get('ocr', 0)}",
            f"  Planner Calls: {self.planner_calls}",
            f"  Total Outputs: {self.total_outputs}",
            f"  Discarded Results: {self.discarded_results}",
        ]
        return "\n".join(lines) + "\n" + self.report.generate_summary()


async def _idle_source():
    """Producer that never yields; used when items are pushed with ingest_*()."""
    await asyncio.Event().wait()
    yield b""  # pragma: no cover


class AgentPipeline:
    """
    Disabled -> Enabling -> Enabled -> Disabling -> Disabled.

    Missing or failing collaborators degrade the pipeline instead of blocking it:
    capabilities records which stages are active.
    """

    def __init__(self, speech: ISpeechRecognizer = None, text: ITextRecognizer = None,
                 memory: MemoryService = None, planner: IToolPlanner = None,
                 context: SessionContext = None, outputs: OutputStore = None,
                 correlator: TemporalCorrelator = None,
                 photo_capacity: int = PHOTO_BUFFER_CAPACITY,
                 auto_index: bool = AUTO_INDEX_OUTPUTS,
                 tool_dispatch: bool = TOOL_DISPATCH_ENABLED,
                 disable_timeout: float = DISABLE_TIMEOUT_SEC,
                 channel_buffer: int = None):
        self.speech = speech
        self.text = text
        self.memory = memory
        self.planner = planner
        self.context = context or SessionContext()
        self.sink = self.context.sink
        self.outputs = outputs or OutputStore(self.context)
        self.correlator = correlator or TemporalCorrelator(sink=self.sink)
        self.photo_buffer: RecentItemBuffer[bytes] = RecentItemBuffer(photo_capacity)
        self.auto_index = auto_index
        self.tool_dispatch = tool_dispatch
        self.disable_timeout = disable_timeout
        self.channel_buffer = channel_buffer

        self.dispatcher = None
        if memory is not None:
            self.dispatcher = ToolDispatcher(memory, self.outputs, sink=self.sink, clock=self.context.clock)

        self.state = PipelineState.DISABLED
        self.capabilities = {"asr": False, "ocr": False, "memory": False, "planner": False}
        self._initialized = False

        self._audio_channel: Optional[TimestampedChannel[bytes]] = None
        self._photo_channel: Optional[TimestampedChannel[bytes]] = None
        self._subscriptions: List[Subscription] = []
        self._loops: List[asyncio.Task] = []
        self._followups: Set[asyncio.Task] = set()
        self._busy = {"audio": False, "photo": False}
        self._stats: Counter = Counter()
        self._session_started: Optional[datetime] = None
        self.last_summary: Optional[SessionSummary] = None

    def _set_state(self, state: PipelineState) -> None:
        previous = self.state
        self.state = state
        emit_event(self.sink, "pipeline.state", previous=previous.value, state=state.value)

    async def _try_initialize(self, name: str, component: Any) -> bool:
        if component is None:
            return False
        try:
            return bool(await component.initialize())
        except Exception as e:
            emit_event(self.sink, "pipeline.capability_failed", "failed", capability=name, error=str(e))
            return False

    async def initialize(self) -> Dict[str, bool]:
        """Initialize collaborators. Partial failure leaves the pipeline usable."""
        self.capabilities = {
            "asr": await self._try_initialize("asr", self.speech),
            "ocr": await self._try_initialize("ocr", self.text),
            "memory": self.memory is not None,
            "planner": await self._try_initialize("planner", self.planner),
        }
        self._initialized = True

        ready = sum(1 for active in self.capabilities.values() if active)
        emit_event(self.sink, "pipeline.initialized", "success" if ready else "degraded",
                   ready=ready, total=len(self.capabilities), **self.capabilities)
        return dict(self.capabilities)

    async def enable(self, audio_source: AsyncIterable[bytes] = None,
                     photo_source: AsyncIterable[bytes] = None) -> None:
        """Start observing both sources. A None source accepts pushed items via ingest_*()."""
        if self.state != PipelineState.DISABLED:
            raise AlreadyEnabled(self.state.value)

        self._set_state(PipelineState.ENABLING)
        try:
            if not self._initialized:
                await self.initialize()

            clock = self.context.clock
            self._audio_channel = TimestampedChannel("audio", clock=clock, sink=self.sink,
                                                     max_buffer=self.channel_buffer)
            self._photo_channel = TimestampedChannel("photo", clock=clock, sink=self.sink,
                                                     max_buffer=self.channel_buffer)
            audio_subscription = self._audio_channel.subscribe()
            photo_subscription = self._photo_channel.subscribe()
            self._subscriptions = [audio_subscription, photo_subscription]

            self._audio_channel.attach(audio_source if audio_source is not None else _idle_source())
            self._photo_channel.attach(photo_source if photo_source is not None else _idle_source())

            self._stats = Counter()
            self._session_started = self.context.now()
            loop = asyncio.get_running_loop()
            self._loops = [
                loop.create_task(self._consume(audio_subscription, "audio", self._process_audio)),
                loop.create_task(self._consume(photo_subscription, "photo", self._process_photo)),
            ]
        except Exception:
            self._teardown_channels()
            self._set_state(PipelineState.DISABLED)
            raise

        self._set_state(PipelineState.ENABLED)

    def _teardown_channels(self) -> None:
        for channel in (self._audio_channel, self._photo_channel):
            if channel is not None:
                channel.detach()
        for subscription in self._subscriptions:
            subscription.cancel()

    async def _consume(self, subscription: Subscription, modality: str, handler) -> None:
        try:
            async for item in subscription:
                self._busy[modality] = True
                try:
                    await handler(item)
                except Exception as e:
                    # One bad item never stops the loop
                    self._stats["failed_items"] += 1
                    emit_event(self.sink, "pipeline.item_failed", "failed",
                               modality=modality, error=str(e))
                finally:
                    self._busy[modality] = False
        except Exception as e:
            emit_event(self.sink, "pipeline.source_failed", "failed", modality=modality, error=str(e))

    def _discard(self, modality: str, item: TimestampedItem) -> None:
        self._stats["discarded"] += 1
        emit_event(self.sink, "pipeline.result_discarded", "ignored", modality=modality,
                   captured_at=item.captured_at.isoformat(), state=self.state.value)

    async def _process_audio(self, item: TimestampedItem[bytes]) -> None:
        self._stats["audio_items"] += 1
        if not self.capabilities["asr"]:
            return

        transcription = await self.speech.transcribe(item.payload)
        if self.state != PipelineState.ENABLED:
            self._discard("audio", item)
            return
        if transcription is None or not transcription.text.strip():
            return

        matches = self.correlator.correlate(item.captured_at, self.photo_buffer.snapshot())
        output = AgentOutput.create(
            kind=OutputKind.ASR,
            text=transcription.text.strip(),
            confidence=transcription.confidence,
            correlated_timestamps=[match.captured_at for match in matches],
            produced_at=item.captured_at,
            metadata={
                "audio_length": len(item.payload),
                "processing_ms": self._elapsed_ms(item),
            },
        )
        self.outputs.append(output)
        self._spawn_followup(output, len(matches))

    async def _process_photo(self, item: TimestampedItem[bytes]) -> None:
        self._stats["photo_items"] += 1
        self.photo_buffer.add(item)
        if not self.capabilities["ocr"]:
            return

        extraction = await self.text.extract_text(item.payload)
        if self.state != PipelineState.ENABLED:
            self._discard("photo", item)
            return
        if extraction is None or not extraction.text.strip():
            return

        # The buffer already holds this photo, so it is its own closest match
        matches = self.correlator.correlate(item.captured_at, self.photo_buffer.snapshot())
        output = AgentOutput.create(
            kind=OutputKind.OCR,
            text=extraction.text.strip(),
            confidence=extraction.confidence,
            correlated_timestamps=[match.captured_at for match in matches],
            produced_at=item.captured_at,
            metadata={
                "image_size": len(item.payload),
                "blocks": len(extraction.blocks),
                "processing_ms": self._elapsed_ms(item),
            },
        )
        self.outputs.append(output)
        self._spawn_followup(output, len(matches))

    def _elapsed_ms(self, item: TimestampedItem) -> int:
        return int((self.context.now() - item.captured_at).total_seconds() * 1000)

    def _spawn_followup(self, output: AgentOutput, image_count: int) -> None:
        index = self.auto_index and self.memory is not None
        plan = self.tool_dispatch and self.planner is not None and self.capabilities["planner"]
        if not (index or plan):
            return
        task = asyncio.get_running_loop().create_task(self._follow_up(output, image_count, index, plan))
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)

    async def _follow_up(self, output: AgentOutput, image_count: int, index: bool, plan: bool) -> None:
        try:
            if index:
                await self.memory.store_output(output)
            if plan:
                await self._plan_and_dispatch(output, image_count)
        except Exception as e:
            emit_event(self.sink, "pipeline.followup_failed", "failed", output_id=output.id, error=str(e))

    def build_planner_context(self, output: AgentOutput, image_count: int) -> str:
        source = "speech recognition" if output.kind == OutputKind.ASR else "text recognized in an image"
        lines = [
            "Agent Output Analysis:",
            f"Type: {output.kind.value}",
            f"Source: {source}",
            f'Content: "{output.text}"',
            f"Confidence: {output.confidence:.2f}",
            f"Timestamp: {output.produced_at.isoformat() if output.produced_at else 'unknown'}",
            f"Associated Images: {image_count}",
        ]
        recent = [o for o in self.outputs.recent(5) if o.id != output.id][:3]
        if recent:
            lines.append("")
            lines.append("Recent Context:")
            for other in recent:
                lines.append(f'- {other.kind.value}: "{preview(other.text)}"')
        return "\n".join(lines)

    async def _plan_and_dispatch(self, output: AgentOutput, image_count: int) -> None:
        self._stats["planner_calls"] += 1
        tools = self.dispatcher.list_available_tools() if self.dispatcher else list(TOOL_DEFINITIONS)
        response = await self.planner.plan(self.build_planner_context(output, image_count), tools)
        if response is None:
            return

        if self.dispatcher is not None:
            for call in response.tool_calls:
                await self.dispatcher.dispatch(call, output)

        if response.content.strip():
            self.outputs.append(AgentOutput.create(
                kind=OutputKind.LLM,
                text=response.content.strip(),
                confidence=1.0,
                correlated_timestamps=output.correlated_timestamps,
                produced_at=self.context.now(),
                metadata={
                    "original_output_id": output.id,
                    "tool_calls_executed": len(response.tool_calls),
                    "planner": str(response.metadata.get("planner", "")),
                },
            ))

    async def disable(self) -> Optional[SessionSummary]:
        """Stop the session and return its summary. No-op (None) when already disabled."""
        if self.state in (PipelineState.DISABLED, PipelineState.DISABLING):
            return None

        self._set_state(PipelineState.DISABLING)
        self._teardown_channels()

        # In-flight recognition is allowed to finish; its result is discarded
        pending = [task for task in self._loops + list(self._followups) if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.disable_timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                emit_event(self.sink, "pipeline.disable_timeout", "degraded",
                           cancelled=len(still_running), timeout_sec=self.disable_timeout)
                await asyncio.gather(*still_running, return_exceptions=True)

        for channel in (self._audio_channel, self._photo_channel):
            if channel is not None:
                await channel.wait_closed()

        summary = self._build_summary()
        self.last_summary = summary
        emit_event(self.sink, "pipeline.summary", **summary.to_dict())

        self._audio_channel = None
        self._photo_channel = None
        self._subscriptions = []
        self._loops = []
        self._set_state(PipelineState.DISABLED)
        return summary

    async def wait_idle(self) -> None:
        """Wait until both sources are exhausted and follow-up work has drained."""
        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
        while self._followups:
            await asyncio.gather(*list(self._followups), return_exceptions=True)

    def _build_summary(self) -> SessionSummary:
        counts = self.outputs.counts_by_kind()
        return SessionSummary(
            session_id=self.context.session_id,
            started_at=self._session_started,
            ended_at=self.context.now(),
            counts_by_kind=counts,
            total_outputs=self.outputs.count(),
            audio_items=self._stats["audio_items"],
            photo_items=self._stats["photo_items"],
            planner_calls=self._stats["planner_calls"],
            discarded_results=self._stats["discarded"],
            failed_items=self._stats["failed_items"],
            memory_records=self.memory.index.count() if self.memory is not None else 0,
            report=self.report(),
            capabilities=dict(self.capabilities),
        )

    def ingest_audio(self, payload: bytes) -> Optional[TimestampedItem[bytes]]:
        """Push one audio chunk into the running session."""
        if self.state != PipelineState.ENABLED:
            raise NotEnabled(self.state.value)
        return self._audio_channel.publish(payload)

    def ingest_photo(self, payload: bytes) -> Optional[TimestampedItem[bytes]]:
        """Push one photo into the running session."""
        if self.state != PipelineState.ENABLED:
            raise NotEnabled(self.state.value)
        return self._photo_channel.publish(payload)

    def report(self) -> CorrelationReport:
        return self.correlator.report(
            self.outputs.timestamps(OutputKind.ASR),
            self.outputs.timestamps(OutputKind.OCR),
            self.photo_buffer.snapshot(),
        )

    def recent_outputs(self, limit: int = 20) -> List[AgentOutput]:
        return self.outputs.recent(limit)

    def outputs_by_kind(self, kind: OutputKind) -> List[AgentOutput]:
        return self.outputs.by_kind(kind)

    def clear_outputs(self) -> None:
        """Clear the output log. Photos and the embedding index are kept."""
        self.outputs.clear()

    @property
    def is_enabled(self) -> bool:
        return self.state == PipelineState.ENABLED

    def status(self) -> Dict[str, Any]:
        channels = {}
        for channel in (self._audio_channel, self._photo_channel):
            if channel is not None:
                channels[channel.name] = channel.statistics
        return {
            "session_id": self.context.session_id,
            "state": self.state.value,
            "capabilities": dict(self.capabilities),
            "processing": dict(self._busy),
            "total_outputs": self.outputs.count(),
            "outputs_by_kind": self.outputs.counts_by_kind(),
            "recent_images": len(self.photo_buffer),
            "pending_followups": len(self._followups),
            "planner_calls": self._stats["planner_calls"],
            "discarded_results": self._stats["discarded"],
            "channels": channels,
        }
