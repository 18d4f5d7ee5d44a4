"""
Agent output records produced by the pipeline.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .values import ValueMap


class OutputKind(str, Enum):
    """Which stage of the agent produced an output."""
    ASR = "asr"
    OCR = "ocr"
    LLM = "llm"
    TOOL_CALL = "tool_call"


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class AgentOutput:
    """An immutable result of recognition, planning or tool dispatch."""

    kind: OutputKind
    """Producer of this output"""

    text: str
    """Recognized or generated text"""

    confidence: float
    """Confidence score in [0, 1]"""

    produced_at: Optional[datetime] = field(default_factory=datetime.now)
    """Time the output was produced; None only for records restored with a bad timestamp"""

    correlated_timestamps: Tuple[datetime, ...] = ()
    """Capture times of co-occurring photos, closest first"""

    metadata: ValueMap = field(default_factory=ValueMap)
    """Typed metadata; tool call outputs always carry tool_name"""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not isinstance(self.kind, OutputKind):
            object.__setattr__(self, "kind", OutputKind(self.kind))
        if not isinstance(self.metadata, ValueMap):
            object.__setattr__(self, "metadata", ValueMap(self.metadata))
        if not isinstance(self.correlated_timestamps, tuple):
            object.__setattr__(self, "correlated_timestamps", tuple(self.correlated_timestamps))

        if math.isnan(self.confidence) or not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1]: {self.confidence}")
        if self.kind == OutputKind.TOOL_CALL and "tool_name" not in self.metadata:
            raise ValueError("tool_call outputs require a 'tool_name' metadata entry")

    @classmethod
    def create(cls, kind: OutputKind, text: str, confidence: float,
               correlated_timestamps: Sequence[datetime] = (),
               metadata: Optional[Dict[str, Any]] = None,
               produced_at: Optional[datetime] = None) -> "AgentOutput":
        """Build an output, clamping confidence into [0, 1]."""
        if confidence is None or math.isnan(confidence):
            confidence = 0.0
        return cls(
            kind=kind,
            text=text,
            confidence=min(1.0, max(0.0, float(confidence))),
            produced_at=produced_at or datetime.now(),
            correlated_timestamps=tuple(correlated_timestamps),
            metadata=ValueMap(metadata or {}),
        )

    @property
    def has_correlations(self) -> bool:
        return len(self.correlated_timestamps) > 0

    @property
    def summary(self) -> str:
        snippet = self.text[:50] + "..." if len(self.text) > 50 else self.text
        return (f"{self.kind.value.upper()}: {snippet} "
                f"(confidence: {self.confidence * 100:.1f}%, images: {len(self.correlated_timestamps)})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "text": self.text,
            "confidence": self.confidence,
            "produced_at": self.produced_at.isoformat() if self.produced_at else None,
            "correlated_timestamps": [ts.isoformat() for ts in self.correlated_timestamps],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentOutput":
        """Restore an output. Unparsable timestamps become None instead of failing."""
        correlated = []
        for raw in data.get("correlated_timestamps") or []:
            parsed = _parse_timestamp(raw)
            if parsed is not None:
                correlated.append(parsed)
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            kind=OutputKind(data["kind"]),
            text=data.get("text", ""),
            confidence=float(data.get("confidence", 0.0)),
            produced_at=_parse_timestamp(data.get("produced_at")),
            correlated_timestamps=tuple(correlated),
            metadata=ValueMap(data.get("metadata") or {}),
        )
