"""
Speech and text recognizer interfaces with deterministic stand-ins.
The stand-ins derive plausible results from signal statistics so the pipeline
can run end to end without model dependencies.
"""

import asyncio
import hashlib
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass
class Transcription:
    """Result of a speech recognition call."""
    text: str
    confidence: float
    processing_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def intersects(self, other: "BoundingBox") -> bool:
        return not (self.right < other.left or other.right < self.left or
                    self.bottom < other.top or other.bottom < self.top)


@dataclass
class TextBlock:
    text: str
    confidence: float
    bounds: Optional[BoundingBox] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TextExtraction:
    """Result of a text recognition call."""
    text: str
    confidence: float
    blocks: List[TextBlock] = field(default_factory=list)
    processing_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


class ISpeechRecognizer(ABC):
    """Speech-to-text boundary. No speech is a soft failure (None), not an error."""

    @abstractmethod
    async def initialize(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        pass

    @abstractmethod
    async def transcribe(self, audio: bytes) -> Optional[Transcription]:
        pass


class ITextRecognizer(ABC):
    """Image-to-text boundary. No text is a soft failure (None), not an error."""

    @abstractmethod
    async def initialize(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        pass

    @abstractmethod
    async def extract_text(self, image: bytes) -> Optional[TextExtraction]:
        pass


COMMON_WORDS = {
    "the", "and", "is", "a", "to", "of", "in", "that", "it", "with", "for", "as", "was", "on", "are", "you"
}


def estimate_block_confidence(text: str) -> float:
    """Heuristic confidence for a recognized block when the engine gives none.

    Longer blocks, common words and alphanumerics raise the estimate; blocks
    made mostly of special characters lower it.
    """
    confidence = 0.5
    length = len(text)
    if length > 10:
        confidence += 0.1
    if length > 25:
        confidence += 0.1

    words = [w for w in re.split(r"\W+", text.lower()) if w]
    if words:
        common = sum(1 for w in words if w in COMMON_WORDS)
        confidence += (common / len(words)) * 0.3

    if re.search(r"[a-zA-Z0-9]", text):
        confidence += 0.1

    special = len(re.findall(r"[^a-zA-Z0-9\s]", text))
    if special > length / 2:
        confidence -= 0.2

    return min(1.0, max(0.0, confidence))


def filter_blocks_to_region(extraction: Optional[TextExtraction],
                            region: BoundingBox) -> Optional[TextExtraction]:
    """Restrict an extraction to the blocks intersecting ``region``."""
    if extraction is None or not extraction.blocks:
        return None

    blocks = [b for b in extraction.blocks if b.bounds is not None and b.bounds.intersects(region)]
    if not blocks:
        return None

    metadata = dict(extraction.metadata)
    metadata.update({
        "region_extraction": True,
        "original_blocks": len(extraction.blocks),
        "filtered_blocks": len(blocks),
    })
    return TextExtraction(
        text=" ".join(b.text for b in blocks),
        confidence=sum(b.confidence for b in blocks) / len(blocks),
        blocks=blocks,
        processing_time=extraction.processing_time,
        metadata=metadata,
    )


class MockSpeechRecognizer(ISpeechRecognizer):
    """Deterministic PCM16 speech stand-in.

    Audio shorter than ``min_audio_length`` bytes or with mean-square energy at
    or below ``silence_threshold`` (normalized to full scale) yields None.
    """

    HIGH_CONFIDENCE_TEXTS = [
        "Hello, can you hear me?",
        "What's the weather like today?",
        "I'm looking at something interesting",
        "Frame is working perfectly",
        "This is a test of the speech recognition",
        "The quick brown fox jumps over the lazy dog",
        "I need help with this task",
        "Can you see what I'm looking at?",
    ]
    MEDIUM_CONFIDENCE_TEXTS = [
        "Hello there", "What is this", "Frame device", "Looking good",
        "Test speech", "Help me", "I can see", "Working well",
    ]
    LOW_CONFIDENCE_TEXTS = ["Hello", "Yes", "Frame", "Good", "Test", "Help", "See", "Work"]

    def __init__(self, sample_rate: int = 16000, min_audio_length: int = 1600,
                 silence_threshold: float = 0.01, latency: float = 0.0):
        self.sample_rate = sample_rate
        self.min_audio_length = min_audio_length
        self.silence_threshold = silence_threshold
        self.latency = latency
        self._ready = False

    async def initialize(self) -> bool:
        self._ready = True
        return True

    @property
    def is_ready(self) -> bool:
        return self._ready

    @staticmethod
    def _samples(audio: bytes) -> np.ndarray:
        usable = len(audio) - len(audio) % 2
        return np.frombuffer(audio[:usable], dtype="<i2").astype(np.float64)

    def has_voice_activity(self, audio: bytes) -> bool:
        samples = self._samples(audio)
        if samples.size == 0:
            return False
        energy = float(np.mean(samples ** 2)) / (32768.0 * 32768.0)
        return energy > self.silence_threshold

    def estimate_confidence(self, audio: bytes) -> float:
        samples = self._samples(audio)
        if samples.size == 0:
            return 0.0

        amplitudes = np.abs(samples) / 32768.0
        confidence = 0.3
        if amplitudes.max() > 0.1:
            confidence += 0.2
        if amplitudes.mean() > 0.05:
            confidence += 0.2
        if len(audio) > 8000:
            confidence += 0.1
        if len(audio) > 16000:
            confidence += 0.1

        # Content-derived jitter in [-0.1, 0.1) stands in for real-world variance
        digest = hashlib.sha1(audio).digest()
        confidence += (digest[0] % 100) / 500.0 - 0.1
        return min(1.0, max(0.0, confidence))

    def _select_text(self, audio: bytes, confidence: float) -> str:
        if confidence > 0.7:
            candidates = self.HIGH_CONFIDENCE_TEXTS
        elif confidence > 0.4:
            candidates = self.MEDIUM_CONFIDENCE_TEXTS
        elif confidence > 0.2:
            candidates = self.LOW_CONFIDENCE_TEXTS
        else:
            return ""
        digest = hashlib.sha1(audio).digest()
        return candidates[int.from_bytes(digest[1:3], "big") % len(candidates)]

    async def transcribe(self, audio: bytes) -> Optional[Transcription]:
        if not self._ready:
            return None
        if len(audio) < self.min_audio_length or not self.has_voice_activity(audio):
            return None

        if self.latency > 0:
            await asyncio.sleep(self.latency)

        confidence = self.estimate_confidence(audio)
        text = self._select_text(audio, confidence)
        if not text:
            return None

        return Transcription(
            text=text,
            confidence=confidence,
            processing_time=self.latency,
            metadata={
                "audio_length": len(audio),
                "sample_rate": self.sample_rate,
                "implementation": "mock",
            },
        )


class MockTextRecognizer(ITextRecognizer):
    """Deterministic image-to-text stand-in; images under ``min_image_size`` bytes yield None."""

    MOCK_TEXTS = [
        "Sample text from image",
        "Frame Smart Glasses",
        "OCR Test Content",
        "Welcome to the future",
        "Brilliant Labs",
        "Hello World",
        "Image contains text",
        "Testing OCR functionality",
    ]

    def __init__(self, min_image_size: int = 1000, latency: float = 0.0):
        self.min_image_size = min_image_size
        self.latency = latency
        self._ready = False

    async def initialize(self) -> bool:
        self._ready = True
        return True

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def extract_text(self, image: bytes) -> Optional[TextExtraction]:
        if not self._ready or len(image) < self.min_image_size:
            return None

        if self.latency > 0:
            await asyncio.sleep(self.latency)

        text = self.MOCK_TEXTS[sum(image[:100]) % len(self.MOCK_TEXTS)]
        confidence = min(0.9, max(0.3, len(image) / 50000.0))
        block = TextBlock(
            text=text,
            confidence=confidence,
            bounds=BoundingBox(left=10, top=10, width=200, height=30),
            metadata={"mock": True},
        )
        return TextExtraction(
            text=text,
            confidence=confidence,
            blocks=[block],
            processing_time=self.latency,
            metadata={"implementation": "mock", "image_size": len(image)},
        )

    async def extract_text_from_region(self, image: bytes, region: BoundingBox) -> Optional[TextExtraction]:
        return filter_blocks_to_region(await self.extract_text(image), region)
