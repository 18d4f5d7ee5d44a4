"""
Tests for the deterministic speech and text recognizers.
"""

import numpy as np
import pytest

from glassmem.agents.recognizers import (
    BoundingBox, MockSpeechRecognizer, MockTextRecognizer, TextBlock, TextExtraction,
    estimate_block_confidence, filter_blocks_to_region,
)


def pcm(amplitude, samples=2000):
    return np.full(samples, amplitude, dtype="<i2").tobytes()


@pytest.mark.asyncio
async def test_speech_requires_initialization():
    recognizer = MockSpeechRecognizer()
    assert not recognizer.is_ready
    assert await recognizer.transcribe(pcm(10000)) is None

    assert await recognizer.initialize() is True
    assert recognizer.is_ready


@pytest.mark.asyncio
async def test_loud_audio_is_transcribed_deterministically():
    recognizer = MockSpeechRecognizer()
    await recognizer.initialize()
    audio = pcm(10000)

    first = await recognizer.transcribe(audio)
    second = await recognizer.transcribe(audio)

    assert first is not None
    assert first.text == second.text
    assert first.confidence == second.confidence
    assert 0.0 <= first.confidence <= 1.0
    assert first.text in MockSpeechRecognizer.HIGH_CONFIDENCE_TEXTS + MockSpeechRecognizer.MEDIUM_CONFIDENCE_TEXTS
    assert first.metadata["audio_length"] == len(audio)


@pytest.mark.asyncio
async def test_short_or_silent_audio_yields_nothing():
    recognizer = MockSpeechRecognizer()
    await recognizer.initialize()

    assert await recognizer.transcribe(pcm(10000, samples=100)) is None
    assert await recognizer.transcribe(pcm(0)) is None
    assert not recognizer.has_voice_activity(pcm(100))


@pytest.mark.asyncio
async def test_text_recognizer_thresholds():
    recognizer = MockTextRecognizer()
    await recognizer.initialize()

    assert await recognizer.extract_text(b"\x01" * 999) is None

    extraction = await recognizer.extract_text(bytes(range(256)) * 8)
    assert extraction.text in MockTextRecognizer.MOCK_TEXTS
    assert 0.3 <= extraction.confidence <= 0.9
    assert len(extraction.blocks) == 1


@pytest.mark.asyncio
async def test_region_extraction():
    recognizer = MockTextRecognizer()
    await recognizer.initialize()
    image = b"\x02" * 5000

    inside = await recognizer.extract_text_from_region(image, BoundingBox(0, 0, 50, 50))
    outside = await recognizer.extract_text_from_region(image, BoundingBox(500, 500, 10, 10))

    assert inside is not None
    assert inside.metadata["region_extraction"] is True
    assert outside is None


def test_filter_blocks_averages_confidence():
    extraction = TextExtraction(text="A B", confidence=0.5, blocks=[
        TextBlock("A", 0.4, BoundingBox(0, 0, 10, 10)),
        TextBlock("B", 0.8, BoundingBox(5, 5, 10, 10)),
        TextBlock("C", 0.9, BoundingBox(100, 100, 10, 10)),
    ])

    filtered = filter_blocks_to_region(extraction, BoundingBox(0, 0, 20, 20))

    assert filtered.text == "A B"
    assert filtered.confidence == pytest.approx(0.6)
    assert filtered.metadata["original_blocks"] == 3
    assert filtered.metadata["filtered_blocks"] == 2


def test_block_confidence_heuristic():
    readable = estimate_block_confidence("the exit is on the left of the hall")
    noise = estimate_block_confidence("#$%&*")

    assert 0.0 <= noise < readable <= 1.0
