"""
Shared fakes for pipeline tests.

The fakes stand in for the microphone, the speech-to-text service and the
host UI so the pipeline can be driven deterministically.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union
from unittest.mock import AsyncMock, MagicMock

import pytest

from voice_keyboard.audio.transcriber import TranscriptionProvider, TranscriptionResult
from voice_keyboard.cleanup.providers import CleanupResult
from voice_keyboard.pipeline.events import PipelineListener, StatusUpdate
from voice_keyboard.storage.store import TranscriptStore
from voice_keyboard.vocabulary import VocabularyHint


@dataclass(frozen=True)
class FakeSlice:
    """Same shape as ``AudioSlice`` without needing an audio stack."""
    payload: bytes
    captured_at: float = 0.0
    duration: float = 5.0


class FakeTranscriber(TranscriptionProvider):
    """
    Transcribes a payload to its own decoded text.

    ``script`` maps a payload to ``(delay_seconds, text_or_exception)``.
    """

    name = "fake"

    def __init__(self, script: Optional[Dict[bytes, Tuple[float, Union[str, Exception]]]] = None):
        self.script = script or {}
        self.calls: List[Tuple[bytes, Tuple[VocabularyHint, ...]]] = []
        self.warmed_up = False
        self.closed = False

    async def transcribe(
        self,
        audio_data: bytes,
        hints: Sequence[VocabularyHint] = (),
        duration: Optional[float] = None
    ) -> TranscriptionResult:
        self.calls.append((audio_data, tuple(hints)))
        delay, outcome = self.script.get(audio_data, (0.0, audio_data.decode()))
        if delay:
            await asyncio.sleep(delay)
        if isinstance(outcome, Exception):
            raise outcome
        return TranscriptionResult(text=outcome, duration=duration)

    async def warm_up(self) -> None:
        self.warmed_up = True

    async def close(self) -> None:
        self.closed = True


class FakeRecorder:
    """Records nothing; tests push slices with ``emit``."""

    def __init__(
        self,
        start_error: Optional[Exception] = None,
        stop_error: Optional[Exception] = None,
        start_delay: float = 0.0
    ):
        self.start_error = start_error
        self.stop_error = stop_error
        self.start_delay = start_delay
        self.on_slice = None
        self.recording = False
        self.paused = False
        self.tasks: List[asyncio.Task] = []
        self.final_slices: List[FakeSlice] = []

    async def start_recording(self, on_slice) -> None:
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.start_error:
            raise self.start_error
        self.on_slice = on_slice
        self.recording = True

    def emit(self, payload: bytes, duration: float = 5.0) -> asyncio.Task:
        task = self.on_slice(FakeSlice(payload=payload, duration=duration))
        self.tasks.append(task)
        return task

    async def stop_recording(self) -> int:
        # The final partial slice is flushed on stop
        for audio_slice in self.final_slices:
            self.tasks.append(self.on_slice(audio_slice))
        self.recording = False
        if self.stop_error:
            raise self.stop_error
        return len(self.tasks)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def is_recording(self) -> bool:
        return self.recording


@dataclass
class RecordingListener(PipelineListener):
    """Keeps every callback for later assertions."""
    transcripts: List[str] = field(default_factory=list)
    statuses: List[StatusUpdate] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def on_transcript_update(self, text: str) -> None:
        self.transcripts.append(text)

    def on_status_change(self, status: StatusUpdate) -> None:
        self.statuses.append(status)

    def on_warning(self, message: str) -> None:
        self.warnings.append(message)

    def on_error(self, message: str) -> None:
        self.errors.append(message)


def cleaned(raw_text: str, text: str, provider: str = "fake") -> CleanupResult:
    return CleanupResult(
        original_text=raw_text,
        cleaned_text=text,
        provider=provider,
        processing_time=0.01,
        quality_score=0.9
    )


def make_cleaner(transform=str.upper) -> AsyncMock:
    """A cleaner whose ``cleanup_text`` applies ``transform``."""
    cleaner = AsyncMock()

    async def cleanup_text(raw_text, hints=(), strategy=None):
        return cleaned(raw_text, transform(raw_text))

    cleaner.cleanup_text.side_effect = cleanup_text
    cleaner.get_available_providers = MagicMock(return_value=["fake"])
    return cleaner


@pytest.fixture
def store(tmp_path) -> TranscriptStore:
    return TranscriptStore(tmp_path / "voice_keyboard.db")


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
