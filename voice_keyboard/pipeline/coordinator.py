"""
Recording lifecycle and the stop-time finalize handoff.

``FinalizeCoordinator`` drives one session through
IDLE -> RECORDING -> DRAINING -> CLEANING -> DONE. On stop it waits a
bounded time for in-flight slices, runs a single cleanup pass over the
merged transcript and saves the result in the background.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from ..audio.transcriber import TranscriptionProvider
from ..cleanup.cleaner import TextCleaner
from ..config import MAX_FINALIZE_WAIT_MS
from ..errors import AudioRecorderError, CleanupError, DrainTimeoutWarning
from ..storage.store import TranscriptStore, TranscriptionRecord
from ..vocabulary import VocabularyHint
from .dispatcher import SliceDispatcher
from .events import PipelineListener, StatusUpdate
from .merger import ResultMerger
from .session import RecordingSession, SessionPhase

if TYPE_CHECKING:
    from ..audio.recorder import AudioRecorder

logger = logging.getLogger(__name__)

NOTHING_TO_FINALIZE = "Nothing to finalize"


@dataclass
class FinalizeOutcome:
    """What a stop produced."""
    text: str
    duration: float
    cleaned: bool = False
    partial: bool = False
    nothing_to_finalize: bool = False
    provider: Optional[str] = None


class FinalizeCoordinator:
    """
    Owns the session state machine and the finalize handoff.

    Args:
        recorder: Capture engine producing slices
        transcriber: Provider used for each slice
        cleaner: Cleanup capability called once per session
        store: Vocabulary and history storage (optional)
        listener: Host UI callbacks
        user_id: Whose dictionary and history to use
        max_finalize_wait: Seconds to wait for outstanding slices on stop
    """

    def __init__(
        self,
        recorder: "AudioRecorder",
        transcriber: TranscriptionProvider,
        cleaner: TextCleaner,
        store: Optional[TranscriptStore] = None,
        listener: Optional[PipelineListener] = None,
        user_id: str = "default",
        max_finalize_wait: float = MAX_FINALIZE_WAIT_MS / 1000
    ):
        self.recorder = recorder
        self.transcriber = transcriber
        self.cleaner = cleaner
        self.store = store
        self.listener = listener or PipelineListener()
        self.user_id = user_id
        self.max_finalize_wait = max_finalize_wait

        self.merger = ResultMerger(self.listener)
        self.dispatcher = SliceDispatcher(
            transcriber,
            self.merger,
            self.listener,
            on_outstanding_change=self._on_outstanding_change
        )

        self._phase = SessionPhase.IDLE
        self._session: Optional[RecordingSession] = None
        self._hints: Sequence[VocabularyHint] = ()
        self._persist_task: Optional[asyncio.Task] = None
        self._starting = False

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    @property
    def outstanding(self) -> int:
        return self._session.outstanding if self._session else 0

    def _set_phase(self, phase: SessionPhase) -> None:
        self._phase = phase
        logger.debug(f"Pipeline phase: {phase.value}")
        self.listener.on_status_change(StatusUpdate(phase=phase, outstanding=self.outstanding))

    def _on_outstanding_change(self, outstanding: int) -> None:
        self.listener.on_status_change(StatusUpdate(phase=self._phase, outstanding=outstanding))

    async def _load_hints(self) -> Sequence[VocabularyHint]:
        if self.store is None:
            return ()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.store.load_vocabulary_hints, self.user_id)
        except Exception as e:
            logger.warning(f"Could not load dictionary: {e}")
            self.listener.on_warning(f"Could not load your dictionary: {e}")
            return ()

    async def start(self) -> RecordingSession:
        """
        Begin a new recording with a brand-new session.

        Raises:
            RuntimeError: If a session is still starting, recording or finalizing
            AudioRecorderError: If the microphone cannot be acquired
        """
        if self._starting:
            raise RuntimeError("Cannot start while another start is in progress")
        if self._phase not in (SessionPhase.IDLE, SessionPhase.DONE):
            raise RuntimeError(f"Cannot start while {self._phase.value}")

        self._starting = True
        previous_session = self._session
        previous_hints = self._hints
        try:
            hints = await self._load_hints()
            session = RecordingSession()
            self._session = session
            self._hints = hints
            self.dispatcher.begin(session, hints)

            try:
                await self.recorder.start_recording(on_slice=self.dispatcher.dispatch)
            except Exception:
                # No partial start
                self._session = previous_session
                self._hints = previous_hints
                self.dispatcher.begin(previous_session, previous_hints)
                raise
        finally:
            self._starting = False

        self._persist_task = None
        self._set_phase(SessionPhase.RECORDING)
        self.listener.on_transcript_update("")
        logger.info(f"Session {session.session_id} started with {len(hints)} dictionary hint(s)")
        return session

    def pause(self) -> None:
        """Pause elapsed-time accounting."""
        if self._phase == SessionPhase.RECORDING:
            self.recorder.pause()

    def resume(self) -> None:
        """Resume elapsed-time accounting."""
        if self._phase == SessionPhase.RECORDING:
            self.recorder.resume()

    async def stop(self) -> FinalizeOutcome:
        """
        Stop recording, drain outstanding slices and finalize.

        Raises:
            RuntimeError: If not recording
        """
        if self._phase != SessionPhase.RECORDING:
            raise RuntimeError("Not currently recording")

        session = self._session
        try:
            await self.recorder.stop_recording()
        except AudioRecorderError as e:
            logger.error(f"Error stopping recorder: {e}")
            self.listener.on_error(f"Error stopping recorder: {e}")
        self._set_phase(SessionPhase.DRAINING)

        drained = await self.dispatcher.drain(self.max_finalize_wait)
        session.sealed = True

        if not drained:
            warning = DrainTimeoutWarning(session.outstanding, self.max_finalize_wait)
            logger.warning(str(warning))
            self.listener.on_warning(str(warning))

        merged_text = session.merged_text
        if not session.has_text():
            logger.info(NOTHING_TO_FINALIZE)
            self.listener.on_warning(NOTHING_TO_FINALIZE)
            self._set_phase(SessionPhase.DONE)
            return FinalizeOutcome(
                text="",
                duration=session.total_duration,
                partial=not drained,
                nothing_to_finalize=True
            )

        self._set_phase(SessionPhase.CLEANING)
        final_text, cleaned, provider = await self._cleanup(merged_text)

        self.listener.on_transcript_update(final_text)
        self._persist_task = asyncio.create_task(self._persist(final_text, session.total_duration))
        self._set_phase(SessionPhase.DONE)

        return FinalizeOutcome(
            text=final_text,
            duration=session.total_duration,
            cleaned=cleaned,
            partial=not drained,
            provider=provider
        )

    async def _cleanup(self, merged_text: str):
        """Run the single cleanup pass, falling back to the merged text."""
        try:
            result = await self.cleaner.cleanup_text(merged_text, self._hints)
            if result.error:
                raise CleanupError(result.error)
            if not result.cleaned_text.strip():
                raise CleanupError("Cleanup returned empty text")
        except Exception as e:
            logger.error(f"Cleanup failed, keeping raw transcript: {e}")
            self.listener.on_error(f"Cleanup failed, keeping raw transcript: {e}")
            return merged_text, False, None

        return result.cleaned_text, True, result.provider

    async def _persist(self, text: str, duration: float) -> Optional[TranscriptionRecord]:
        if self.store is None:
            return None

        loop = asyncio.get_running_loop()
        try:
            record = await loop.run_in_executor(
                None, self.store.save_transcription, self.user_id, text, duration
            )
        except Exception as e:
            logger.error(f"Failed to save transcription: {e}")
            self.listener.on_error(f"Failed to save transcription: {e}")
            return None

        logger.info(f"Saved transcription {record.id}")
        return record

    async def wait_persisted(self) -> Optional[TranscriptionRecord]:
        """Wait for the background save of the last finalized session."""
        if self._persist_task is None:
            return None
        return await self._persist_task
