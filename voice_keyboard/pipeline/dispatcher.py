"""
Concurrent dispatch of audio slices to a transcription provider.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, Optional, Sequence

from ..audio.transcriber import TranscriptionProvider
from ..errors import SliceTranscriptionError
from ..vocabulary import VocabularyHint
from .events import PipelineListener
from .merger import ResultMerger
from .session import RecordingSession, SliceResult

if TYPE_CHECKING:
    from ..audio.recorder import AudioSlice

logger = logging.getLogger(__name__)


class SliceDispatcher:
    """
    Sends each slice to the transcriber as its own asyncio task.

    Indexes are assigned at dispatch time, so completion order does not
    matter. A failed slice is merged as empty text at its index; it is
    never retried and never holds up other slices.

    Args:
        transcriber: Provider used for every slice
        merger: Receives each SliceResult
        listener: Receives per-slice warnings
        on_outstanding_change: Called with the new outstanding count
    """

    def __init__(
        self,
        transcriber: TranscriptionProvider,
        merger: ResultMerger,
        listener: Optional[PipelineListener] = None,
        on_outstanding_change: Optional[Callable[[int], None]] = None
    ):
        self.transcriber = transcriber
        self.merger = merger
        self.listener = listener or PipelineListener()
        self._on_outstanding_change = on_outstanding_change
        self._session: Optional[RecordingSession] = None
        self._hints: Sequence[VocabularyHint] = ()
        self._pending: Dict[asyncio.Task, RecordingSession] = {}

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    @property
    def outstanding(self) -> int:
        return self._session.outstanding if self._session else 0

    def begin(self, session: Optional[RecordingSession], hints: Sequence[VocabularyHint] = ()) -> None:
        """Attach a session; later slices belong to it. None detaches."""
        self._session = session
        self._hints = tuple(hints)

    def dispatch(self, audio_slice: "AudioSlice") -> asyncio.Task:
        """
        Assign the next index and start transcribing the slice.

        Synchronous so it can be passed straight to the recorder as its
        slice callback.
        """
        session = self._session
        if session is None:
            raise RuntimeError("No active session; call begin() first")

        index = session.next_index
        session.next_index += 1
        session.outstanding += 1
        self._notify_outstanding(session)

        logger.debug(f"Dispatching slice {index} ({audio_slice.duration:.2f}s, {len(audio_slice.payload)} bytes)")

        task = asyncio.create_task(self._transcribe_slice(session, index, audio_slice))
        self._pending[task] = session
        task.add_done_callback(self._forget)
        return task

    async def _transcribe_slice(
        self,
        session: RecordingSession,
        index: int,
        audio_slice: "AudioSlice"
    ) -> None:
        try:
            result = await self.transcriber.transcribe(
                audio_slice.payload,
                hints=self._hints,
                duration=audio_slice.duration
            )
            text = result.text.strip()
        except Exception as e:
            error = SliceTranscriptionError(index, e)
            logger.warning(str(error))
            if not session.sealed:
                self.listener.on_warning(str(error))
            text = ""

        self.merger.on_result(session, SliceResult(index=index, text=text), audio_slice.duration)
        session.outstanding -= 1
        self._notify_outstanding(session)

    def _forget(self, task: asyncio.Task) -> None:
        self._pending.pop(task, None)

    def _notify_outstanding(self, session: RecordingSession) -> None:
        if self._on_outstanding_change and session is self._session and not session.sealed:
            self._on_outstanding_change(session.outstanding)

    async def drain(self, timeout: float) -> bool:
        """
        Wait for the current session's in-flight slices to settle.

        Args:
            timeout: Maximum seconds to wait

        Returns:
            True if every dispatched slice settled in time.
        """
        pending = {
            task for task, session in self._pending.items()
            if session is self._session and not task.done()
        }
        if not pending:
            return True

        logger.info(f"Waiting up to {timeout:.1f}s for {len(pending)} slice(s)")
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending
