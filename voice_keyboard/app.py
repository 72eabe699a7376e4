"""
Interactive dictation session.

``DictationApp`` wires the recorder, transcriber, cleaner and store into a
``FinalizeCoordinator`` and runs one record-until-Enter session in the
terminal.
"""

import logging
from typing import Optional

import pyperclip

from .audio.recorder import AudioRecorder
from .audio.transcriber import TranscriptionProvider, create_transcriber
from .cleanup.cleaner import TextCleaner
from .config import Settings
from .errors import AudioRecorderError
from .pipeline.coordinator import FinalizeCoordinator, FinalizeOutcome
from .storage.store import TranscriptStore
from .ui.terminal import TerminalUI

logger = logging.getLogger(__name__)

PAUSE_COMMAND = "p"


def build_transcriber(settings: Settings) -> TranscriptionProvider:
    """Create the configured transcription provider."""
    name = settings.resolve_transcriber()
    if name == "deepgram":
        return create_transcriber(
            "deepgram",
            api_key=settings.deepgram_api_key,
            model=settings.deepgram_model
        )
    return create_transcriber("whisper", model_size=settings.whisper_model)


class DictationApp:
    """
    Main application class that coordinates all components.

    Handles one dictation session from recording through cleanup,
    clipboard copy and saving to history.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        ui: Optional[TerminalUI] = None,
        recorder: Optional[AudioRecorder] = None,
        transcriber: Optional[TranscriptionProvider] = None,
        cleaner: Optional[TextCleaner] = None,
        store: Optional[TranscriptStore] = None
    ):
        self.settings = settings or Settings.from_env()
        self.ui = ui or TerminalUI()
        self.recorder = recorder or AudioRecorder(slice_duration=self.settings.slice_duration)
        self.transcriber = transcriber or build_transcriber(self.settings)
        self.cleaner = cleaner or TextCleaner(strategy=self.settings.cleanup_strategy)
        self.store = store or TranscriptStore(self.settings.db_path)

        self.coordinator = FinalizeCoordinator(
            recorder=self.recorder,
            transcriber=self.transcriber,
            cleaner=self.cleaner,
            store=self.store,
            listener=self.ui,
            user_id=self.settings.user_id,
            max_finalize_wait=self.settings.max_finalize_wait
        )

    async def run_session(self, copy: bool = True) -> Optional[FinalizeOutcome]:
        """
        Run a complete dictation session.

        Args:
            copy: Copy the final transcript to the clipboard

        Returns:
            The finalize outcome, or None if recording could not start.
        """
        self.ui.show_welcome(
            self.transcriber.name,
            self.settings.slice_duration,
            self.cleaner.get_available_providers()
        )

        try:
            await self.transcriber.warm_up()
            try:
                await self.coordinator.start()
            except AudioRecorderError as e:
                logger.error(f"Could not start recording: {e}")
                self.ui.show_error(e)
                return None

            self.ui.show_recording_status()
            await self._wait_for_stop()
            self.ui.show_recording_stopped()

            outcome = await self.coordinator.stop()
            if outcome.nothing_to_finalize:
                return outcome

            copied = self._copy_to_clipboard(outcome.text) if copy else False
            record = await self.coordinator.wait_persisted()
            self.ui.show_completion(outcome, copied=copied, record=record)
            return outcome
        finally:
            await self.transcriber.close()

    async def _wait_for_stop(self) -> None:
        """Read input lines until a plain Enter (or end of input)."""
        paused = False
        while True:
            command = await self.ui.prompt_command()
            if command is None or command.strip().lower() != PAUSE_COMMAND:
                return

            if paused:
                self.coordinator.resume()
            else:
                self.coordinator.pause()
            paused = not paused
            self.ui.show_recording_status(paused=paused)

    def _copy_to_clipboard(self, text: str) -> bool:
        """
        Copy text to system clipboard.

        Returns:
            True if the copy succeeded.
        """
        try:
            pyperclip.copy(text)
            return True
        except pyperclip.PyperclipException as e:
            self.ui.on_warning(f"Could not copy to clipboard: {e}")
            return False
