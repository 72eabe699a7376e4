"""
Runtime configuration.

Timing constants for slicing and finalizing, plus a ``Settings`` object
read from environment variables. Command-line options override settings.
"""

import getpass
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Audio recording
AUDIO_SLICE_DURATION_MS = 5000  # 5 seconds per slice

# Transcription processing
MAX_FINALIZE_WAIT_MS = 10000  # max wait for pending slices on stop

DEFAULT_DB_PATH = Path.home() / ".voice-keyboard" / "voice_keyboard.db"

TRANSCRIBER_CHOICES = ["auto", "deepgram", "whisper"]
STRATEGY_CHOICES = ["cascade", "single", "parallel"]


def _default_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "default"


@dataclass
class Settings:
    """Application settings."""
    db_path: Path = DEFAULT_DB_PATH
    user_id: str = "default"
    transcriber: str = "auto"
    deepgram_api_key: Optional[str] = None
    deepgram_model: str = "nova-2"
    whisper_model: str = "large-v3-turbo"
    cleanup_strategy: str = "cascade"
    slice_duration: float = AUDIO_SLICE_DURATION_MS / 1000
    max_finalize_wait: float = MAX_FINALIZE_WAIT_MS / 1000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``VOICE_KEYBOARD_*`` and provider env vars."""
        transcriber = os.getenv("VOICE_KEYBOARD_TRANSCRIBER", "auto").lower()
        if transcriber not in TRANSCRIBER_CHOICES:
            raise ValueError(
                f"VOICE_KEYBOARD_TRANSCRIBER must be one of {TRANSCRIBER_CHOICES}, got {transcriber!r}"
            )

        return cls(
            db_path=Path(os.getenv("VOICE_KEYBOARD_DB", str(DEFAULT_DB_PATH))).expanduser(),
            user_id=os.getenv("VOICE_KEYBOARD_USER") or _default_user(),
            transcriber=transcriber,
            deepgram_api_key=os.getenv("DEEPGRAM_API_KEY"),
            deepgram_model=os.getenv("DEEPGRAM_MODEL", "nova-2"),
        )

    def resolve_transcriber(self) -> str:
        """Pick a concrete transcriber name for ``auto``."""
        if self.transcriber != "auto":
            return self.transcriber
        return "deepgram" if self.deepgram_api_key else "whisper"
