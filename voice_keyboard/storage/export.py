"""
Plain-text export of saved transcriptions.
"""

from pathlib import Path
from typing import Union

from .store import TranscriptionRecord

EXPORT_TITLE = "Voice Keyboard Transcription"


def format_duration(seconds: int) -> str:
    """Format seconds as m:ss."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def format_export(record: TranscriptionRecord) -> str:
    """Render a transcription as export text."""
    created = record.created_at.astimezone().strftime("%Y-%m-%d %H:%M")
    return (
        f"{EXPORT_TITLE}\n"
        f"Date: {created}  Duration: {format_duration(record.duration)}\n"
        f"\n"
        f"{record.text}\n"
    )


def export_filename(record: TranscriptionRecord) -> str:
    stamp = record.created_at.astimezone().strftime("%Y-%m-%d-%H-%M-%S")
    return f"transcription-{stamp}.txt"


def export_transcription(record: TranscriptionRecord, directory: Union[str, Path] = ".") -> Path:
    """
    Write a transcription to ``directory`` as a .txt file.

    Returns:
        Path of the written file
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(record)
    path.write_text(format_export(record), encoding="utf-8")
    return path
