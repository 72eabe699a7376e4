"""
Main application entry point for Voice Keyboard.

This module provides the command-line interface: the interactive
``record`` session plus commands for audio devices, the personal
dictionary and the transcription history.
"""

import asyncio
import dataclasses
import logging
import math
import sys
from pathlib import Path
from typing import Optional

import click
import pyperclip
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .audio.transcriber import WhisperTranscriber
from .config import Settings, STRATEGY_CHOICES, TRANSCRIBER_CHOICES
from .storage.export import export_transcription
from .storage.store import TranscriptStore
from .ui.terminal import TerminalUI


def setup_logging(verbose: bool) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                show_time=False,
                show_path=False,
                rich_tracebacks=verbose,
            )
        ],
        force=True,
    )
    # Silence per-request HTTP logs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _store(ctx: click.Context) -> TranscriptStore:
    settings: Settings = ctx.obj['settings']
    if 'store' not in ctx.obj:
        ctx.obj['store'] = TranscriptStore(settings.db_path)
    return ctx.obj['store']


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Show progress logs')
@click.option(
    '--db',
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help='SQLite database path (default: $VOICE_KEYBOARD_DB or ~/.voice-keyboard/voice_keyboard.db)'
)
@click.option('--user', default=None, help='User id for dictionary and history (default: $VOICE_KEYBOARD_USER)')
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db: Optional[Path], user: Optional[str]) -> None:
    """
    Voice Keyboard - streaming speech-to-text with intelligent cleanup.

    Records in short slices that are transcribed while you speak, then
    cleans up the merged transcript and saves it to your history.
    """
    setup_logging(verbose)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        _fail(str(e))

    overrides = {}
    if db is not None:
        overrides['db_path'] = db.expanduser()
    if user:
        overrides['user_id'] = user

    ctx.ensure_object(dict)
    ctx.obj['settings'] = dataclasses.replace(settings, **overrides)
    ctx.obj['ui'] = TerminalUI()


@cli.command()
@click.option(
    '--transcriber',
    type=click.Choice(TRANSCRIBER_CHOICES),
    default=None,
    help='Speech-to-text provider (auto picks Deepgram when DEEPGRAM_API_KEY is set)'
)
@click.option(
    '--model-size',
    type=click.Choice(WhisperTranscriber.AVAILABLE_MODELS),
    default=None,
    help='Whisper model size for local transcription'
)
@click.option(
    '--strategy',
    type=click.Choice(STRATEGY_CHOICES),
    default=None,
    help='Text cleanup strategy'
)
@click.option('--slice-seconds', type=click.FloatRange(min=0.5), default=None, help='Seconds of audio per slice')
@click.option('--max-wait', type=click.FloatRange(min=0), default=None, help='Seconds to wait for pending slices on stop')
@click.option('--copy/--no-copy', default=True, help='Copy the final transcript to the clipboard')
@click.pass_context
def record(
    ctx: click.Context,
    transcriber: Optional[str],
    model_size: Optional[str],
    strategy: Optional[str],
    slice_seconds: Optional[float],
    max_wait: Optional[float],
    copy: bool
) -> None:
    """
    Record and transcribe until Enter is pressed.

    Type p then Enter to pause or resume.
    """
    settings: Settings = ctx.obj['settings']
    overrides = {
        'transcriber': transcriber,
        'whisper_model': model_size,
        'cleanup_strategy': strategy,
        'slice_duration': slice_seconds,
        'max_finalize_wait': max_wait,
    }
    settings = dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    # Imported here so the storage commands work without an audio stack
    from .app import DictationApp

    try:
        app = DictationApp(settings=settings, ui=ctx.obj['ui'])
        outcome = asyncio.run(app.run_session(copy=copy))
    except KeyboardInterrupt:
        click.echo("\nSession cancelled by user.")
        sys.exit(0)
    except Exception as e:
        _fail(str(e))

    if outcome is None:
        sys.exit(1)


@cli.command()
@click.pass_context
def devices(ctx: click.Context) -> None:
    """List audio input devices."""
    from .audio.recorder import get_available_devices
    from .errors import DeviceError

    ui: TerminalUI = ctx.obj['ui']
    try:
        found = asyncio.run(get_available_devices())
    except DeviceError as e:
        ui.show_error(e)
        sys.exit(1)
    ui.show_devices(found)


@cli.command('mic-test')
@click.option('--duration', type=click.FloatRange(min=0.5), default=2.0, help='Seconds to record')
def mic_test(duration: float) -> None:
    """Record a short sample to check the microphone."""
    from .audio.recorder import test_microphone

    if not asyncio.run(test_microphone(duration)):
        sys.exit(1)


@cli.group()
def dictionary() -> None:
    """Manage your personal dictionary."""
    pass


@dictionary.command('list')
@click.pass_context
def dictionary_list(ctx: click.Context) -> None:
    """Show dictionary entries, newest first."""
    settings: Settings = ctx.obj['settings']
    ctx.obj['ui'].show_dictionary(_store(ctx).list_entries(settings.user_id))


@dictionary.command('add')
@click.argument('word')
@click.option('--spelling', '-s', default=None, help='How the word should be written')
@click.pass_context
def dictionary_add(ctx: click.Context, word: str, spelling: Optional[str]) -> None:
    """Add WORD to the dictionary."""
    settings: Settings = ctx.obj['settings']
    try:
        entry = _store(ctx).add_entry(settings.user_id, word, spelling)
    except ValueError as e:
        _fail(str(e))
    ctx.obj['ui'].show_success(f"Added {entry.word} ({entry.id})")


@dictionary.command('update')
@click.argument('entry_id')
@click.argument('word')
@click.option('--spelling', '-s', default=None, help='How the word should be written')
@click.pass_context
def dictionary_update(ctx: click.Context, entry_id: str, word: str, spelling: Optional[str]) -> None:
    """Replace the word and spelling of ENTRY_ID."""
    settings: Settings = ctx.obj['settings']
    try:
        entry = _store(ctx).update_entry(settings.user_id, entry_id, word, spelling)
    except ValueError as e:
        _fail(str(e))
    if entry is None:
        _fail(f"Dictionary entry not found: {entry_id}")
    ctx.obj['ui'].show_success(f"Updated {entry.word}")


@dictionary.command('remove')
@click.argument('entry_id')
@click.pass_context
def dictionary_remove(ctx: click.Context, entry_id: str) -> None:
    """Delete ENTRY_ID from the dictionary."""
    settings: Settings = ctx.obj['settings']
    if not _store(ctx).delete_entry(settings.user_id, entry_id):
        _fail(f"Dictionary entry not found: {entry_id}")
    ctx.obj['ui'].show_success("Entry removed")


@cli.group()
def history() -> None:
    """Browse saved transcriptions."""
    pass


def _get_record(ctx: click.Context, transcription_id: str):
    settings: Settings = ctx.obj['settings']
    record = _store(ctx).get_transcription(settings.user_id, transcription_id)
    if record is None:
        _fail(f"Transcription not found: {transcription_id}")
    return record


@history.command('list')
@click.option('--page', type=click.IntRange(min=1), default=1, help='Page number')
@click.option('--page-size', type=click.IntRange(min=1, max=100), default=20, help='Transcriptions per page')
@click.pass_context
def history_list(ctx: click.Context, page: int, page_size: int) -> None:
    """Show saved transcriptions, newest first."""
    settings: Settings = ctx.obj['settings']
    store = _store(ctx)

    total = store.count_transcriptions(settings.user_id)
    total_pages = max(1, math.ceil(total / page_size))
    records = store.list_transcriptions(settings.user_id, limit=page_size, offset=(page - 1) * page_size)
    ctx.obj['ui'].show_history(records, page, total_pages)


@history.command('show')
@click.argument('transcription_id')
@click.pass_context
def history_show(ctx: click.Context, transcription_id: str) -> None:
    """Show the full text of a transcription."""
    ctx.obj['ui'].show_transcription(_get_record(ctx, transcription_id))


@history.command('delete')
@click.argument('transcription_id')
@click.pass_context
def history_delete(ctx: click.Context, transcription_id: str) -> None:
    """Delete a transcription."""
    settings: Settings = ctx.obj['settings']
    if not _store(ctx).delete_transcription(settings.user_id, transcription_id):
        _fail(f"Transcription not found: {transcription_id}")
    ctx.obj['ui'].show_success("Transcription deleted")


@history.command('copy')
@click.argument('transcription_id')
@click.pass_context
def history_copy(ctx: click.Context, transcription_id: str) -> None:
    """Copy a transcription to the clipboard."""
    record = _get_record(ctx, transcription_id)
    try:
        pyperclip.copy(record.text)
    except pyperclip.PyperclipException as e:
        _fail(f"Could not copy to clipboard: {e}")
    ctx.obj['ui'].show_success("Copied to clipboard")


@history.command('export')
@click.argument('transcription_id')
@click.option(
    '--output', '-o',
    type=click.Path(file_okay=False, path_type=Path),
    default=Path('.'),
    help='Directory to write the .txt file to'
)
@click.pass_context
def history_export(ctx: click.Context, transcription_id: str, output: Path) -> None:
    """Export a transcription as a .txt file."""
    record = _get_record(ctx, transcription_id)
    path = export_transcription(record, output)
    ctx.obj['ui'].show_success(f"Exported to {path}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
