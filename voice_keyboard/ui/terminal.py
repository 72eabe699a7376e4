"""
Rich-based terminal user interface.

Implements the pipeline listener for live dictation feedback and renders
the dictionary, history and device listings for the CLI.
"""

from typing import List, Optional, Sequence
import asyncio
import time

from rich.console import Console
from rich.panel import Panel
from rich.status import Status
from rich.table import Table
from rich.text import Text
from rich import box

from ..pipeline.coordinator import FinalizeOutcome
from ..pipeline.events import PipelineListener, StatusUpdate
from ..pipeline.session import SessionPhase
from ..storage.export import format_duration
from ..storage.store import DictionaryEntry, TranscriptionRecord


class TerminalUI(PipelineListener):
    """
    Rich-based terminal interface for the dictation application.

    Receives pipeline callbacks while recording and finalizing, and
    renders listings for the other CLI commands.
    """

    def __init__(self, console: Optional[Console] = None):
        """Initialize the terminal UI."""
        self.console = console or Console()
        self.transcript = ""
        self.phase = SessionPhase.IDLE
        self.outstanding = 0
        self._recording_start_time: Optional[float] = None
        self._status: Optional[Status] = None

    # Pipeline callbacks

    def on_transcript_update(self, text: str) -> None:
        changed = text != self.transcript
        self.transcript = text
        # Slices merged while draining include the final flushed one
        if changed and text and self.phase in (SessionPhase.RECORDING, SessionPhase.DRAINING):
            self.console.print(Text(text, style="white"), soft_wrap=True)

    def on_status_change(self, status: StatusUpdate) -> None:
        self.phase = status.phase
        self.outstanding = status.outstanding

        if status.phase == SessionPhase.DRAINING:
            self._show_spinner(f"Finishing transcription ({status.outstanding} slice(s) processing)...")
        elif status.phase == SessionPhase.CLEANING:
            self._show_spinner("Cleaning up transcript...")
        elif status.phase in (SessionPhase.DONE, SessionPhase.IDLE):
            self._stop_spinner()

    def on_warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠️  {message}[/yellow]")

    def on_error(self, message: str) -> None:
        self.console.print(f"[red]❌ {message}[/red]")

    def _show_spinner(self, message: str) -> None:
        if self._status is None:
            self._status = self.console.status(f"🤖 {message}", spinner="dots")
            self._status.start()
        else:
            self._status.update(f"🤖 {message}")

    def _stop_spinner(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    # Recording flow

    def show_welcome(
        self,
        transcriber_name: str,
        slice_seconds: float,
        cleanup_providers: Sequence[str] = ()
    ) -> None:
        """Show the welcome panel and recording instructions."""
        welcome_text = Text()
        welcome_text.append("🎙️  Voice Keyboard", style="bold magenta")
        welcome_text.append("\n\nStreaming speech-to-text with intelligent cleanup\n")

        self.console.print(Panel(
            welcome_text,
            title="Welcome",
            title_align="center",
            border_style="cyan",
            padding=(1, 2)
        ))
        self.console.print("\n📋 Instructions:")
        self.console.print(f"  • Audio is transcribed with [bold]{transcriber_name}[/bold] every {slice_seconds:g}s")
        if cleanup_providers:
            self.console.print(f"  • Cleanup with [bold]{', '.join(cleanup_providers)}[/bold] when you stop")
        else:
            self.console.print(
                "  • [yellow]No cleanup provider configured[/yellow]; the transcript is kept as spoken"
            )
        self.console.print("  • Type [bold yellow]p[/bold yellow] then Enter to pause or resume")
        self.console.print("  • Press [bold red]Enter[/bold red] to stop and finalize")
        self.console.print()

    def show_recording_status(self, paused: bool = False) -> None:
        """Show that recording started, paused or resumed."""
        if self._recording_start_time is None:
            self._recording_start_time = time.time()

        if paused:
            self.console.print("⏸️  [yellow]Paused[/yellow] - type p then Enter to resume")
            return

        self.console.print(Panel(
            Text("🔴 RECORDING", style="bold red") + Text("\n\nSpeak now... Press Enter to stop", style="white"),
            title="Recording Audio",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        ))

    async def prompt_command(self) -> Optional[str]:
        """
        Wait for a line of input while recording.

        Returns:
            The entered line, or None if input was closed.
        """
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, input)
        except EOFError:
            return None

    def show_recording_stopped(self) -> None:
        if self._recording_start_time:
            duration = time.time() - self._recording_start_time
            self.console.print(f"⏹️  Recording stopped ({duration:.1f}s)")
        else:
            self.console.print("⏹️  Recording stopped")
        self._recording_start_time = None

    def show_completion(
        self,
        outcome: FinalizeOutcome,
        copied: bool = False,
        record: Optional[TranscriptionRecord] = None
    ) -> None:
        """Show the final transcript panel."""
        self._stop_spinner()

        subtitle = []
        if outcome.cleaned and outcome.provider:
            subtitle.append(f"cleaned by {outcome.provider}")
        elif not outcome.cleaned:
            subtitle.append("raw transcript")
        if outcome.partial:
            subtitle.append("partial")
        if copied:
            subtitle.append("copied to clipboard")
        if record is not None:
            subtitle.append(f"saved as {record.id[:8]}")

        self.console.print(Panel(
            Text(outcome.text, style="white"),
            title=f"✨ Transcript ({format_duration(int(round(outcome.duration)))})",
            title_align="center",
            subtitle=", ".join(subtitle) or None,
            border_style="green",
            padding=(1, 2)
        ))

    def show_error(self, error: Exception) -> None:
        """
        Display error message with Rich formatting.

        Args:
            error: Exception to display
        """
        self._stop_spinner()

        error_message = str(error)
        lowered = error_message.lower()

        # Provide helpful guidance for common errors
        if "permission" in lowered or "microphone" in lowered:
            guidance = "\n\n💡 Try checking your microphone permissions in System Settings."
        elif "device" in lowered or "audio" in lowered:
            guidance = "\n\n💡 Check that a microphone is connected (see `voice-keyboard devices`)."
        elif "network" in lowered or "api" in lowered:
            guidance = "\n\n💡 Check your internet connection and API keys."
        elif "timeout" in lowered:
            guidance = "\n\n💡 Try again - the service might be temporarily slow."
        else:
            guidance = ""

        self.console.print(Panel(
            Text(f"❌ {error_message}{guidance}", style="red"),
            title="Error",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        ))

    def show_success(self, message: str) -> None:
        self.console.print(f"[green]✅ {message}[/green]")

    # Listings

    def show_devices(self, devices: List[dict]) -> None:
        if not devices:
            self.console.print("[red]No audio input devices found.[/red]")
            return

        table = Table(title="Audio Input Devices", title_style="bold cyan", box=box.ROUNDED)
        table.add_column("#", style="cyan", width=4)
        table.add_column("Name", style="white")
        table.add_column("Channels", style="magenta", justify="right")
        table.add_column("Sample Rate", style="yellow", justify="right")

        for device in devices:
            name = device['name'] + (" [green](default)[/green]" if device.get('is_default') else "")
            table.add_row(
                str(device['index']),
                name,
                str(device['channels']),
                f"{device['sample_rate']} Hz"
            )
        self.console.print(table)

    def show_dictionary(self, entries: List[DictionaryEntry]) -> None:
        if not entries:
            self.console.print("[dim]Your dictionary is empty. Add a word with `voice-keyboard dictionary add WORD`.[/dim]")
            return

        table = Table(title="Personal Dictionary", title_style="bold cyan", box=box.ROUNDED)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Word", style="white")
        table.add_column("Spelling", style="magenta")
        table.add_column("Added", style="dim")

        for entry in entries:
            table.add_row(
                entry.id,
                entry.word,
                entry.spelling or "",
                entry.created_at.astimezone().strftime("%Y-%m-%d")
            )
        self.console.print(table)

    def show_history(self, records: List[TranscriptionRecord], page: int, total_pages: int) -> None:
        if not records:
            self.console.print("[dim]No transcriptions yet.[/dim]")
            return

        table = Table(
            title=f"Transcription History (page {page} of {total_pages})",
            title_style="bold cyan",
            box=box.ROUNDED
        )
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Date", style="yellow", no_wrap=True)
        table.add_column("Duration", style="magenta", justify="right")
        table.add_column("Text", style="white")

        for record in records:
            preview = record.text if len(record.text) <= 80 else record.text[:80] + "..."
            table.add_row(
                record.id,
                record.created_at.astimezone().strftime("%Y-%m-%d %H:%M"),
                format_duration(record.duration),
                preview
            )
        self.console.print(table)

    def show_transcription(self, record: TranscriptionRecord) -> None:
        created = record.created_at.astimezone().strftime("%Y-%m-%d %H:%M")
        self.console.print(Panel(
            Text(record.text, style="white"),
            title=f"{created} ({format_duration(record.duration)})",
            subtitle=record.id,
            border_style="cyan",
            padding=(1, 2)
        ))
