"""
Audio capture using PyAudio.

Captures from the default microphone and cuts the running recording into
fixed-length WAV slices. Each slice is handed to a callback as soon as it
is cut, so transcription can start while recording continues.
"""

import asyncio
import io
import logging
import time
import wave
from dataclasses import dataclass
from typing import Callable, List, Optional

import pyaudio
from rich.console import Console

from ..config import AUDIO_SLICE_DURATION_MS
from ..errors import AudioRecorderError, DeviceError, MicrophonePermissionError

logger = logging.getLogger(__name__)
console = Console()


@dataclass(frozen=True)
class AudioSlice:
    """A self-contained encoded audio segment."""
    payload: bytes      # Complete WAV file
    captured_at: float  # Unix timestamp of the cut
    duration: float     # Wall-clock seconds in this slice, pauses excluded


SliceCallback = Callable[[AudioSlice], None]


class AudioRecorder:
    """
    Async audio recorder that emits WAV slices at a fixed cadence.

    Records 16kHz, 16-bit mono audio. While recording, every
    ``slice_duration`` seconds the active chunk buffer is swapped for an
    empty one and the old buffer is encoded as an ``AudioSlice``. The swap
    happens on the event loop between chunk reads, so no audio is lost or
    repeated at a slice boundary.

    Args:
        sample_rate: Audio sample rate in Hz
        chunk_size: Size of audio chunks to read
        channels: Number of audio channels (1 for mono)
        slice_duration: Seconds between slice cuts

    Example:
        >>> recorder = AudioRecorder(slice_duration=5.0)
        >>> await recorder.start_recording(on_slice=dispatcher.dispatch)
        >>> # ... user speaks, slices arrive every 5 seconds ...
        >>> await recorder.stop_recording()  # flushes the final partial slice
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 512,
        channels: int = 1,
        slice_duration: float = AUDIO_SLICE_DURATION_MS / 1000
    ):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.slice_duration = slice_duration
        self.format = pyaudio.paInt16  # 16-bit audio
        self.sample_width = 2  # 16-bit = 2 bytes per sample

        # Internal state
        self._audio: Optional[pyaudio.PyAudio] = None
        self._stream = None
        self._is_recording = False
        self._is_paused = False
        self._audio_buffer: List[bytes] = []
        self._recording_task: Optional[asyncio.Task] = None
        self._slice_task: Optional[asyncio.Task] = None
        self._on_slice: Optional[SliceCallback] = None
        self._slices_emitted = 0
        self._capture_error: Optional[Exception] = None

        # Elapsed-time accounting for the current slice
        self._slice_elapsed = 0.0
        self._running_since: Optional[float] = None

        self._validate_config()

    def _validate_config(self) -> None:
        """Validate audio configuration parameters."""
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.channels not in (1, 2):
            raise ValueError(f"Channels must be 1 or 2, got {self.channels}")
        if self.slice_duration <= 0:
            raise ValueError(f"Slice duration must be positive, got {self.slice_duration}")

    async def start_recording(self, on_slice: SliceCallback) -> None:
        """
        Start continuous capture, emitting slices to ``on_slice``.

        Args:
            on_slice: Called with each AudioSlice as soon as it is cut

        Raises:
            RuntimeError: If already recording
            MicrophonePermissionError: If microphone permissions denied
            DeviceError: If no input devices available
            AudioRecorderError: If audio initialization fails
        """
        if self._is_recording:
            raise RuntimeError("Recording already in progress")

        try:
            self._audio = pyaudio.PyAudio()

            if not self._has_input_devices():
                raise DeviceError("No audio input devices found")

            try:
                self._stream = self._audio.open(
                    format=self.format,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    frames_per_buffer=self.chunk_size,
                    input_device_index=None  # Use default device
                )
            except OSError as e:
                if "device" in str(e).lower() or "input" in str(e).lower():
                    raise MicrophonePermissionError(self._format_permission_error()) from e
                raise AudioRecorderError(f"Failed to open audio stream: {e}") from e

        except Exception as e:
            await self._cleanup_resources()
            if isinstance(e, AudioRecorderError):
                raise
            raise AudioRecorderError(f"Failed to start recording: {e}") from e

        # Fresh buffers for the new capture
        self._audio_buffer = []
        self._on_slice = on_slice
        self._slices_emitted = 0
        self._capture_error = None
        self._slice_elapsed = 0.0
        self._running_since = time.monotonic()
        self._is_paused = False
        self._is_recording = True

        self._recording_task = asyncio.create_task(self._record_audio_loop())
        self._slice_task = asyncio.create_task(self._slice_timer_loop())

        logger.info(
            f"Recording started: {self.sample_rate}Hz, {self.channels} channel(s), "
            f"{self.slice_duration:.1f}s slices"
        )

    async def stop_recording(self) -> int:
        """
        Stop capture and flush any partial audio as a final slice.

        Returns:
            Number of slices emitted during this recording

        Raises:
            RuntimeError: If not currently recording
            AudioRecorderError: If capture broke off before the stop; audio
                read up to that point has still been emitted
        """
        if not self._is_recording:
            raise RuntimeError("Not currently recording")

        self._is_recording = False

        try:
            if self._slice_task:
                self._slice_task.cancel()
                try:
                    await self._slice_task
                except asyncio.CancelledError:
                    pass
                self._slice_task = None

            if self._recording_task:
                await self._recording_task
                self._recording_task = None
        finally:
            await self._cleanup_resources()

        # Flush whatever accumulated since the last cut
        if self._audio_buffer:
            self._cut_slice()

        emitted = self._slices_emitted
        self._on_slice = None
        logger.info(f"Recording stopped: {emitted} slice(s) emitted")

        capture_error, self._capture_error = self._capture_error, None
        if capture_error is not None:
            raise AudioRecorderError(f"Audio capture failed: {capture_error}") from capture_error
        return emitted

    def pause(self) -> None:
        """Suspend elapsed-time accounting."""
        if not self._is_recording or self._is_paused:
            return
        self._slice_elapsed += time.monotonic() - self._running_since
        self._running_since = None
        self._is_paused = True

    def resume(self) -> None:
        """Resume elapsed-time accounting."""
        if not self._is_recording or not self._is_paused:
            return
        self._running_since = time.monotonic()
        self._is_paused = False

    def is_recording(self) -> bool:
        """Check if currently recording."""
        return self._is_recording

    def is_paused(self) -> bool:
        """Check if elapsed-time accounting is paused."""
        return self._is_paused

    def _take_elapsed(self) -> float:
        """Return elapsed seconds for the current slice and start a new one."""
        elapsed = self._slice_elapsed
        if self._running_since is not None:
            now = time.monotonic()
            elapsed += now - self._running_since
            self._running_since = now
        self._slice_elapsed = 0.0
        return elapsed

    def _cut_slice(self) -> Optional[AudioSlice]:
        """
        Hand off the active buffer and emit it as a slice.

        The new buffer is installed before the old one is encoded, so
        chunks read after this point belong to the next slice.
        """
        frames, self._audio_buffer = self._audio_buffer, []
        duration = self._take_elapsed()

        if not frames:
            return None

        audio_slice = AudioSlice(
            payload=self._create_wav_data(frames),
            captured_at=time.time(),
            duration=duration
        )
        self._slices_emitted += 1
        logger.debug(f"Cut slice {self._slices_emitted}: {len(frames)} chunks, {duration:.2f}s")

        if self._on_slice:
            self._on_slice(audio_slice)
        return audio_slice

    async def _slice_timer_loop(self) -> None:
        """Cut a slice every ``slice_duration`` seconds while recording."""
        while self._is_recording and self._capture_error is None:
            await asyncio.sleep(self.slice_duration)
            if self._is_recording:
                self._cut_slice()

    async def _record_audio_loop(self) -> None:
        """
        Internal async loop that captures audio data.

        Blocking reads run in the default executor so the event loop stays
        free for transcription requests.
        """
        if not self._stream:
            return

        loop = asyncio.get_running_loop()
        try:
            while self._is_recording:
                try:
                    data = await loop.run_in_executor(
                        None,
                        lambda: self._stream.read(
                            self.chunk_size,
                            exception_on_overflow=False  # Prevent crashes on buffer overrun
                        )
                    )
                    if data:
                        self._audio_buffer.append(data)

                except Exception as e:
                    if "input overflowed" not in str(e).lower():
                        # Reported by stop_recording()
                        logger.error(f"Audio capture stopped: {e}")
                        self._capture_error = e
                        break
                    logger.warning(f"Audio read error: {e}")
                    await asyncio.sleep(0.01)  # Brief pause on overflow

        except Exception as e:
            logger.error(f"Recording loop error: {e}")
            self._capture_error = e
        finally:
            logger.debug("Recording loop ended")

    def _create_wav_data(self, frames: List[bytes]) -> bytes:
        """Encode raw chunks as a complete WAV file."""
        wav_buffer = io.BytesIO()

        with wave.open(wav_buffer, 'wb') as wav_file:
            wav_file.setnchannels(self.channels)
            wav_file.setsampwidth(self.sample_width)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(b''.join(frames))

        return wav_buffer.getvalue()

    def _has_input_devices(self) -> bool:
        """Check if any audio input devices are available."""
        if not self._audio:
            return False

        try:
            for i in range(self._audio.get_device_count()):
                device_info = self._audio.get_device_info_by_index(i)
                if device_info.get('maxInputChannels', 0) > 0:
                    return True
        except Exception as e:
            logger.warning(f"Error checking input devices: {e}")

        return False

    def _format_permission_error(self) -> str:
        """Format a helpful permission error message."""
        return (
            "Microphone access denied. On macOS:\n"
            "1. Open System Settings → Privacy & Security → Microphone\n"
            "2. Enable microphone access for your terminal application\n"
            "3. Restart the application and try again"
        )

    async def _cleanup_resources(self) -> None:
        """Clean up PyAudio resources safely."""
        try:
            if self._stream:
                if self._stream.is_active():
                    self._stream.stop_stream()
                self._stream.close()
                self._stream = None

            if self._audio:
                self._audio.terminate()
                self._audio = None

        except Exception as e:
            logger.warning(f"Error during cleanup: {e}")

    async def __aenter__(self) -> "AudioRecorder":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit with cleanup."""
        if self._is_recording:
            try:
                await self.stop_recording()
            except Exception as e:
                logger.warning(f"Error stopping recording during cleanup: {e}")

        await self._cleanup_resources()


async def get_available_devices() -> List[dict]:
    """
    Get a list of available audio input devices.

    Returns:
        List of dictionaries with device information (name, index, channels, etc.)
    """
    devices = []
    audio = None

    try:
        audio = pyaudio.PyAudio()
        try:
            default_index = audio.get_default_input_device_info().get('index', -1)
        except OSError:
            default_index = -1

        for i in range(audio.get_device_count()):
            try:
                device_info = audio.get_device_info_by_index(i)
                if device_info.get('maxInputChannels', 0) > 0:
                    devices.append({
                        'index': i,
                        'name': device_info.get('name', 'Unknown'),
                        'channels': device_info.get('maxInputChannels', 0),
                        'sample_rate': int(device_info.get('defaultSampleRate', 0)),
                        'is_default': i == default_index
                    })
            except Exception as e:
                logger.warning(f"Error getting device {i} info: {e}")
                continue

    except Exception as e:
        logger.error(f"Error enumerating audio devices: {e}")
        raise DeviceError(f"Failed to enumerate audio devices: {e}") from e
    finally:
        if audio:
            audio.terminate()

    return devices


async def test_microphone(duration_seconds: float = 2.0) -> bool:
    """
    Test microphone by recording a short sample.

    Args:
        duration_seconds: How long to record for the test

    Returns:
        True if any audio was captured, False otherwise
    """
    captured: List[AudioSlice] = []

    try:
        async with AudioRecorder(slice_duration=duration_seconds * 2) as recorder:
            console.print("[dim]Testing microphone...[/dim]")

            await recorder.start_recording(on_slice=captured.append)
            await asyncio.sleep(duration_seconds)
            await recorder.stop_recording()

        # WAV header is ~44 bytes, so anything larger indicates audio content
        success = any(len(s.payload) > 100 for s in captured)

        if success:
            console.print("[green]✓ Microphone test successful[/green]")
        else:
            console.print("[red]✗ Microphone test failed - no audio detected[/red]")

        return success

    except MicrophonePermissionError as e:
        console.print("[red]✗ Microphone test failed - Permission denied[/red]")
        console.print(f"[dim]{e}[/dim]")
        return False
    except DeviceError as e:
        console.print("[red]✗ Microphone test failed - Device error[/red]")
        console.print(f"[dim]{e}[/dim]")
        return False
    except AudioRecorderError as e:
        console.print(f"[red]✗ Microphone test failed: {e}[/red]")
        logger.error(f"Microphone test error: {e}")
        return False
