"""
Speech-to-text providers for audio slices.

Each provider turns one WAV slice into text. Providers accept vocabulary
hints from the personal dictionary to bias recognition, and raise
``ProviderError`` on failure so the dispatcher can degrade per slice.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Sequence
from dataclasses import dataclass, field
import time
import tempfile
import os
import asyncio
import logging
import platform

import httpx

from ..errors import ProviderError
from ..vocabulary import VocabularyHint, keywords_from_hints, whisper_prompt

try:
    import psutil
    PSUTIL_AVAILABLE = True
except ImportError:
    PSUTIL_AVAILABLE = False
    psutil = None

try:
    from faster_whisper import WhisperModel
    FASTER_WHISPER_AVAILABLE = True
except ImportError:
    FASTER_WHISPER_AVAILABLE = False
    WhisperModel = None

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionSegment:
    """A single segment of transcribed text with timing information."""
    start: float  # Start time in seconds
    end: float    # End time in seconds
    text: str     # Transcribed text
    confidence: Optional[float] = None  # Confidence score if available


@dataclass
class TranscriptionResult:
    """Transcription of one audio slice with metadata."""
    text: str                                   # Full transcribed text
    segments: List[TranscriptionSegment] = field(default_factory=list)
    language: Optional[str] = None              # Detected language
    duration: Optional[float] = None            # Audio duration
    processing_time: Optional[float] = None     # Time taken to transcribe


class TranscriptionProvider(ABC):
    """Abstract base class for speech-to-text providers."""

    name = "base"

    @abstractmethod
    async def transcribe(
        self,
        audio_data: bytes,
        hints: Sequence[VocabularyHint] = (),
        duration: Optional[float] = None
    ) -> TranscriptionResult:
        """
        Transcribe one WAV slice.

        Raises:
            ProviderError: If the provider call fails.
        """
        pass

    async def warm_up(self) -> None:
        """Prepare the provider before the first slice arrives."""
        pass

    async def close(self) -> None:
        """Release provider resources."""
        pass

    def _log_timing(self, processing_time: float, duration: Optional[float]) -> None:
        if duration and duration > 0:
            rtf = processing_time / duration  # Real-time factor
            logger.info(
                f"{self.name}: {processing_time:.2f}s for {duration:.2f}s audio (RTF: {rtf:.2f})"
            )


class DeepgramTranscriber(TranscriptionProvider):
    """
    Deepgram pre-recorded API client.

    Posts each WAV slice to ``/v1/listen`` with smart formatting and
    punctuation, passing dictionary words and spellings as keywords.
    """

    name = "deepgram"
    API_URL = "https://api.deepgram.com/v1/listen"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "nova-2",
        timeout: float = 30.0
    ):
        self.api_key = api_key or os.getenv("DEEPGRAM_API_KEY")
        self.model = model
        self.timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None

    def is_available(self) -> bool:
        """Check if an API key is configured."""
        return bool(self.api_key)

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-init HTTP client with connection pooling."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    def build_params(self, hints: Sequence[VocabularyHint]) -> List[tuple]:
        """Query parameters for a listen request."""
        params = [
            ("model", self.model),
            ("smart_format", "true"),
            ("punctuate", "true"),
        ]
        for keyword in keywords_from_hints(hints):
            params.append(("keywords", keyword))
        return params

    async def transcribe(
        self,
        audio_data: bytes,
        hints: Sequence[VocabularyHint] = (),
        duration: Optional[float] = None
    ) -> TranscriptionResult:
        if not audio_data:
            raise ValueError("Audio data cannot be empty")
        if not self.is_available():
            raise ProviderError("Deepgram API key not configured", provider=self.name)

        start_time = time.time()
        try:
            http = await self._get_http()
            response = await http.post(
                self.API_URL,
                params=self.build_params(hints),
                headers={
                    "Authorization": f"Token {self.api_key}",
                    "Content-Type": "audio/wav",
                },
                content=audio_data,
            )
        except httpx.HTTPError as e:
            logger.error(f"Deepgram request failed: {e}")
            raise ProviderError(f"Deepgram request failed: {e}", provider=self.name) from e

        if response.status_code != 200:
            logger.error(f"Deepgram returned {response.status_code}: {response.text[:200]}")
            raise ProviderError(
                f"Deepgram transcription error: HTTP {response.status_code}",
                provider=self.name
            )

        try:
            payload = response.json()
            alternative = payload["results"]["channels"][0]["alternatives"][0]
        except (ValueError, KeyError, IndexError) as e:
            raise ProviderError(f"Unexpected Deepgram response: {e}", provider=self.name) from e

        processing_time = time.time() - start_time
        self._log_timing(processing_time, duration)

        metadata = payload.get("metadata", {})
        return TranscriptionResult(
            text=(alternative.get("transcript") or "").strip(),
            language=metadata.get("language"),
            duration=metadata.get("duration", duration),
            processing_time=processing_time
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http:
            await self._http.aclose()
            self._http = None


class WhisperTranscriber(TranscriptionProvider):
    """
    Local Faster Whisper transcriber.

    Features:
    - Large V3 Turbo model by default, falling back to smaller models
    - Automatic device detection (CUDA, CPU fallback)
    - VAD filtering for better speech detection
    - Vocabulary hints passed as the initial prompt
    """

    name = "whisper"

    # Available models in order of preference for fallback
    AVAILABLE_MODELS = [
        "large-v3-turbo",
        "large-v3",
        "medium",
        "small",
        "base",
        "tiny"
    ]

    def __init__(
        self,
        model_size: str = "large-v3-turbo",
        device: str = "auto",
        compute_type: str = "auto",
        vad_filter: bool = True,
        vad_parameters: Optional[Dict[str, Any]] = None,
        beam_size: int = 5,
        language: Optional[str] = "en"
    ):
        """
        Initialize the Whisper transcriber.

        Args:
            model_size: Whisper model size
            device: Device to run on ('cpu', 'cuda', or 'auto')
            compute_type: Computation precision ('int8', 'float16', 'float32', or 'auto')
            vad_filter: Enable Voice Activity Detection
            vad_parameters: VAD configuration parameters
            beam_size: Beam size for decoding
            language: Language for transcription (None for auto-detect)
        """
        self.model_size = model_size
        self.device = self._detect_optimal_device() if device == "auto" else device
        self.compute_type = self._detect_optimal_compute_type() if compute_type == "auto" else compute_type
        self.vad_filter = vad_filter
        self.vad_parameters = vad_parameters or {
            "min_silence_duration_ms": 500,
            "speech_pad_ms": 400
        }
        self.beam_size = beam_size
        self.language = language

        self._model: Optional[WhisperModel] = None
        self._model_loaded = False

    def _detect_optimal_device(self) -> str:
        """
        Detect the optimal device for the current system.

        faster-whisper does not support MPS, so macOS always runs on CPU.
        """
        try:
            import torch
            if torch.cuda.is_available():
                return "cuda"
        except ImportError:
            pass

        if platform.system() == "Darwin":
            logger.info("Running on macOS: using CPU device (MPS not supported by faster-whisper)")
        return "cpu"

    def _detect_optimal_compute_type(self) -> str:
        """Detect compute type based on device and available memory."""
        if self.device == "cuda":
            return "float16"

        if PSUTIL_AVAILABLE:
            try:
                available_memory_gb = psutil.virtual_memory().available / (1024**3)
                return "int8" if available_memory_gb < 4 else "float32"
            except Exception:
                return "int8"
        return "int8"

    def load_model(self) -> None:
        """
        Load the Whisper model with fallback support.

        Raises:
            RuntimeError: If Faster Whisper is not available or all models fail to load.
        """
        if not FASTER_WHISPER_AVAILABLE:
            raise RuntimeError(
                "faster-whisper not available. Install with: pip install faster-whisper"
            )

        if self._model_loaded:
            return

        models_to_try = [self.model_size]
        for model in self.AVAILABLE_MODELS:
            if model not in models_to_try:
                models_to_try.append(model)

        devices_to_try = [self.device]
        if self.device != "cpu":
            devices_to_try.append("cpu")

        last_error = None
        for model_size in models_to_try:
            for device in devices_to_try:
                compute_type = self.compute_type
                if device == "cpu" and compute_type == "float16":
                    compute_type = "int8"  # CPU doesn't support float16 well

                try:
                    logger.info(f"Loading Whisper model: {model_size} on {device} with {compute_type}")
                    self._model = WhisperModel(
                        model_size,
                        device=device,
                        compute_type=compute_type
                    )
                except Exception as e:
                    last_error = e
                    logger.warning(f"Failed to load model '{model_size}' on device '{device}': {e}")
                    continue

                if device != self.device:
                    logger.info(f"Fell back to device: {device}")
                self.device = device
                self.compute_type = compute_type
                self.model_size = model_size
                self._model_loaded = True
                logger.info(f"Successfully loaded Whisper model: {model_size} on {device}")
                return

        raise RuntimeError(f"Failed to load any Whisper model. Last error: {last_error}")

    async def transcribe(
        self,
        audio_data: bytes,
        hints: Sequence[VocabularyHint] = (),
        duration: Optional[float] = None
    ) -> TranscriptionResult:
        if not audio_data:
            raise ValueError("Audio data cannot be empty")

        start_time = time.time()
        temp_file_path = None

        try:
            if not self._model_loaded:
                self.load_model()

            with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as temp_file:
                temp_file.write(audio_data)
                temp_file_path = temp_file.name

            transcribe_params = {
                "audio": temp_file_path,
                "language": self.language,
                "initial_prompt": whisper_prompt(hints),
                "beam_size": self.beam_size,
                "vad_filter": self.vad_filter
            }
            if self.vad_filter and self.vad_parameters:
                transcribe_params["vad_parameters"] = self.vad_parameters

            # Run transcription in thread pool to avoid blocking.
            # Segments are a lazy generator, so consume them there too.
            loop = asyncio.get_running_loop()
            segments, info = await loop.run_in_executor(
                None,
                lambda: self._run_model(transcribe_params)
            )

        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise ProviderError(f"Transcription failed: {e}", provider=self.name) from e
        finally:
            if temp_file_path and os.path.exists(temp_file_path):
                try:
                    os.unlink(temp_file_path)
                except OSError as e:
                    logger.warning(f"Failed to cleanup temp file: {e}")

        processing_time = time.time() - start_time
        audio_duration = getattr(info, 'duration', duration)
        self._log_timing(processing_time, audio_duration)

        return TranscriptionResult(
            text=" ".join(segment.text for segment in segments),
            segments=segments,
            language=getattr(info, 'language', self.language),
            duration=audio_duration,
            processing_time=processing_time
        )

    def _run_model(self, params: Dict[str, Any]):
        segments, info = self._model.transcribe(**params)
        converted = []
        for segment in segments:
            text = segment.text.strip()
            if text:
                converted.append(TranscriptionSegment(
                    start=segment.start,
                    end=segment.end,
                    text=text,
                    confidence=getattr(segment, 'avg_logprob', None)
                ))
        return converted, info

    async def warm_up(self) -> None:
        """
        Load the model and run a short silent transcription.

        Keeps the first real slice from paying the model load cost.
        """
        import io
        import wave

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.load_model)

        sample_rate = 16000
        silence = b'\x00' * (sample_rate * 2)  # 1 second, 16-bit

        wav_buffer = io.BytesIO()
        with wave.open(wav_buffer, 'wb') as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(sample_rate)
            wav_file.writeframes(silence)

        try:
            await self.transcribe(wav_buffer.getvalue())
            logger.info("Model warm-up completed")
        except ProviderError as e:
            logger.warning(f"Model warm-up failed: {e}")


def create_transcriber(name: str, **kwargs) -> TranscriptionProvider:
    """
    Create a transcription provider by name.

    Args:
        name: 'deepgram' or 'whisper'
        **kwargs: Provider constructor arguments
    """
    if name == "deepgram":
        return DeepgramTranscriber(**kwargs)
    if name == "whisper":
        return WhisperTranscriber(**kwargs)
    raise ValueError(f"Unknown transcriber: {name}")
