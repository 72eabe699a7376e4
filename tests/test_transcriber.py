"""
Tests for the speech-to-text providers.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from voice_keyboard.audio.transcriber import (
    DeepgramTranscriber,
    TranscriptionResult,
    WhisperTranscriber,
    create_transcriber,
)
from voice_keyboard.errors import ProviderError
from voice_keyboard.vocabulary import VocabularyHint

WAV = b"RIFF" + b"\x00" * 100


def deepgram_response(transcript: str) -> dict:
    return {
        "metadata": {"duration": 5.0},
        "results": {"channels": [{"alternatives": [{"transcript": transcript, "confidence": 0.98}]}]},
    }


def with_transport(transcriber: DeepgramTranscriber, handler) -> DeepgramTranscriber:
    transcriber._http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return transcriber


class TestDeepgramParams:

    def test_params_include_keywords_and_spellings(self):
        transcriber = DeepgramTranscriber(api_key="dg-test")
        params = transcriber.build_params([VocabularyHint("kubernetes", "K8s"), VocabularyHint("pytest")])

        assert ("model", "nova-2") in params
        assert ("smart_format", "true") in params
        assert ("punctuate", "true") in params
        assert [v for k, v in params if k == "keywords"] == ["kubernetes", "K8s", "pytest"]

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("DEEPGRAM_API_KEY", "dg-env")
        assert DeepgramTranscriber().api_key == "dg-env"

    def test_unavailable_without_key(self, monkeypatch):
        monkeypatch.delenv("DEEPGRAM_API_KEY", raising=False)
        assert DeepgramTranscriber().is_available() is False


@pytest.mark.asyncio
class TestDeepgramTranscribe:

    async def test_transcribe_posts_wav(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=deepgram_response("  Hello world.  "))

        transcriber = with_transport(DeepgramTranscriber(api_key="dg-test"), handler)
        result = await transcriber.transcribe(WAV, hints=[VocabularyHint("Kubernetes")], duration=5.0)
        await transcriber.close()

        assert isinstance(result, TranscriptionResult)
        assert result.text == "Hello world."
        assert result.duration == 5.0

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/listen"
        assert request.headers["Authorization"] == "Token dg-test"
        assert request.headers["Content-Type"] == "audio/wav"
        assert request.url.params.get_list("keywords") == ["Kubernetes"]
        assert request.content == WAV

    async def test_http_error_status(self):
        transcriber = with_transport(
            DeepgramTranscriber(api_key="dg-test"),
            lambda request: httpx.Response(401, json={"err_msg": "Invalid credentials"})
        )

        with pytest.raises(ProviderError, match="HTTP 401"):
            await transcriber.transcribe(WAV)

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transcriber = with_transport(DeepgramTranscriber(api_key="dg-test"), handler)

        with pytest.raises(ProviderError) as excinfo:
            await transcriber.transcribe(WAV)
        assert excinfo.value.provider == "deepgram"

    async def test_unexpected_payload(self):
        transcriber = with_transport(
            DeepgramTranscriber(api_key="dg-test"),
            lambda request: httpx.Response(200, content=json.dumps({"results": {}}).encode())
        )

        with pytest.raises(ProviderError, match="Unexpected Deepgram response"):
            await transcriber.transcribe(WAV)

    async def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("DEEPGRAM_API_KEY", raising=False)
        with pytest.raises(ProviderError):
            await DeepgramTranscriber().transcribe(WAV)

    async def test_empty_audio(self):
        with pytest.raises(ValueError):
            await DeepgramTranscriber(api_key="dg-test").transcribe(b"")


class TestWhisper:

    def test_load_falls_back_to_next_model(self):
        transcriber = WhisperTranscriber(model_size="medium", device="cpu", compute_type="int8")

        with patch("voice_keyboard.audio.transcriber.FASTER_WHISPER_AVAILABLE", True), \
                patch("voice_keyboard.audio.transcriber.WhisperModel") as model_cls:
            model_cls.side_effect = [RuntimeError("out of memory"), "fallback-model"]
            transcriber.load_model()

        assert [c.args[0] for c in model_cls.call_args_list] == ["medium", "large-v3-turbo"]
        assert transcriber.model_size == "large-v3-turbo"
        assert transcriber._model == "fallback-model"

    @pytest.mark.asyncio
    async def test_hints_become_initial_prompt(self):
        transcriber = WhisperTranscriber(model_size="tiny", device="cpu", compute_type="int8")
        transcriber._model_loaded = True
        captured = {}

        def run_model(params):
            captured.update(params)
            return [], None

        with patch.object(transcriber, "_run_model", side_effect=run_model):
            result = await transcriber.transcribe(WAV, hints=[VocabularyHint("kubernetes", "K8s")], duration=5.0)

        assert captured["initial_prompt"] == "Vocabulary: K8s."
        assert captured["language"] == "en"
        assert result.text == ""
        assert result.duration == 5.0

    @pytest.mark.asyncio
    async def test_model_failure_becomes_provider_error(self):
        transcriber = WhisperTranscriber(device="cpu", compute_type="int8")
        transcriber._model_loaded = True

        with patch.object(transcriber, "_run_model", side_effect=RuntimeError("CUDA out of memory")):
            with pytest.raises(ProviderError, match="CUDA out of memory"):
                await transcriber.transcribe(WAV)


def test_create_transcriber():
    assert isinstance(create_transcriber("deepgram", api_key="x"), DeepgramTranscriber)
    assert isinstance(create_transcriber("whisper", device="cpu", compute_type="int8"), WhisperTranscriber)
    with pytest.raises(ValueError):
        create_transcriber("siri")
