"""
Tests for cleanup providers and the cleaner strategies.
"""

from unittest.mock import MagicMock, patch

import pytest

from voice_keyboard.cleanup.cleaner import TextCleaner
from voice_keyboard.cleanup.providers import (
    CleanupProvider,
    CleanupResult,
    GroqProvider,
    OpenAIProvider,
)
from voice_keyboard.vocabulary import VocabularyHint


class StubProvider(CleanupProvider):
    """Returns a fixed cleanup, or fails."""

    def __init__(self, name, text=None, error=None, quality=0.5, available=True, raises=None):
        super().__init__(name)
        self.text = text
        self.error = error
        self.quality = quality
        self.available = available
        self.raises = raises
        self.calls = []

    def is_available(self):
        return self.available

    async def cleanup_text(self, raw_text, hints=()):
        self.calls.append((raw_text, tuple(hints)))
        if self.raises:
            raise self.raises
        return CleanupResult(
            original_text=raw_text,
            cleaned_text=raw_text if self.error else self.text,
            provider=self.name,
            processing_time=0.01,
            quality_score=0.0 if self.error else self.quality,
            error=self.error
        )


class TestPrompts:

    def test_prompt_includes_dictionary(self):
        provider = StubProvider("stub")
        prompt = provider.get_cleanup_prompt([VocabularyHint("Kubernetes", "K8s"), VocabularyHint("pytest")])

        assert "Custom dictionary entries:" in prompt
        assert "- Kubernetes (spell as: K8s)" in prompt
        assert "- pytest" in prompt
        assert "{dictionary}" not in prompt

    def test_prompt_without_dictionary(self):
        prompt = StubProvider("stub").get_cleanup_prompt()
        assert "Custom dictionary" not in prompt
        assert prompt.endswith("commentary.")


class TestOpenAICompatibleProviders:

    def test_groq_uses_openai_compatible_endpoint(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
        provider = GroqProvider()

        assert provider.name == "groq"
        assert provider.base_url == "https://api.groq.com/openai/v1"
        assert provider.model == "llama-3.3-70b-versatile"
        assert provider.api_key == "gsk-test"
        assert provider.temperature == 0.3
        assert provider.max_tokens == 2048

    def test_unavailable_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert OpenAIProvider().is_available() is False

    @pytest.mark.asyncio
    async def test_unavailable_provider_returns_error_result(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        result = await OpenAIProvider().cleanup_text("hello")

        assert result.error
        assert result.cleaned_text == "hello"

    @pytest.mark.asyncio
    async def test_chat_completion_request(self):
        completion = MagicMock()
        completion.choices[0].message.content = "  Hello there.  "
        completion.usage.total_tokens = 42

        with patch("voice_keyboard.cleanup.providers.openai.OpenAI") as client_cls:
            client_cls.return_value.chat.completions.create.return_value = completion
            provider = GroqProvider(api_key="gsk-test")
            result = await provider.cleanup_text("um hello there", [VocabularyHint("there")])

        assert result.error is None
        assert result.cleaned_text == "Hello there."
        assert result.provider == "groq"
        client_cls.assert_called_once()
        assert client_cls.call_args.kwargs["base_url"] == "https://api.groq.com/openai/v1"

        kwargs = client_cls.return_value.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 2048
        assert kwargs["messages"][0]["role"] == "system"
        assert "- there" in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1] == {"role": "user", "content": "um hello there"}
        assert provider.usage_stats["total_tokens"] == 42
        assert provider.usage_stats["successful"] == 1

    @pytest.mark.asyncio
    async def test_api_error_becomes_error_result(self):
        with patch("voice_keyboard.cleanup.providers.openai.OpenAI") as client_cls:
            client_cls.return_value.chat.completions.create.side_effect = RuntimeError("rate limited")
            result = await GroqProvider(api_key="gsk-test").cleanup_text("hello")

        assert "rate limited" in result.error
        assert result.cleaned_text == "hello"


@pytest.mark.asyncio
class TestTextCleaner:
    """Strategy selection and fallback."""

    async def test_cascade_stops_at_first_success(self):
        failing = StubProvider("first", error="HTTP 500")
        working = StubProvider("second", text="Clean.")
        unused = StubProvider("third", text="Other.")
        cleaner = TextCleaner([failing, working, unused])

        result = await cleaner.cleanup_text("raw")

        assert result.cleaned_text == "Clean."
        assert result.provider == "second"
        assert unused.calls == []

    async def test_cascade_skips_raising_provider(self):
        cleaner = TextCleaner([
            StubProvider("boom", raises=RuntimeError("crash")),
            StubProvider("ok", text="Fine."),
        ])
        result = await cleaner.cleanup_text("raw")
        assert result.provider == "ok"

    async def test_single_uses_first_available(self):
        offline = StubProvider("offline", text="x", available=False)
        failing = StubProvider("failing", error="down")
        backup = StubProvider("backup", text="Backup.")
        cleaner = TextCleaner([offline, failing, backup], strategy="single")

        result = await cleaner.cleanup_text("raw")

        assert result.error
        assert result.cleaned_text == "raw"
        assert backup.calls == []

    async def test_parallel_picks_best_quality(self):
        cleaner = TextCleaner([
            StubProvider("low", text="Low.", quality=0.2),
            StubProvider("high", text="High.", quality=0.9),
            StubProvider("broken", error="timeout"),
        ])

        result = await cleaner.cleanup_text("raw", strategy="parallel")

        assert result.provider == "high"

    async def test_all_failures_return_raw_text_with_error(self):
        cleaner = TextCleaner([StubProvider("a", error="one"), StubProvider("b", error="two")])

        result = await cleaner.cleanup_text("keep me")

        assert result.cleaned_text == "keep me"
        assert result.provider == "none"
        assert "a: one" in result.error
        assert "b: two" in result.error

    async def test_unavailable_providers_are_skipped(self):
        offline = StubProvider("offline", text="Offline.", available=False)
        online = StubProvider("online", text="Online.")

        result = await TextCleaner([offline, online]).cleanup_text("raw")

        assert result.provider == "online"
        assert offline.calls == []

    async def test_no_providers_keeps_raw_text(self):
        result = await TextCleaner([]).cleanup_text("keep me as spoken")

        assert result.cleaned_text == "keep me as spoken"
        assert result.provider == "none"
        assert "GROQ_API_KEY" in result.error

    async def test_hints_passed_to_providers(self):
        provider = StubProvider("only", text="Done.")
        hints = [VocabularyHint("K8s")]

        await TextCleaner([provider]).cleanup_text("raw", hints)

        assert provider.calls == [("raw", tuple(hints))]

    async def test_blank_text_is_not_sent(self):
        provider = StubProvider("only", text="Done.")
        result = await TextCleaner([provider]).cleanup_text("   ")

        assert result.error
        assert provider.calls == []


class TestCleanerSetup:

    def test_default_chain_empty_without_keys(self, monkeypatch):
        for key in ("GROQ_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY"):
            monkeypatch.delenv(key, raising=False)

        cleaner = TextCleaner()

        assert cleaner.providers == []
        assert cleaner.get_available_providers() == []

    def test_default_chain_prefers_groq(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        names = [p.name for p in TextCleaner().providers]

        assert names == ["groq", "openai"]

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError):
            TextCleaner([StubProvider("stub")], strategy="fastest")
