"""
LLM provider abstractions for transcript cleanup.

Provides a unified interface for different LLM services (Groq, OpenAI,
Claude). Every provider returns a
``CleanupResult``; on failure ``cleaned_text`` is the unchanged input and
``error`` describes what went wrong.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Sequence
from dataclasses import dataclass, field
import os
import time
import asyncio
import re
import logging

from ..vocabulary import VocabularyHint, dictionary_context

try:
    import openai
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False

try:
    from anthropic import Anthropic
    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False

logger = logging.getLogger(__name__)

CLEANUP_SYSTEM_PROMPT = """You are a text cleanup assistant. Your task is to clean up transcribed text by:
1. Fixing grammatical errors
2. Improving punctuation and formatting
3. Removing filler words (um, uh, like, you know) unless they seem intentional
4. Ensuring proper capitalization
5. Maintaining the original meaning and tone
6. Respecting custom spellings from the dictionary{dictionary}

Return ONLY the cleaned text without any explanation or commentary."""


@dataclass
class CleanupResult:
    """Result from a text cleanup operation."""
    original_text: str
    cleaned_text: str
    provider: str
    processing_time: float
    quality_score: float
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CleanupProvider(ABC):
    """Abstract base class for cleanup providers."""

    def __init__(self, name: str):
        self.name = name
        self.usage_stats = {
            'requests': 0,
            'successful': 0,
            'failed': 0,
            'total_tokens': 0
        }

    @abstractmethod
    async def cleanup_text(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint] = ()
    ) -> CleanupResult:
        """Clean up the provided text."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available (API keys, packages)."""
        pass

    def update_usage_stats(self, success: bool, tokens: int = 0):
        """Update usage statistics."""
        self.usage_stats['requests'] += 1
        if success:
            self.usage_stats['successful'] += 1
        else:
            self.usage_stats['failed'] += 1
        self.usage_stats['total_tokens'] += tokens

    def calculate_quality_score(self, original: str, cleaned: str) -> float:
        """Score a cleanup by filler reduction, length and sentence structure."""
        if not original.strip() or not cleaned.strip():
            return 0.0

        original_words = len(original.split())
        cleaned_words = len(cleaned.split())

        filler_words = {'um', 'uh', 'like', 'so', 'well', 'actually'}
        original_fillers = sum(1 for word in original.lower().split()
                               if word.strip('.,!?;:') in filler_words)
        cleaned_fillers = sum(1 for word in cleaned.lower().split()
                              if word.strip('.,!?;:') in filler_words)
        filler_reduction = max(0, (original_fillers - cleaned_fillers) / max(1, original_fillers))

        # Not too short, not too long
        length_ratio = cleaned_words / max(1, original_words)
        length_score = 1.0 if 0.7 <= length_ratio <= 1.1 else max(0, 1.0 - abs(length_ratio - 0.9))

        sentences_original = len(re.findall(r'[.!?]', original))
        sentences_cleaned = len(re.findall(r'[.!?]', cleaned))
        structure_score = min(1.0, sentences_cleaned / max(1, sentences_original))

        quality_score = (
            0.4 * filler_reduction +
            0.3 * length_score +
            0.3 * structure_score
        )
        return min(1.0, max(0.0, quality_score))

    def get_cleanup_prompt(self, hints: Sequence[VocabularyHint] = ()) -> str:
        """Get the system prompt for text cleanup."""
        return CLEANUP_SYSTEM_PROMPT.format(dictionary=dictionary_context(hints))

    def _failed(self, raw_text: str, start_time: float, error: str) -> CleanupResult:
        self.update_usage_stats(success=False)
        logger.warning(f"{self.name} cleanup failed: {error}")
        return CleanupResult(
            original_text=raw_text,
            cleaned_text=raw_text,
            provider=self.name,
            processing_time=time.time() - start_time,
            quality_score=0.0,
            error=error
        )


class OpenAIProvider(CleanupProvider):
    """OpenAI chat completions provider for text cleanup."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        name: str = "openai"
    ):
        super().__init__(name)
        self.model = model
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url
        self.timeout = timeout
        self.temperature = 0.3
        self.max_tokens = 2048
        self._client = None

    def is_available(self) -> bool:
        return OPENAI_AVAILABLE and bool(self.api_key)

    async def cleanup_text(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint] = ()
    ) -> CleanupResult:
        start_time = time.time()

        if not self.is_available():
            return self._failed(raw_text, start_time, f"{self.name} not available (missing API key or package)")

        try:
            # Run the synchronous SDK call in a thread pool
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                None,
                self._sync_cleanup_text,
                raw_text,
                hints,
                start_time
            )
        except Exception as e:
            return self._failed(raw_text, start_time, str(e))

    def _sync_cleanup_text(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint],
        start_time: float
    ) -> CleanupResult:
        """Synchronous cleanup method to be run in executor."""
        if not self._client:
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout
            )

        response = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.get_cleanup_prompt(hints)},
                {"role": "user", "content": raw_text}
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature
        )

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            return self._failed(raw_text, start_time, "Empty response from model")

        cleaned_text = content.strip()
        tokens = response.usage.total_tokens if response.usage else 0
        self.update_usage_stats(success=True, tokens=tokens)

        return CleanupResult(
            original_text=raw_text,
            cleaned_text=cleaned_text,
            provider=self.name,
            processing_time=time.time() - start_time,
            quality_score=self.calculate_quality_score(raw_text, cleaned_text),
            metadata={"model": self.model, "tokens_used": tokens}
        )


class GroqProvider(OpenAIProvider):
    """Groq-hosted Llama through Groq's OpenAI-compatible endpoint."""

    BASE_URL = "https://api.groq.com/openai/v1"

    def __init__(
        self,
        model: str = "llama-3.3-70b-versatile",
        api_key: Optional[str] = None,
        timeout: float = 30.0
    ):
        super().__init__(
            model=model,
            api_key=api_key or os.getenv("GROQ_API_KEY"),
            base_url=self.BASE_URL,
            timeout=timeout,
            name="groq"
        )


class ClaudeProvider(CleanupProvider):
    """Anthropic Claude provider for text cleanup."""

    def __init__(
        self,
        model: str = "claude-3-5-haiku-latest",
        api_key: Optional[str] = None,
        timeout: float = 30.0
    ):
        super().__init__("claude")
        self.model = model
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.timeout = timeout
        self.max_tokens = 2048
        self._client = None

    def is_available(self) -> bool:
        return ANTHROPIC_AVAILABLE and bool(self.api_key)

    async def cleanup_text(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint] = ()
    ) -> CleanupResult:
        start_time = time.time()

        if not self.is_available():
            return self._failed(raw_text, start_time, "Claude not available (missing API key or package)")

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                None,
                self._sync_cleanup_text,
                raw_text,
                hints,
                start_time
            )
        except Exception as e:
            return self._failed(raw_text, start_time, str(e))

    def _sync_cleanup_text(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint],
        start_time: float
    ) -> CleanupResult:
        """Synchronous cleanup method to be run in executor."""
        if not self._client:
            self._client = Anthropic(api_key=self.api_key, timeout=self.timeout)

        response = self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=self.get_cleanup_prompt(hints),
            messages=[{"role": "user", "content": raw_text}]
        )

        cleaned_text = response.content[0].text.strip() if response.content else ""
        if not cleaned_text:
            return self._failed(raw_text, start_time, "Empty response from model")

        usage = getattr(response, 'usage', None)
        tokens = usage.input_tokens + usage.output_tokens if usage else 0
        self.update_usage_stats(success=True, tokens=tokens)

        return CleanupResult(
            original_text=raw_text,
            cleaned_text=cleaned_text,
            provider=self.name,
            processing_time=time.time() - start_time,
            quality_score=self.calculate_quality_score(raw_text, cleaned_text),
            metadata={"model": self.model, "tokens_used": tokens}
        )
