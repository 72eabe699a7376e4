"""
Text cleanup orchestration.

Coordinates cleanup providers to turn a merged transcript into a single
cleaned text. Whatever happens, the result carries usable text: when no
provider succeeds the original transcript comes back with ``error`` set.
"""

from typing import List, Optional, Sequence
import asyncio
import time
import logging

from .providers import (
    CleanupProvider,
    GroqProvider,
    OpenAIProvider,
    ClaudeProvider,
    CleanupResult
)
from ..vocabulary import VocabularyHint

logger = logging.getLogger(__name__)

STRATEGIES = ("cascade", "single", "parallel")


class TextCleaner:
    """
    Orchestrates transcript cleanup across providers.

    Strategies:
    - ``cascade``: try providers in order until one succeeds
    - ``single``: use only the first available provider
    - ``parallel``: run all providers and keep the best quality score
    """

    def __init__(
        self,
        providers: Optional[List[CleanupProvider]] = None,
        strategy: str = "cascade"
    ):
        """
        Initialize the text cleaner.

        Args:
            providers: Cleanup providers to use. If None, uses default providers.
            strategy: Default cleanup strategy
        """
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown cleanup strategy: {strategy}")
        self.providers = providers if providers is not None else self._get_default_providers()
        self.strategy = strategy

    def _get_default_providers(self) -> List[CleanupProvider]:
        """Get the configured LLM providers, Groq first."""
        return [
            provider for provider in (GroqProvider(), OpenAIProvider(), ClaudeProvider())
            if provider.is_available()
        ]

    async def cleanup_text(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint] = (),
        strategy: Optional[str] = None
    ) -> CleanupResult:
        """
        Clean up a transcript.

        Args:
            raw_text: Merged transcript to clean
            hints: Personal dictionary entries to honor
            strategy: Override the cleaner's default strategy

        Returns:
            CleanupResult; ``error`` is set and ``cleaned_text`` equals
            ``raw_text`` when cleanup failed.
        """
        strategy = strategy or self.strategy
        start_time = time.time()

        if not raw_text.strip():
            return self._fallback(raw_text, start_time, "Nothing to clean up")

        active_providers = [p for p in self.providers if p.is_available()]
        if not active_providers:
            logger.warning("No providers available for text cleanup")
            return self._fallback(
                raw_text,
                start_time,
                "No cleanup provider configured (set GROQ_API_KEY, OPENAI_API_KEY or ANTHROPIC_API_KEY)"
            )

        if strategy == "single":
            results = await self._cleanup_cascade(raw_text, hints, active_providers[:1])
        elif strategy == "parallel":
            results = await self._cleanup_parallel(raw_text, hints, active_providers)
        else:
            results = await self._cleanup_cascade(raw_text, hints, active_providers)

        valid_results = [r for r in results if not r.error]
        if not valid_results:
            errors = "; ".join(f"{r.provider}: {r.error}" for r in results) or "all providers failed"
            return self._fallback(raw_text, start_time, errors)

        best = max(valid_results, key=lambda r: r.quality_score)
        logger.info(f"Cleanup by {best.provider} in {best.processing_time:.2f}s")
        return best

    async def _cleanup_parallel(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint],
        providers: List[CleanupProvider]
    ) -> List[CleanupResult]:
        """Run cleanup with all providers in parallel."""
        tasks = [
            asyncio.create_task(provider.cleanup_text(raw_text, hints))
            for provider in providers
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        valid_results = []
        for provider, result in zip(providers, results):
            if isinstance(result, CleanupResult):
                valid_results.append(result)
            elif isinstance(result, Exception):
                logger.error(f"Provider {provider.name} error: {result}")
        return valid_results

    async def _cleanup_cascade(
        self,
        raw_text: str,
        hints: Sequence[VocabularyHint],
        providers: List[CleanupProvider]
    ) -> List[CleanupResult]:
        """Try providers in order until one succeeds."""
        attempts = []
        for provider in providers:
            try:
                result = await provider.cleanup_text(raw_text, hints)
            except Exception as e:
                logger.error(f"Provider {provider.name} failed: {e}")
                continue
            attempts.append(result)
            if not result.error:
                return [result]
        return attempts

    def _fallback(self, raw_text: str, start_time: float, error: str) -> CleanupResult:
        return CleanupResult(
            original_text=raw_text,
            cleaned_text=raw_text,
            provider="none",
            processing_time=time.time() - start_time,
            quality_score=0.0,
            error=error
        )

    def get_available_providers(self) -> List[str]:
        """Get list of available provider names."""
        return [p.name for p in self.providers if p.is_available()]
