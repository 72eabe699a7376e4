"""
Personal dictionary terms used to bias transcription and cleanup.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class VocabularyHint:
    """A custom word with an optional preferred spelling."""
    word: str
    spelling: Optional[str] = None


def keywords_from_hints(hints: Sequence[VocabularyHint]) -> List[str]:
    """Flatten hints into keyword strings, spellings after their word."""
    keywords = []
    for hint in hints:
        keywords.append(hint.word)
        if hint.spelling:
            keywords.append(hint.spelling)
    return keywords


def dictionary_context(hints: Sequence[VocabularyHint]) -> str:
    """Render hints as a prompt section for the cleanup model."""
    if not hints:
        return ""

    lines = ["", "", "Custom dictionary entries:"]
    for hint in hints:
        if hint.spelling:
            lines.append(f"- {hint.word} (spell as: {hint.spelling})")
        else:
            lines.append(f"- {hint.word}")
    return "\n".join(lines) + "\n"


def whisper_prompt(hints: Sequence[VocabularyHint]) -> Optional[str]:
    """Build a Whisper ``initial_prompt`` that primes custom spellings."""
    terms = [hint.spelling or hint.word for hint in hints]
    if not terms:
        return None
    return "Vocabulary: " + ", ".join(terms) + "."
