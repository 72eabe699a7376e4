"""
Per-recording session state.

A new ``RecordingSession`` is built for every recording start. Sessions
are never cleared and reused, so nothing from a previous recording can
leak into the next one.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List


class SessionPhase(str, Enum):
    """Lifecycle of one recording-to-finalize cycle."""
    IDLE = "idle"
    RECORDING = "recording"
    DRAINING = "draining"
    CLEANING = "cleaning"
    DONE = "done"


@dataclass(frozen=True)
class SliceResult:
    """Transcript of one slice, keyed by the index assigned at dispatch."""
    index: int
    text: str


def merge_results(results: Iterable[SliceResult]) -> str:
    """Join result texts in index order with single spaces."""
    return " ".join(result.text for result in sorted(results, key=lambda r: r.index))


@dataclass
class RecordingSession:
    """Counters and results for one recording."""
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    results: List[SliceResult] = field(default_factory=list)
    next_index: int = 0
    outstanding: int = 0
    total_duration: float = 0.0
    sealed: bool = False

    @property
    def merged_text(self) -> str:
        return merge_results(self.results)

    def has_text(self) -> bool:
        """True if any slice produced non-blank text."""
        return any(result.text.strip() for result in self.results)
