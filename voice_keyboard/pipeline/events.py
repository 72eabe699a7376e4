"""
Callbacks the pipeline uses to talk to its host UI.
"""

from dataclasses import dataclass

from .session import SessionPhase


@dataclass(frozen=True)
class StatusUpdate:
    """Pipeline phase plus the number of slices still being transcribed."""
    phase: SessionPhase
    outstanding: int = 0

    @property
    def processing(self) -> bool:
        return self.outstanding > 0 or self.phase in (SessionPhase.DRAINING, SessionPhase.CLEANING)


class PipelineListener:
    """
    Receives pipeline updates. Override the methods you need.

    All callbacks run on the event loop thread and must not block.
    """

    def on_transcript_update(self, text: str) -> None:
        """Called on every merge and when cleanup completes."""
        pass

    def on_status_change(self, status: StatusUpdate) -> None:
        """Called on phase changes and outstanding-count changes."""
        pass

    def on_warning(self, message: str) -> None:
        """Called for recoverable problems."""
        pass

    def on_error(self, message: str) -> None:
        """Called for failures that still leave a usable result."""
        pass
