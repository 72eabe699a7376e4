"""
Index-ordered merging of slice transcripts.
"""

import logging
from typing import Optional

from .events import PipelineListener
from .session import RecordingSession, SliceResult

logger = logging.getLogger(__name__)


class ResultMerger:
    """
    Collects slice results as they arrive and republishes the merged text.

    Results can arrive in any order. The merged text is rebuilt from an
    explicit index sort on every result, so slice 3 arriving before
    slice 2 still displays in recorded order.
    """

    def __init__(self, listener: Optional[PipelineListener] = None):
        self.listener = listener or PipelineListener()

    def on_result(
        self,
        session: RecordingSession,
        result: SliceResult,
        duration: float = 0.0
    ) -> Optional[str]:
        """
        Add a result to its session and publish the new transcript.

        Returns:
            The merged text, or None if the session was already sealed.
        """
        if session.sealed:
            logger.info(
                f"Ignoring late result for slice {result.index} of sealed session {session.session_id}"
            )
            return None

        session.results.append(result)
        session.total_duration += duration

        merged = session.merged_text
        self.listener.on_transcript_update(merged)
        return merged
