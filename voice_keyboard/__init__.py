"""
Voice Keyboard - streaming dictation with LLM cleanup.

Records audio from the microphone in fixed-length slices, transcribes the
slices concurrently, merges them in recorded order and cleans up the final
transcript with an LLM provider before saving it to a local history.
"""

__version__ = "0.2.0"
__author__ = "Brian Weaver"
__description__ = "Streaming speech-to-text dictation with intelligent cleanup"
