"""
Utterance segmentation for inbound caller audio.

The segmenter decides when the audio appended to the AI model's input buffer
forms a complete utterance that should be committed and answered. It is a
debounced edge trigger: one commit per quiet gap, and nothing until new audio
arrives after that.

Two inputs drive it:
- ``on_frame`` is called for every inbound frame *before* the frame is
  forwarded. If the gap since the previous frame reached the quiet threshold,
  the previous utterance is committed first.
- ``on_quiet_timeout`` is called by the call session's idle timer, which is
  re-armed on every frame and fires after the quiet threshold of silence.
  It covers true silence, when no further frame arrives to trigger the check.

Both paths consume the same pending flag, so a gap never yields two commits.
"""

import time
from typing import Callable, Optional

from voice_gateway.config.constants import DEFAULT_QUIET_THRESHOLD_MS
from voice_gateway.models.events import CommitAndRespond


class UtteranceSegmenter:
    """Silence-based end-of-utterance detector for one call."""

    def __init__(
        self,
        quiet_threshold_ms: int = DEFAULT_QUIET_THRESHOLD_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if quiet_threshold_ms <= 0:
            raise ValueError("quiet_threshold_ms must be positive")
        self.quiet_threshold = quiet_threshold_ms / 1000.0
        self._clock = clock
        self._last_frame_at: Optional[float] = None
        self._pending = False
        self.commits = 0

    @property
    def has_pending_audio(self) -> bool:
        """True when audio was appended since the last commit."""
        return self._pending

    @property
    def last_frame_at(self) -> Optional[float]:
        return self._last_frame_at

    def on_frame(self, received_at: Optional[float] = None) -> Optional[CommitAndRespond]:
        """
        Register an inbound frame and report whether the previous utterance ended.

        Args:
            received_at: Arrival time of the frame (monotonic seconds)

        Returns:
            CommitAndRespond if the gap before this frame closed an utterance,
            otherwise None
        """
        now = self._clock() if received_at is None else received_at
        signal = None
        if self._pending and self._last_frame_at is not None:
            gap = now - self._last_frame_at
            if gap >= self.quiet_threshold:
                signal = self._emit(gap)
        self._last_frame_at = now
        self._pending = True
        return signal

    def on_quiet_timeout(self) -> Optional[CommitAndRespond]:
        """Called when the idle timer armed after the last frame expires."""
        if not self._pending:
            return None
        return self._emit(None)

    def reset(self) -> None:
        """Forget buffered audio without committing it."""
        self._pending = False
        self._last_frame_at = None

    def _emit(self, gap: Optional[float]) -> CommitAndRespond:
        self._pending = False
        self.commits += 1
        return CommitAndRespond(gap_seconds=gap)
