"""Countdown timer model.

All values are derived from an absolute start timestamp and the wall clock
(epoch milliseconds). Nothing is accumulated per tick, so a display that
refreshes late or skips a tick still shows the right time.
"""

import time
from typing import Callable, List, Optional

IDLE = 'idle'
RUNNING = 'running'
STOPPED = 'stopped'

FORMAT_COUNTDOWN = 'countdown'
FORMAT_ELAPSED = 'elapsed'

BAND_NORMAL = 'normal'
BAND_WARNING = 'warning'
BAND_EXPIRED = 'expired'


def now_ms() -> int:
    return int(time.time() * 1000)


def elapsed(now: int, start_time: int) -> int:
    return max(0, now - start_time)


def remaining(now: int, start_time: int, duration_ms: int) -> int:
    """Time left on a countdown, never negative."""
    return max(0, duration_ms - (now - start_time))


def format_countdown(milliseconds: int) -> str:
    """Format as ``SSS.ff`` (e.g. 90000 -> '090.00')."""
    milliseconds = max(0, int(milliseconds))
    seconds = milliseconds // 1000
    hundredths = (milliseconds % 1000) // 10
    return f"{seconds:03d}.{hundredths:02d}"


def format_elapsed(milliseconds: int) -> str:
    """Format as ``MM:SS.ff`` (e.g. 65432 -> '01:05.43')."""
    milliseconds = max(0, int(milliseconds))
    total_seconds = milliseconds // 1000
    minutes, seconds = divmod(total_seconds, 60)
    hundredths = (milliseconds % 1000) // 10
    return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"


def format_display(milliseconds: int, fmt: str) -> str:
    if fmt == FORMAT_COUNTDOWN:
        return format_countdown(milliseconds)
    if fmt == FORMAT_ELAPSED:
        return format_elapsed(milliseconds)
    raise ValueError(f"Unknown clock format: {fmt!r}")


def color_band(remaining_ms: Optional[int], warning_ms: int = 30000) -> str:
    if remaining_ms is None:
        return BAND_NORMAL
    if remaining_ms <= 0:
        return BAND_EXPIRED
    if remaining_ms <= warning_ms:
        return BAND_WARNING
    return BAND_NORMAL


class CountdownTimer:
    """Timer bound to a shared start timestamp.

    ``duration_ms`` may be None for open-ended (stopwatch) rounds, in which
    case the timer never expires and ``remaining`` is None.

    Expiry callbacks run exactly once, the first time ``tick`` observes
    ``remaining <= 0`` while running.
    """

    def __init__(self, duration_ms: Optional[int], clock: Optional[Callable[[], int]] = None):
        self.duration_ms = duration_ms
        self.clock = clock if clock is not None else now_ms
        self.state = IDLE
        self.start_time: Optional[int] = None
        self.stopped_at: Optional[int] = None
        self._expire_callbacks: List[Callable[['CountdownTimer'], None]] = []
        self._expired = False

    def on_expire(self, callback: Callable[['CountdownTimer'], None]) -> None:
        self._expire_callbacks.append(callback)

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING

    @property
    def expired(self) -> bool:
        return self._expired

    def start(self, start_time: int) -> None:
        self.start_time = int(start_time)
        self.stopped_at = None
        self.state = RUNNING
        self._expired = False

    def stop(self, now: Optional[int] = None) -> None:
        if self.state != RUNNING:
            return
        self.stopped_at = self.clock() if now is None else now
        self.state = STOPPED

    def reset(self) -> None:
        self.state = IDLE
        self.start_time = None
        self.stopped_at = None
        self._expired = False

    def _reference(self, now: Optional[int]) -> int:
        if self.state == STOPPED and self.stopped_at is not None:
            return self.stopped_at
        return self.clock() if now is None else now

    def elapsed(self, now: Optional[int] = None) -> int:
        if self.start_time is None:
            return 0
        value = elapsed(self._reference(now), self.start_time)
        if self.duration_ms is not None:
            value = min(value, self.duration_ms)
        return value

    def remaining(self, now: Optional[int] = None) -> Optional[int]:
        if self.duration_ms is None:
            return None
        if self.start_time is None:
            return self.duration_ms
        return remaining(self._reference(now), self.start_time, self.duration_ms)

    def tick(self, now: Optional[int] = None) -> Optional[int]:
        """Recompute from the clock; fire expiry on the first zero reading."""
        now = self.clock() if now is None else now
        left = self.remaining(now)
        if self.state == RUNNING and left is not None and left <= 0:
            self.stopped_at = self.start_time + self.duration_ms
            self.state = STOPPED
            if not self._expired:
                self._expired = True
                for callback in self._expire_callbacks:
                    callback(self)
        return left

    def display(self, fmt: str, now: Optional[int] = None) -> str:
        if fmt == FORMAT_COUNTDOWN and self.duration_ms is not None:
            return format_display(self.remaining(now), fmt)
        if fmt not in (FORMAT_COUNTDOWN, FORMAT_ELAPSED):
            raise ValueError(f"Unknown clock format: {fmt!r}")
        # Open-ended rounds have nothing to count down from
        return format_display(self.elapsed(now), FORMAT_ELAPSED)

    def band(self, warning_ms: int = 30000, now: Optional[int] = None) -> str:
        return color_band(self.remaining(now), warning_ms)
