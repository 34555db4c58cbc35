"""Timer sync records and the staleness-guarded observer.

Whatever the transport (Socket.IO push, HTTP poll), incoming records go
through ``RemoteStateObserver.receive``. A record is applied only when its
``updated_at`` is strictly greater than the last one applied.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .timer import IDLE, RUNNING, STOPPED, CountdownTimer

TIMER_STATES = (RUNNING, STOPPED)


@dataclass(frozen=True)
class SyncRecord:
    timer_state: str
    start_time: Optional[int]
    updated_at: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncRecord':
        state = (data or {}).get('timer_state')
        if state not in TIMER_STATES:
            raise ValueError(f"timer_state must be one of {TIMER_STATES}")
        start_time = data.get('start_time')
        if state == RUNNING and start_time is None:
            raise ValueError("start_time is required when timer_state is running")
        updated_at = data.get('updated_at')
        if updated_at is None:
            raise ValueError("updated_at is required")
        try:
            return cls(
                timer_state=state,
                start_time=int(start_time) if start_time is not None else None,
                updated_at=int(updated_at),
            )
        except OverflowError:
            raise ValueError("start_time and updated_at must be finite") from None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timer_state': self.timer_state,
            'start_time': self.start_time,
            'updated_at': self.updated_at,
        }


def is_newer(incoming_updated_at: int, held_updated_at: Optional[int]) -> bool:
    return held_updated_at is None or incoming_updated_at > held_updated_at


def next_logical_timestamp(now: int, held_updated_at: Optional[int]) -> int:
    """Wall-clock ms, bumped so it is strictly greater than the held value."""
    if held_updated_at is None:
        return now
    return max(now, held_updated_at + 1)


class RemoteStateObserver:
    """Single reconciliation entry point for push and polling transports."""

    def __init__(self, apply: Callable[[SyncRecord], None], last_updated: Optional[int] = None):
        self._apply = apply
        self.last_updated = last_updated

    def receive(self, record: SyncRecord) -> bool:
        if not is_newer(record.updated_at, self.last_updated):
            return False
        self._apply(record)
        self.last_updated = record.updated_at
        return True

    def poll(self, fetch: Callable[[], Optional[SyncRecord]]) -> bool:
        record = fetch()
        if record is None:
            return False
        return self.receive(record)


def reconcile_timer(timer: CountdownTimer, record: SyncRecord) -> None:
    """Bring a local timer in line with a sync record."""
    if record.timer_state == RUNNING:
        if timer.state == IDLE or timer.start_time != record.start_time:
            timer.start(record.start_time)
    elif record.start_time is None:
        timer.reset()
    else:
        if timer.start_time != record.start_time:
            timer.start(record.start_time)
        timer.stop()


class SyncedClock:
    """A clock display kept in step with remote timer records."""

    def __init__(self, timer: CountdownTimer, last_updated: Optional[int] = None):
        self.timer = timer
        self.observer = RemoteStateObserver(self._apply, last_updated=last_updated)

    def _apply(self, record: SyncRecord) -> None:
        reconcile_timer(self.timer, record)

    def receive(self, record: SyncRecord) -> bool:
        return self.observer.receive(record)

    def poll(self, fetch: Callable[[], Optional[SyncRecord]]) -> bool:
        return self.observer.poll(fetch)
