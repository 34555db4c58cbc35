"""Scoring policies for stopped players.

Two policies exist and must not be mixed within one ranking:

- ``elapsed``: bruto is elapsed milliseconds, netto = bruto + bonus * 1000,
  lower netto wins.
- ``countdown``: bruto is whole seconds remaining when stopped,
  netto = bruto + bonus, higher netto wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .timer import FORMAT_COUNTDOWN, FORMAT_ELAPSED, elapsed, remaining

ASCENDING = 'asc'
DESCENDING = 'desc'


@dataclass(frozen=True)
class Pending:
    status: str = 'pending'


@dataclass(frozen=True)
class Finished:
    bruto_score: int
    netto_score: int
    status: str = 'finished'


PlayerResult = Union[Pending, Finished]


class ScoringPolicy(ABC):
    name: str
    direction: str
    clock_format: str

    @abstractmethod
    def bruto(self, now: int, start_time: int, duration_ms: Optional[int]) -> int:
        """Raw score for a player stopped at ``now``."""

    @abstractmethod
    def netto(self, bruto: int, bonus_score: int) -> int:
        """Bonus-adjusted score used for ranking."""

    def score(self, now: int, start_time: int, duration_ms: Optional[int], bonus_score: int) -> Finished:
        bruto = self.bruto(now, start_time, duration_ms)
        return Finished(bruto_score=bruto, netto_score=self.netto(bruto, bonus_score))

    def sort_key(self, netto_score: int) -> int:
        return netto_score if self.direction == ASCENDING else -netto_score

    def is_better(self, a: int, b: int) -> bool:
        return self.sort_key(a) < self.sort_key(b)


class ElapsedPolicy(ScoringPolicy):
    """Stopwatch rounds: time taken in ms, bonus seconds added as penalty offset."""

    name = 'elapsed'
    direction = ASCENDING
    clock_format = FORMAT_ELAPSED

    def bruto(self, now, start_time, duration_ms):
        value = elapsed(now, start_time)
        if duration_ms is not None:
            value = min(value, duration_ms)
        return value

    def netto(self, bruto, bonus_score):
        return bruto + bonus_score * 1000


class CountdownPolicy(ScoringPolicy):
    """Fixed-length rounds: whole seconds left on the clock, plus bonus seconds."""

    name = 'countdown'
    direction = DESCENDING
    clock_format = FORMAT_COUNTDOWN

    def bruto(self, now, start_time, duration_ms):
        if duration_ms is None:
            raise ValueError("countdown policy requires a round duration")
        return remaining(now, start_time, duration_ms) // 1000

    def netto(self, bruto, bonus_score):
        return bruto + bonus_score


_POLICIES: Dict[str, ScoringPolicy] = {
    ElapsedPolicy.name: ElapsedPolicy(),
    CountdownPolicy.name: CountdownPolicy(),
}


def get_policy(name: str) -> ScoringPolicy:
    try:
        return _POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown scoring policy: {name!r}") from None


def player_result(bruto_score: Optional[int], netto_score: Optional[int]) -> PlayerResult:
    if bruto_score is None or netto_score is None:
        return Pending()
    return Finished(bruto_score=bruto_score, netto_score=netto_score)


def rank_session_results(rows: List[Dict[str, Any]], policy: ScoringPolicy) -> List[Dict[str, Any]]:
    """Order finished results best-first and number them.

    Equal netto: earlier check-in wins, then the lower field number.
    """
    ranked = sorted(
        rows,
        key=lambda r: (policy.sort_key(r['nettoScore']), r.get('checkinTime') or 0, r['fieldNumber']),
    )
    out = []
    for rank, row in enumerate(ranked, start=1):
        result = {k: v for k, v in row.items() if k != 'checkinTime'}
        result['rank'] = rank
        out.append(result)
    return out
