"""Leaderboard ranking and its local JSON snapshot.

Every result ever recorded goes into an unbounded log. Two views are derived
from it on each append: the top view (best N overall) and the window view
(best M recorded within the trailing window). Only the two views are
persisted; on startup the log is seeded from them.
"""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .scoring import ScoringPolicy

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class LeaderboardEntry:
    name: str
    field_number: int
    bruto_score: int
    bonus_score: int
    netto_score: int
    date: str
    timestamp: int

    @classmethod
    def from_result(cls, result: Dict[str, Any], timestamp: int) -> 'LeaderboardEntry':
        day = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime('%Y-%m-%d')
        return cls(
            name=result['name'],
            field_number=int(result['fieldNumber']),
            bruto_score=int(result['brutoScore']),
            bonus_score=int(result['bonusScore']),
            netto_score=int(result['nettoScore']),
            date=day,
            timestamp=int(timestamp),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LeaderboardEntry':
        return cls(
            name=data['name'],
            field_number=int(data['fieldNumber']),
            bruto_score=int(data['brutoScore']),
            bonus_score=int(data['bonusScore']),
            netto_score=int(data['nettoScore']),
            date=data.get('date') or '',
            timestamp=int(data['timestamp']),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'fieldNumber': self.field_number,
            'brutoScore': self.bruto_score,
            'bonusScore': self.bonus_score,
            'nettoScore': self.netto_score,
            'date': self.date,
            'timestamp': self.timestamp,
        }

    @property
    def key(self):
        return (self.name.lower(), self.timestamp, self.netto_score)


class Leaderboard:
    def __init__(self, policy: ScoringPolicy, size: int = 10, window_size: int = 10, window_days: int = 7):
        self.policy = policy
        self.size = size
        self.window_size = window_size
        self.window_days = window_days
        self.log: List[LeaderboardEntry] = []
        self.top: List[LeaderboardEntry] = []
        self.window: List[LeaderboardEntry] = []

    def _ranked(self, entries: Iterable[LeaderboardEntry]) -> List[LeaderboardEntry]:
        # Equal netto: earlier arrival first. sorted() is stable for full ties.
        return sorted(entries, key=lambda e: (self.policy.sort_key(e.netto_score), e.timestamp))

    def add(self, entry: LeaderboardEntry, now: int) -> None:
        self.log.append(entry)
        self.refresh(now)

    def record(self, results: Iterable[Dict[str, Any]], now: int) -> List[LeaderboardEntry]:
        """Append session results (as produced by ``RaceSession.results``)."""
        added = [LeaderboardEntry.from_result(r, now) for r in results]
        self.log.extend(added)
        self.refresh(now)
        return added

    def refresh(self, now: int) -> None:
        self.top = self._ranked(self.log)[:self.size]
        cutoff = now - self.window_days * DAY_MS
        self.window = self._ranked(e for e in self.log if e.timestamp >= cutoff)[:self.window_size]

    def to_snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            'todayLeaderboard': [e.to_dict() for e in self.top],
            'weeklyLeaderboard': [e.to_dict() for e in self.window],
        }

    def load_snapshot(self, snapshot: Dict[str, Any], now: int) -> None:
        seen = set()
        log: List[LeaderboardEntry] = []
        for key in ('todayLeaderboard', 'weeklyLeaderboard'):
            for raw in snapshot.get(key) or []:
                entry = LeaderboardEntry.from_dict(raw)
                if entry.key in seen:
                    continue
                seen.add(entry.key)
                log.append(entry)
        self.log = log
        self.refresh(now)


class LeaderboardStore:
    """Durable local storage for the two leaderboard views."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored snapshot, or None when nothing was saved yet.

        Raises ValueError for a malformed file.
        """
        if not os.path.exists(self.path):
            return None
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Leaderboard snapshot at {self.path} is not an object")
        return data

    def save(self, snapshot: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f, indent=2)
        os.replace(tmp_path, self.path)
