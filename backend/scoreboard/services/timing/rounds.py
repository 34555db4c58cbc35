"""Round lifecycle over the database models.

lobby -> recording -> closed, with ``reset`` returning a session to an empty
lobby. Every mutation bumps the session's ``last_updated`` and broadcasts a
``state_update`` to the session room.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from scoreboard import db, socketio
from scoreboard.errors import (
    AlreadyFinished,
    DuplicatePlayerName,
    FieldOccupied,
    InvalidState,
    PlayerNotFound,
    SessionNotFound,
    StaleUpdate,
    StoreUnavailable,
)
from scoreboard.models import Player, RaceSession, TimerSync
from . import timer as timer_mod
from .leaderboard import Leaderboard, LeaderboardStore
from .scoring import get_policy
from .sync import SyncRecord, is_newer, next_logical_timestamp

LEADERBOARD_EXTENSION = 'scoreboard.leaderboard'


def room_for(room_code: str) -> str:
    return f"room:{room_code}"


def _commit(operation: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(f"[offline] commit failed during {operation}")
        raise StoreUnavailable(operation)


def broadcast_state(session: RaceSession) -> None:
    socketio.emit('state_update', {'room_code': session.room_code, 'lastUpdated': session.last_updated},
                  to=room_for(session.room_code), namespace='/ws')


def broadcast_timer(session: RaceSession) -> None:
    if session.timer is None:
        return
    socketio.emit('timer_sync', session.timer.to_dict(), to=room_for(session.room_code), namespace='/ws')


def default_bonus_scores() -> List[int]:
    cfg = current_app.config
    field_count = int(cfg.get('FIELD_COUNT', 5))
    raw = str(cfg.get('DEFAULT_BONUS_SCORES') or '')
    values = [int(v) for v in raw.split(',') if v.strip()]
    values = values[:field_count]
    return values + [0] * (field_count - len(values))


def clock_format(session: RaceSession) -> str:
    return current_app.config.get('CLOCK_FORMAT') or session.policy.clock_format


# ---- Leaderboard wiring ----

def init_leaderboard(app) -> Leaderboard:
    """Build the app's leaderboard and reload its snapshot from disk."""
    cfg = app.config
    board = Leaderboard(
        get_policy(cfg.get('SCORING_POLICY', 'countdown')),
        size=int(cfg.get('LEADERBOARD_SIZE', 10)),
        window_size=int(cfg.get('WEEKLY_LEADERBOARD_SIZE', 10)),
        window_days=int(cfg.get('LEADERBOARD_WINDOW_DAYS', 7)),
    )
    store = LeaderboardStore(cfg['LEADERBOARD_SNAPSHOT_PATH'])
    try:
        snapshot = store.load()
        if snapshot:
            board.load_snapshot(snapshot, timer_mod.now_ms())
            app.logger.info(f"[leaderboard] loaded {len(board.log)} entries from {store.path}")
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        app.logger.warning(f"[leaderboard] snapshot at {store.path} unreadable, starting empty: {exc}")
        board.log = []
        board.refresh(timer_mod.now_ms())
    app.extensions[LEADERBOARD_EXTENSION] = (board, store)
    return board


def get_leaderboard() -> Leaderboard:
    return current_app.extensions[LEADERBOARD_EXTENSION][0]


def _get_store() -> LeaderboardStore:
    return current_app.extensions[LEADERBOARD_EXTENSION][1]


def leaderboard_snapshot(now: Optional[int] = None) -> Dict[str, Any]:
    board = get_leaderboard()
    board.refresh(timer_mod.now_ms() if now is None else now)
    return board.to_snapshot()


# ---- Session lifecycle ----

def lock_session(session_id: int) -> RaceSession:
    """Re-read a session and its players under a row lock.

    Stops and the expiry worker both go through here, so whichever commits
    second sees the other's results.
    """
    db.session.expire_all()
    return RaceSession.query.filter_by(id=session_id).with_for_update().one()


def find_session(room_code: str) -> RaceSession:
    session = RaceSession.query.filter_by(room_code=(room_code or '').upper()).first()
    if not session:
        raise SessionNotFound((room_code or '').upper())
    return session


def create_session(duration_sec: Optional[float] = None) -> RaceSession:
    cfg = current_app.config
    policy = get_policy(cfg.get('SCORING_POLICY', 'countdown'))
    if duration_sec is None and policy.name == 'countdown':
        duration_sec = int(cfg.get('ROUND_DURATION_SEC', 120))
    duration_ms = None
    if duration_sec is not None:
        if not math.isfinite(float(duration_sec)):
            raise InvalidState('Round duration must be a finite number of seconds')
        duration_ms = int(float(duration_sec) * 1000)
        if duration_ms <= 0:
            raise InvalidState('Round duration must be positive')

    now = timer_mod.now_ms()
    session = RaceSession(scoring_policy=policy.name, duration_ms=duration_ms)
    session.set_bonus_scores(default_bonus_scores())
    session.timer = TimerSync(timer_state=timer_mod.STOPPED, start_time=None, updated_at=now)
    session.touch(now)
    db.session.add(session)
    _commit('create session')
    current_app.logger.info(
        f"[session-create] room={session.room_code} policy={policy.name} duration_ms={duration_ms}"
    )
    return session


def check_in_player(session: RaceSession, name: str, field_number: Any, bonus_score: Any = None) -> Player:
    if session.status != 'lobby':
        raise InvalidState('Check-in is closed once recording has started', 403)
    name = (name or '').strip()
    if not name:
        raise InvalidState('Player name is required')
    if len(name) > 64:
        raise InvalidState('Player name is too long')
    try:
        field_number = int(field_number)
    except (TypeError, ValueError):
        raise InvalidState('Field number is required')
    field_count = int(current_app.config.get('FIELD_COUNT', 5))
    if not 1 <= field_number <= field_count:
        raise InvalidState(f"Field number must be between 1 and {field_count}")

    if any(p.player_name.lower() == name.lower() for p in session.players):
        raise DuplicatePlayerName(name)
    if any(p.field_number == field_number for p in session.players):
        raise FieldOccupied(field_number)

    bonuses = session.get_bonus_scores()
    if bonus_score is None:
        bonus_score = bonuses[field_number - 1] if field_number <= len(bonuses) else 0
    bonus_score = _validate_bonus(bonus_score)

    now = timer_mod.now_ms()
    player = Player(
        player_name=name,
        field_number=field_number,
        checkin_time=now,
        bonus_score=bonus_score,
    )
    session.players.append(player)
    session.touch(now)
    _commit('check-in')
    current_app.logger.info(f"[checkin] room={session.room_code} field={field_number} player={name!r} bonus={bonus_score}")
    broadcast_state(session)
    return player


def _validate_bonus(value: Any) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidState('Bonus score must be a whole number of seconds')
    if value < 0:
        raise InvalidState('Bonus score cannot be negative')
    return value


def set_bonus(session: RaceSession, field_number: Any, bonus_score: Any) -> RaceSession:
    if session.status != 'lobby':
        raise InvalidState('Bonus scores are fixed once recording has started')
    try:
        field_number = int(field_number)
    except (TypeError, ValueError):
        raise InvalidState('Field number is required')
    bonuses = session.get_bonus_scores()
    if not 1 <= field_number <= len(bonuses):
        raise InvalidState(f"Field number must be between 1 and {len(bonuses)}")
    bonus_score = _validate_bonus(bonus_score)

    bonuses[field_number - 1] = bonus_score
    session.set_bonus_scores(bonuses)
    for p in session.players:
        if p.field_number == field_number:
            p.bonus_score = bonus_score
    session.touch(timer_mod.now_ms())
    _commit('bonus update')
    broadcast_state(session)
    return session


def _publish_timer(session: RaceSession, state: str, start_time: Optional[int], now: int) -> None:
    if session.timer is None:
        session.timer = TimerSync()
    held = session.timer.updated_at or None
    record = SyncRecord(timer_state=state, start_time=start_time, updated_at=next_logical_timestamp(now, held))
    session.timer.apply(record)


def start_round(session: RaceSession) -> RaceSession:
    if session.status == 'recording':
        # Idempotent start
        return session
    if session.status != 'lobby':
        raise InvalidState('Round already finished; reset the session to run again')
    if not session.players:
        raise InvalidState('Please check in players first!')

    now = timer_mod.now_ms()
    session.status = 'recording'
    session.start_time = now
    _publish_timer(session, timer_mod.RUNNING, now, now)
    session.touch(now)
    _commit('round start')
    current_app.logger.info(
        f"[round-start] room={session.room_code} players={len(session.players)} start={now} duration_ms={session.duration_ms}"
    )
    broadcast_state(session)
    broadcast_timer(session)
    return session


def _round_expired(session: RaceSession, now: int) -> bool:
    if session.duration_ms is None or session.start_time is None:
        return False
    return timer_mod.remaining(now, session.start_time, session.duration_ms) <= 0


def _close_round(session: RaceSession, now: int) -> None:
    session.status = 'closed'
    _publish_timer(session, timer_mod.STOPPED, session.start_time, now)
    current_app.logger.info(f"[round-closed] room={session.room_code}")


def stop_player(session: RaceSession, player_id: Any) -> Player:
    session = lock_session(session.id)
    if session.status == 'lobby':
        raise InvalidState('Recording has not started')
    player = next((p for p in session.players if str(p.id) == str(player_id)), None)
    if player is None:
        raise PlayerNotFound(player_id)
    if player.bruto_score is not None:
        raise AlreadyFinished(player.player_name)

    now = timer_mod.now_ms()
    if _round_expired(session, now):
        # Time ran out before this stop arrived; the expiry auto-stop decides the score.
        expire_round(session, now)
        return player

    finished = session.policy.score(now, session.start_time, session.duration_ms, player.bonus_score)
    player.bruto_score = finished.bruto_score
    player.netto_score = finished.netto_score
    player.finished_at = now
    current_app.logger.info(
        f"[stop] room={session.room_code} field={player.field_number} bruto={finished.bruto_score} netto={finished.netto_score}"
    )
    if all(p.bruto_score is not None for p in session.players):
        _close_round(session, now)
    session.touch(now)
    _commit('stop player')
    broadcast_state(session)
    if session.status == 'closed':
        broadcast_timer(session)
    return player


def expire_round(session: RaceSession, now: Optional[int] = None) -> List[Player]:
    """Auto-stop every unfinished player at the round's deadline.

    No-op unless the session is recording. Returns the players stopped.
    """
    session = lock_session(session.id)
    if session.status != 'recording':
        return []
    now = timer_mod.now_ms() if now is None else now
    deadline = session.start_time + session.duration_ms if session.duration_ms is not None else now
    stopped = []
    for p in session.players:
        if p.bruto_score is not None:
            continue
        finished = session.policy.score(deadline, session.start_time, session.duration_ms, p.bonus_score)
        p.bruto_score = finished.bruto_score
        p.netto_score = finished.netto_score
        p.finished_at = deadline
        p.auto_stopped = True
        stopped.append(p)
    _close_round(session, now)
    session.touch(now)
    _commit('round expiry')
    current_app.logger.info(f"[expire] room={session.room_code} auto_stopped={len(stopped)}")
    broadcast_state(session)
    broadcast_timer(session)
    return stopped


def publish_results(session: RaceSession) -> Dict[str, Any]:
    """Push the closed round's results into the leaderboards and persist them."""
    if session.status != 'closed':
        raise InvalidState('All players must finish before updating the scoreboard')
    board = get_leaderboard()
    now = timer_mod.now_ms()
    if session.published:
        return {'added': 0, 'saved': True, **board.to_snapshot()}
    if session.scoring_policy != board.policy.name:
        raise InvalidState(
            f"Session scored with {session.scoring_policy!r} cannot join a {board.policy.name!r} leaderboard"
        )

    results = session.results()
    # The board only changes once the published flag is durable
    session.published = True
    session.touch(now)
    _commit('publish results')

    added = board.record(results, now)
    saved = True
    try:
        _get_store().save(board.to_snapshot())
    except OSError:
        saved = False
        current_app.logger.exception(f"[publish] room={session.room_code} leaderboard snapshot not saved")
    current_app.logger.info(f"[publish] room={session.room_code} added={len(added)} saved={saved}")
    broadcast_state(session)
    return {'added': len(added), 'saved': saved, **board.to_snapshot()}


def reset_session(session: RaceSession) -> RaceSession:
    now = timer_mod.now_ms()
    for p in list(session.players):
        session.players.remove(p)
    session.status = 'lobby'
    session.start_time = None
    session.published = False
    _publish_timer(session, timer_mod.STOPPED, None, now)
    session.touch(now)
    _commit('reset')
    current_app.logger.info(f"[reset] room={session.room_code}")
    broadcast_state(session)
    broadcast_timer(session)
    return session


# ---- Timer sync ----

def apply_timer_record(session: RaceSession, record: SyncRecord) -> TimerSync:
    """Apply an externally published timer record if it is newer than ours."""
    if session.timer is None:
        session.timer = TimerSync(updated_at=0)
    held = session.timer.updated_at
    if not is_newer(record.updated_at, held):
        current_app.logger.info(
            f"[sync-stale] room={session.room_code} incoming={record.updated_at} held={held}"
        )
        raise StaleUpdate(record.updated_at, held)
    session.timer.apply(record)
    session.touch(timer_mod.now_ms())
    _commit('timer sync')
    broadcast_timer(session)
    return session.timer


def timer_view(session: RaceSession, now: Optional[int] = None) -> Dict[str, Any]:
    now = timer_mod.now_ms() if now is None else now
    clock = timer_mod.CountdownTimer(session.duration_ms, clock=lambda: now)
    record = session.timer.to_record() if session.timer else None
    if record is not None and record.start_time is not None:
        clock.start(record.start_time)
        if record.timer_state == timer_mod.STOPPED:
            # A stopped clock freezes at the moment the round closed.
            clock.stop(_stopped_at(session, record, now))
    clock.tick(now)
    fmt = clock_format(session)
    warning_ms = int(current_app.config.get('WARNING_THRESHOLD_SEC', 30)) * 1000
    payload = record.to_dict() if record else {'timer_state': timer_mod.STOPPED, 'start_time': None, 'updated_at': 0}
    payload.update({
        'room_code': session.room_code,
        'remaining_ms': clock.remaining(now),
        'elapsed_ms': clock.elapsed(now),
        'display': clock.display(fmt, now),
        'format': fmt,
        'band': clock.band(warning_ms, now),
        'expired': clock.expired,
        'server_time': now,
    })
    return payload


def _stopped_at(session: RaceSession, record: SyncRecord, now: int) -> int:
    finishes = [p.finished_at for p in session.players if p.finished_at is not None]
    if finishes and session.start_time == record.start_time:
        return max(finishes)
    return now


# ---- Export ----

def session_export(session: RaceSession) -> Dict[str, Any]:
    snapshot = leaderboard_snapshot()
    return {
        'sessionResults': session.results(),
        'todayLeaderboard': snapshot['todayLeaderboard'],
        'weeklyLeaderboard': snapshot['weeklyLeaderboard'],
        'exportDate': datetime.now(timezone.utc).isoformat(),
    }


def export_filename(today: Optional[datetime] = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"scoreboard-results-{today.strftime('%Y-%m-%d')}.json"
