import time
from typing import Set, Tuple

from scoreboard import socketio
from scoreboard.models import RaceSession
from . import timer as timer_mod
from .rounds import expire_round


_scheduled_round_keys: Set[Tuple[int, int]] = set()


def schedule_round_expiry(app, session_id: int) -> None:
    """Schedule the auto-stop for the session's running round.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - No-ops for open-ended rounds (no duration)
    - Ensures a single worker per (session_id, start_time)
    - The worker sleeps until the wall-clock deadline, then expires the round
      only if that same round is still recording
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        session = RaceSession.query.filter_by(id=session_id).first()
        if not session or session.status != 'recording' or session.duration_ms is None:
            return

        start_time = int(session.start_time)
        key = (session.id, start_time)
        if key in _scheduled_round_keys:
            app.logger.info(f"[timer-skip] room={session.room_code} start={start_time} already scheduled")
            return
        _scheduled_round_keys.add(key)

        deadline = start_time + session.duration_ms
        app.logger.info(
            f"[timer-set] room={session.room_code} start={start_time} duration_ms={session.duration_ms} deadline={deadline}"
        )

    def _worker(sid: int, expected_start: int, deadline_ms: int):
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        # Sleep against the wall clock so a late wake-up never shifts the deadline
        while True:
            left_ms = deadline_ms - timer_mod.now_ms()
            if left_ms <= 0:
                break
            step = left_ms / 1000.0
            if hb > 0:
                step = min(hb, step)
            time.sleep(step)
            if hb > 0:
                app.logger.info(
                    f"[timer-heartbeat] session={sid} remaining={max(0, deadline_ms - timer_mod.now_ms())}ms"
                )

        with app.app_context():
            _scheduled_round_keys.discard((sid, expected_start))
            s = RaceSession.query.filter_by(id=sid).with_for_update().first()
            if not s:
                return
            app.logger.info(
                f"[timer-fire] room={s.room_code} expected_start={expected_start} actual_start={s.start_time} status={s.status}"
            )
            if s.status != 'recording' or s.start_time != expected_start:
                app.logger.info(f"[timer-abort] room={s.room_code} round no longer running")
                return
            expire_round(s, now=deadline_ms)

    if app.config.get('TESTING'):
        _worker(session_id, start_time, deadline)
    else:
        socketio.start_background_task(_worker, session_id, start_time, deadline)
