"""Terminal clock display for a room, driven by the polling fallback."""

import time

from flask import current_app

from scoreboard import db
from scoreboard.models import RaceSession
from scoreboard.services.timing import timer as timer_mod
from scoreboard.services.timing.rounds import clock_format, find_session
from scoreboard.services.timing.sync import SyncedClock


def run_clock(room_code, ticks=0, echo=print, sleep=time.sleep):
    """Redraw the room clock every DISPLAY_REFRESH_MS, re-polling every POLL_INTERVAL_MS.

    With ``ticks`` 0 the loop waits through an idle clock and ends once the round stops.
    """
    session = find_session(room_code)
    session_id, code = session.id, session.room_code
    fmt = clock_format(session)
    refresh_ms = int(current_app.config.get('DISPLAY_REFRESH_MS', 100))
    poll_ms = int(current_app.config.get('POLL_INTERVAL_MS', 2000))
    warning_ms = int(current_app.config.get('WARNING_THRESHOLD_SEC', 30)) * 1000

    timer = timer_mod.CountdownTimer(session.duration_ms)
    timer.on_expire(lambda t: echo(f"{code} time is up"))
    clock = SyncedClock(timer)

    def fetch():
        # Drop cached rows so each poll sees what other writers committed
        db.session.expire_all()
        s = RaceSession.query.filter_by(id=session_id).first()
        if not s or s.timer is None:
            return None
        return s.timer.to_record()

    clock.poll(fetch)
    last_poll = timer_mod.now_ms()
    drawn = 0
    while True:
        now = timer_mod.now_ms()
        if now - last_poll >= poll_ms:
            if clock.poll(fetch):
                current_app.logger.info(f"[clock] room={code} synced state={timer.state}")
            last_poll = now
        timer.tick(now)
        echo(f"{code} {timer.display(fmt, now)} [{timer.band(warning_ms, now)}] {timer.state}")
        drawn += 1
        if ticks and drawn >= ticks:
            return drawn
        if not ticks and timer.state == timer_mod.STOPPED:
            return drawn
        sleep(refresh_ms / 1000.0)
