import pytest

from scoreboard.services.timing import timer as t


def test_remaining_never_negative():
    start = 1000
    for duration in (0, 1, 90000, 120000):
        for extra in (0, 1, 5000, 10 ** 9):
            assert t.remaining(start + duration + extra, start, duration) == 0


def test_remaining_counts_down_from_duration():
    assert t.remaining(1000, 1000, 90000) == 90000
    assert t.remaining(31000, 1000, 90000) == 60000


def test_countdown_format():
    assert t.format_countdown(0) == "000.00"
    assert t.format_countdown(90000) == "090.00"
    assert t.format_countdown(120000) == "120.00"
    assert t.format_countdown(5678) == "005.67"


def test_elapsed_format():
    assert t.format_elapsed(65432) == "01:05.43"
    assert t.format_elapsed(0) == "00:00.00"


def test_format_display_rejects_unknown_format():
    with pytest.raises(ValueError):
        t.format_display(1000, 'hh:mm')


def test_color_bands():
    assert t.color_band(90000) == t.BAND_NORMAL
    assert t.color_band(30000) == t.BAND_WARNING
    assert t.color_band(0) == t.BAND_EXPIRED
    assert t.color_band(None) == t.BAND_NORMAL


def test_timer_display_is_derived_from_wall_clock():
    timer = t.CountdownTimer(90000, clock=lambda: 0)
    assert timer.display(t.FORMAT_COUNTDOWN) == "090.00"
    timer.start(10000)
    # Skipped ticks make no difference: the value comes from the timestamp
    assert timer.display(t.FORMAT_COUNTDOWN, now=10000 + 12340) == "077.66"
    assert timer.display(t.FORMAT_ELAPSED, now=10000 + 12340) == "00:12.34"


def test_expiry_fires_exactly_once():
    fired = []
    timer = t.CountdownTimer(1000, clock=lambda: 0)
    timer.on_expire(fired.append)
    timer.start(0)
    assert timer.tick(500) == 500
    assert fired == []
    assert timer.tick(1000) == 0
    assert timer.tick(1100) == 0
    assert timer.tick(5000) == 0
    assert fired == [timer]
    assert timer.state == t.STOPPED
    assert timer.expired
    assert timer.display(t.FORMAT_COUNTDOWN, now=9999) == "000.00"


def test_stop_freezes_display():
    timer = t.CountdownTimer(120000, clock=lambda: 0)
    timer.start(0)
    timer.stop(now=20000)
    assert timer.remaining(now=50000) == 100000
    assert timer.band(now=50000) == t.BAND_NORMAL
    assert not timer.expired


def test_reset_shows_full_duration():
    timer = t.CountdownTimer(120000, clock=lambda: 0)
    timer.start(0)
    timer.tick(120000)
    timer.reset()
    assert timer.state == t.IDLE
    assert timer.display(t.FORMAT_COUNTDOWN) == "120.00"


def test_open_ended_timer_never_expires():
    timer = t.CountdownTimer(None, clock=lambda: 0)
    timer.start(0)
    assert timer.tick(10 ** 7) is None
    assert timer.state == t.RUNNING
    # No duration to count down from, so it shows elapsed time
    assert timer.display(t.FORMAT_COUNTDOWN, now=65432) == "01:05.43"
