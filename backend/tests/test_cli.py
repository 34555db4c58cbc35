import json

from scoreboard.cli import run_clock


def test_clock_shows_idle_room(cli_runner, make_session):
    code, _ = make_session(['Alice'])
    result = cli_runner.invoke(args=['clock', code, '--ticks', '1'])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == f'{code} 120.00 [normal] idle'


def test_clock_follows_running_round(cli_runner, client, clock, make_session):
    code, _ = make_session(['Alice'])
    client.post(f'/api/sessions/{code}/start')
    clock.advance(30000)
    result = cli_runner.invoke(args=['clock', code.lower(), '--ticks', '1'])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == f'{code} 090.00 [normal] running'


def test_clock_unknown_room(cli_runner):
    result = cli_runner.invoke(args=['clock', 'NOPE00', '--ticks', '1'])
    assert result.exit_code == 1
    assert 'Session NOPE00 not found' in result.output


def test_run_clock_until_time_is_up(flask_app, client, clock, make_session):
    code, _ = make_session(['Alice'])
    client.post(f'/api/sessions/{code}/start')
    lines = []

    drawn = run_clock(code, echo=lines.append, sleep=lambda s: clock.advance(int(round(s * 1000))))

    assert drawn == 1201
    assert lines.count(f'{code} time is up') == 1
    assert lines[-2] == f'{code} time is up'
    assert lines[-1] == f'{code} 000.00 [expired] stopped'
    assert f'{code} 030.00 [warning] running' in lines


def test_export_results_command(cli_runner, client, clock, make_session, tmp_path):
    code, (alice, bob) = make_session(['Alice', 'Bob'])
    client.post(f'/api/sessions/{code}/start')
    clock.advance(40000)
    client.post(f"/api/sessions/{code}/players/{alice['id']}/stop")
    client.post(f"/api/sessions/{code}/players/{bob['id']}/stop")

    out = tmp_path / 'results.json'
    result = cli_runner.invoke(args=['export-results', code, '-o', str(out)])
    assert result.exit_code == 0, result.output
    assert f'Exported 2 results to {out}' in result.output
    data = json.loads(out.read_text())
    assert [r['name'] for r in data['sessionResults']] == ['Bob', 'Alice']
    assert data['todayLeaderboard'] == []


def test_export_results_unknown_room(cli_runner, tmp_path):
    out = tmp_path / 'results.json'
    result = cli_runner.invoke(args=['export-results', 'NOPE00', '-o', str(out)])
    assert result.exit_code == 1
    assert 'Session NOPE00 not found' in result.output
    assert not out.exists()
