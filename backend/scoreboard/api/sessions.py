from flask import Blueprint, jsonify, request, current_app
from scoreboard.errors import ScoreboardError
from scoreboard.services.timing import rounds
from scoreboard.services.timing.scheduler import schedule_round_expiry
from scoreboard.services.timing.sync import SyncRecord
import json
import math


sessions = Blueprint('sessions', __name__)


@sessions.errorhandler(ScoreboardError)
def handle_scoreboard_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _display_config(session):
    cfg = current_app.config
    return {
        'clock_format': rounds.clock_format(session),
        'display_refresh_ms': int(cfg.get('DISPLAY_REFRESH_MS', 100)),
        'poll_interval_ms': int(cfg.get('POLL_INTERVAL_MS', 2000)),
        'warning_threshold_sec': int(cfg.get('WARNING_THRESHOLD_SEC', 30)),
        'field_count': int(cfg.get('FIELD_COUNT', 5)),
    }


@sessions.route('/create', methods=['POST'])
def create_session():
    data = request.get_json(silent=True) or {}
    duration = data.get('duration_sec')
    try:
        duration = float(duration) if duration is not None else None
    except (TypeError, ValueError):
        return jsonify({'error': 'duration_sec must be a number'}), 400
    if duration is not None and not math.isfinite(duration):
        return jsonify({'error': 'duration_sec must be a number'}), 400
    session = rounds.create_session(duration_sec=duration)
    return jsonify({
        'message': 'New session created!',
        'room_code': session.room_code,
    }), 201


@sessions.route('/<string:room_code>/state', methods=['GET'])
def get_session_state(room_code):
    session = rounds.find_session(room_code)
    payload = session.to_dict()
    payload['display'] = _display_config(session)
    payload['timer'] = rounds.timer_view(session)
    return jsonify(payload)


@sessions.route('/<string:room_code>/record', methods=['GET'])
def get_session_record(room_code):
    """Polling fallback: 304 when nothing is newer than ``since``."""
    session = rounds.find_session(room_code)
    since = request.args.get('since', type=int)
    if since is not None and session.last_updated <= since:
        return '', 304
    return jsonify(session.to_record())


@sessions.route('/<string:room_code>/checkin', methods=['POST'])
def check_in(room_code):
    data = request.get_json(silent=True) or {}
    session = rounds.find_session(room_code)
    player = rounds.check_in_player(session, data.get('name'), data.get('field_number'), data.get('bonus_score'))
    return jsonify(player.to_dict()), 201


@sessions.route('/<string:room_code>/bonus', methods=['POST'])
def update_bonus(room_code):
    data = request.get_json(silent=True) or {}
    session = rounds.find_session(room_code)
    rounds.set_bonus(session, data.get('field_number'), data.get('bonus_score'))
    return jsonify(session.to_dict())


@sessions.route('/<string:room_code>/start', methods=['POST'])
def start_round(room_code):
    session = rounds.find_session(room_code)
    rounds.start_round(session)
    schedule_round_expiry(current_app._get_current_object(), session.id)
    return jsonify(session.to_dict())


@sessions.route('/<string:room_code>/players/<int:player_id>/stop', methods=['POST'])
def stop_player(room_code, player_id):
    session = rounds.find_session(room_code)
    player = rounds.stop_player(session, player_id)
    return jsonify({'player': player.to_dict(), 'session': session.to_dict()})


@sessions.route('/<string:room_code>/results', methods=['GET'])
def get_results(room_code):
    session = rounds.find_session(room_code)
    return jsonify({
        'room_code': session.room_code,
        'scoring_policy': session.scoring_policy,
        'status': session.status,
        'sessionResults': session.results(),
    })


@sessions.route('/<string:room_code>/publish', methods=['POST'])
def publish(room_code):
    session = rounds.find_session(room_code)
    return jsonify(rounds.publish_results(session))


@sessions.route('/<string:room_code>/reset', methods=['POST'])
def reset(room_code):
    session = rounds.find_session(room_code)
    rounds.reset_session(session)
    return jsonify(session.to_dict())


@sessions.route('/<string:room_code>/timer', methods=['GET'])
def get_timer(room_code):
    session = rounds.find_session(room_code)
    return jsonify(rounds.timer_view(session))


@sessions.route('/<string:room_code>/timer', methods=['POST'])
def publish_timer(room_code):
    data = request.get_json(silent=True) or {}
    try:
        record = SyncRecord.from_dict(data)
    except (TypeError, ValueError) as exc:
        return jsonify({'error': str(exc)}), 400
    session = rounds.find_session(room_code)
    rounds.apply_timer_record(session, record)
    return jsonify(rounds.timer_view(session))


@sessions.route('/<string:room_code>/export', methods=['GET'])
def export_results(room_code):
    session = rounds.find_session(room_code)
    payload = rounds.session_export(session)
    response = current_app.response_class(json.dumps(payload, indent=2), mimetype='application/json')
    response.headers['Content-Disposition'] = f'attachment; filename={rounds.export_filename()}'
    return response
