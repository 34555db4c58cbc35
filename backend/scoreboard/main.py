from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from scoreboard import db
from scoreboard.services.timing.rounds import leaderboard_snapshot

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the scoreboard server!'})

@main.route('/status')
def status():
    """Connectivity probe; clients show 'Offline Mode' when the store is down."""
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('[offline] database probe failed')
        return jsonify({'status': 'offline', 'text': 'Offline Mode'}), 503
    return jsonify({'status': 'online', 'text': 'Connected'})

@main.route('/leaderboard')
def leaderboard():
    return jsonify(leaderboard_snapshot())
