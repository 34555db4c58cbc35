from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
import json
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from scoreboard.main import main
    flask_app.register_blueprint(main, url_prefix='/api')

    from scoreboard.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    from scoreboard.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Leaderboards come back from the local snapshot on every start
    from scoreboard.services.timing.rounds import init_leaderboard
    init_leaderboard(flask_app)

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('clock')
    @click.argument('room_code')
    @click.option('--ticks', type=int, default=0, help='Stop after this many redraws (0 runs until the round stops).')
    def clock_command(room_code, ticks):
        """Show a room's synced clock, polling the timer record."""
        from scoreboard.cli import run_clock
        from scoreboard.errors import ScoreboardError
        with flask_app.app_context():
            try:
                run_clock(room_code, ticks=ticks, echo=click.echo)
            except ScoreboardError as exc:
                raise click.ClickException(exc.message)

    @click.command('export-results')
    @click.argument('room_code')
    @click.option('--output', '-o', type=click.Path(dir_okay=False), default=None,
                  help='Defaults to scoreboard-results-<date>.json in the current directory.')
    def export_results_command(room_code, output):
        """Writes the session results and leaderboards to a JSON file."""
        from scoreboard.services.timing.rounds import export_filename, find_session, session_export
        from scoreboard.errors import ScoreboardError
        with flask_app.app_context():
            try:
                payload = session_export(find_session(room_code))
            except ScoreboardError as exc:
                raise click.ClickException(exc.message)
        path = output or export_filename()
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        click.echo(f'Exported {len(payload["sessionResults"])} results to {path}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(clock_command)
    flask_app.cli.add_command(export_results_command)

    return flask_app
