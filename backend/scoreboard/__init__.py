from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
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

    from scoreboard.main import main
    flask_app.register_blueprint(main)

    from scoreboard.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api/matches')

    # Live sessions are per process; a fresh app starts with none
    from scoreboard.services.scoring.registry import sessions
    sessions.reset()

    from scoreboard.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from scoreboard.models import Match
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            demo = Match(
                title='Demo match',
                win_score=flask_app.config['DEFAULT_WIN_SCORE'],
                overtime_margin=flask_app.config['DEFAULT_OVERTIME_MARGIN'],
                max_rounds=flask_app.config['DEFAULT_MAX_ROUNDS'],
            )
            db.session.add(demo)
            db.session.commit()
            print(f'Database has been reset and seeded! Demo match id={demo.id}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
