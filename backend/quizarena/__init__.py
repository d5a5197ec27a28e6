from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from config import Config
from quizarena.services.rooms.manager import RoomManager

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)
# Process-wide registry of live rooms; not shared across server processes
room_manager = RoomManager()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from quizarena.services.rooms.lookup import load_quiz
    from quizarena.services.rooms.scheduler import BackgroundScheduler
    from quizarena.socketio_events import SocketIOBroadcaster, register_socketio_handlers

    room_manager.init_app(
        flask_app,
        broadcaster=SocketIOBroadcaster(socketio),
        scheduler=BackgroundScheduler(socketio, heartbeat_sec=flask_app.config.get('TIMER_HEARTBEAT_SEC', 0)),
        quiz_lookup=load_quiz,
    )
    register_socketio_handlers()

    from quizarena.main import main
    flask_app.register_blueprint(main)

    from quizarena.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    from quizarena.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from quizarena.cli import register_cli
    register_cli(flask_app)

    return flask_app
