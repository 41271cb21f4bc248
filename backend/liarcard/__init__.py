from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from liarcard.words import load_catalog
    flask_app.extensions['word_catalog'] = load_catalog(flask_app)

    # Import and register blueprints here
    from liarcard.main import main
    flask_app.register_blueprint(main)

    from liarcard.api.games import games
    # Mount game routes under /api to match frontend API client
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from liarcard.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database."""
        import liarcard.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('purge-abandoned')
    def purge_abandoned_command():
        """Deletes games left without an admin player."""
        from liarcard.services.games.sessions import purge_abandoned_games
        with flask_app.app_context():
            removed = purge_abandoned_games()
            print(f'Removed {removed} abandoned game(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_abandoned_command)

    return flask_app
