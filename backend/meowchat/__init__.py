from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One engine per app; timers are advanced by hand under TESTING
    from meowchat.services.chat import ChatService
    from meowchat.services.chat.clock import ManualScheduler, SocketIOScheduler

    namespace = flask_app.config.get('SOCKETIO_NAMESPACE', '/')
    if flask_app.config.get('TESTING'):
        scheduler = ManualScheduler()
    else:
        scheduler = SocketIOScheduler(socketio)

    def notify(handle, event, payload):
        # socketio.emit works both inside handlers and from background tasks
        socketio.emit(event, payload, to=handle, namespace=namespace)

    flask_app.extensions['chat_service'] = ChatService.from_config(flask_app.config, scheduler, notify)

    from meowchat.main import main
    flask_app.register_blueprint(main)

    from meowchat.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace)

    @click.command('list-models')
    def list_models_command():
        """Lists Gemini models that support text generation."""
        import google.generativeai as genai

        api_key = flask_app.config.get('GEMINI_API_KEY')
        if not api_key:
            raise click.ClickException('GEMINI_API_KEY is not set')
        genai.configure(api_key=api_key)
        click.echo('Available Gemini models:')
        for model in genai.list_models():
            if 'generateContent' in model.supported_generation_methods:
                click.echo(model.name)

    flask_app.cli.add_command(list_models_command)

    flask_app.logger.info(f"[startup] namespace={namespace} testing={bool(flask_app.config.get('TESTING'))}")
    return flask_app
