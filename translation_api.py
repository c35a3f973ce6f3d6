"""
Flask web server for the chapter translation workbench with WebSocket support
"""
import sys
import logging
from datetime import datetime

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

# Reduce verbosity of werkzeug (Flask HTTP server logs)
logging.getLogger('werkzeug').setLevel(logging.WARNING)

from src.config import (
    DEFAULT_MODEL,
    PORT,
    HOST,
    DEBUG_MODE,
    STATE_DB_PATH,
    PERSIST_DEBOUNCE_MS,
    USAGE_SYNC_ENABLED,
    USAGE_SYNC_URL,
)
from src.api.routes import configure_routes
from src.api.websocket import configure_websocket_handlers
from src.api.handlers import WorkbenchRuntime
from src.persistence import Database, PersistedState
from src.utils.unified_logger import setup_web_logger


def create_app(runtime=None, state=None):
    """
    Build the Flask app, its SocketIO server and the translation runtime.

    Args:
        runtime: Existing WorkbenchRuntime (tests inject one); built from
            ``state`` when omitted
        state: PersistedState used when the runtime is built here

    Returns:
        (app, socketio, runtime)
    """
    app = Flask(__name__)
    CORS(app)
    socketio = SocketIO(app, cors_allowed_origins="*")

    if runtime is None:
        if state is None:
            state = PersistedState(Database(STATE_DB_PATH), PERSIST_DEBOUNCE_MS)
        runtime = WorkbenchRuntime(state, socketio=socketio)
    else:
        runtime.socketio = socketio

    configure_routes(app, runtime)
    configure_websocket_handlers(socketio, runtime)
    return app, socketio, runtime


def validate_configuration(runtime, logger):
    """Warn about providers that cannot be used yet; fail on unusable settings."""
    if not PORT or not isinstance(PORT, int):
        raise ValueError("PORT must be a valid integer")
    if not DEFAULT_MODEL:
        raise ValueError("DEFAULT_MODEL must be configured")

    for status in runtime.key_status():
        if not status['configured']:
            logger.warning(f"Provider '{status['provider']}' has no usable configuration yet; "
                           f"add keys in the settings or in .env")


if __name__ == '__main__':
    logger = setup_web_logger()
    app, socketio, runtime = create_app()

    try:
        validate_configuration(runtime, logger)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Create a .env file from .env.example and restart the application")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info(f"CHAPTER TRANSLATION WORKBENCH (Version {datetime.now().strftime('%Y%m%d-%H%M')})")
    logger.info("=" * 60)
    logger.info(f"   - Default model: {DEFAULT_MODEL}")
    logger.info(f"   - API: http://{HOST}:{PORT}/api/")
    logger.info(f"   - Health Check: http://{HOST}:{PORT}/api/health")
    logger.info(f"   - State database: {STATE_DB_PATH}")
    logger.info(f"   - Shared usage sync: {USAGE_SYNC_URL if USAGE_SYNC_ENABLED else 'disabled'}")

    if HOST == '0.0.0.0':
        logger.warning("Server is binding to 0.0.0.0 (all network interfaces)")

    runtime.start()
    try:
        socketio.run(app, debug=DEBUG_MODE, host=HOST, port=PORT,
                     use_reloader=False, allow_unsafe_werkzeug=True)
    finally:
        runtime.shutdown()
