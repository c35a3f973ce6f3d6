"""
Flask routes orchestrator for the translation API

This module serves as a lightweight coordinator that registers
all route blueprints. The actual route implementations are organized
into separate modules:

- blueprints/config_routes.py: Health checks, models, API keys, notifications
- blueprints/translation_routes.py: Chapters and translation job management
- blueprints/glossary_routes.py: Terminology glossary and codex
"""
from flask import jsonify

from src.utils.unified_logger import get_logger
from .blueprints import (
    create_config_blueprint,
    create_translation_blueprint,
    create_glossary_blueprint
)


def configure_routes(app, runtime):
    """
    Configure Flask routes by registering all blueprints

    Args:
        app: Flask application instance
        runtime: WorkbenchRuntime hosting the scheduler and stores
    """
    app.register_blueprint(create_config_blueprint(runtime))
    app.register_blueprint(create_translation_blueprint(runtime))
    app.register_blueprint(create_glossary_blueprint(runtime))

    _register_error_handlers(app)


def _register_error_handlers(app):
    """Register global error handlers"""

    @app.errorhandler(404)
    def route_not_found(error):
        return jsonify({"error": "API Endpoint not found"}), 404

    @app.errorhandler(500)
    def internal_server_error(error):
        import traceback
        get_logger().error(f"INTERNAL SERVER ERROR: {error}\n{traceback.format_exc()}")
        return jsonify({"error": "Internal server error", "details": str(error)}), 500
