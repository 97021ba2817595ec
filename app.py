"""
Card Pipeline API - Flask Application Entry Point.

Uploads business card images, recognizes them in the background and turns
them into contacts.
"""

import atexit
import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS

from api.routes import api_bp
from cardscan.services import build_services
from config import get_config

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, services=None, config=None) -> Flask:
    """Application factory for creating Flask app.

    Args:
        config_name: Configuration name (development, production, testing)
        services: Prebuilt CardServices; built from configuration when omitted
        config: Config class to use instead of looking one up by name

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Load configuration
    config_class = config or get_config(config_name)
    config_class.init_app(app)

    # External clients are created once per process
    if services is None:
        services = build_services(config_class)
        atexit.register(services.shutdown)
    app.extensions["cardscan"] = services

    # Enable CORS
    CORS(app, resources={
        r"/api/*": {
            "origins": "*",
            "methods": ["GET", "POST", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-User-Id", "X-User-Role"]
        }
    })

    # Register blueprints
    app.register_blueprint(api_bp)

    @app.route("/")
    def index():
        """API information endpoint."""
        return jsonify({
            "name": "Card Pipeline API",
            "version": "1.0.0",
            "description": "Turn business card images into contacts",
            "endpoints": {
                "health": "/api/health",
                "status": "/api/status",
                "upload": "POST /api/cards/upload",
                "list_cards": "GET /api/cards",
                "get_card": "GET /api/cards/<id>",
                "delete_card": "DELETE /api/cards/<id>",
                "admin_delete_card": "DELETE /api/admin/cards/<id>",
                "admin_delete_user_cards": "DELETE /api/admin/users/<user_id>/cards",
                "activity_logs": "GET /api/admin/logs",
                "parse_text": "POST /api/parse-text"
            }
        })

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({
            "success": False,
            "error": "Not found"
        }), 404

    @app.errorhandler(413)
    def request_entity_too_large(error):
        """Handle file too large errors."""
        return jsonify({
            "success": False,
            "error": f"File too large. Maximum size: {config_class.MAX_CONTENT_LENGTH // (1024*1024)}MB"
        }), 413

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        code = getattr(error, "code", None)
        if isinstance(code, int) and code < 500:
            return jsonify({
                "success": False,
                "error": getattr(error, "description", str(error))
            }), code
        logger.error(f"Uncaught exception: {str(error)}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "An unexpected error occurred"
        }), 500

    logger.info(f"Application created with config: {config_class.__name__}")

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("CARD_API_DEBUG", "False").lower() == "true"

    logger.info(f"Starting server on port {port}, debug={debug}")

    # The reloader would start a second set of workers
    create_app().run(
        host="0.0.0.0",
        port=port,
        debug=debug,
        use_reloader=False
    )
