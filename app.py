import logging

from flask import Flask, jsonify, request
from flask_smorest import Api
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from config import Config
from db import db
from errors import AppError
# Import models so SQLAlchemy knows about all tables before create_all()
from models import *  # noqa: F401,F403
from auth import blp as AuthBlueprint
from users import blp as UsersBlueprint
from weather import blp as WeatherBlueprint


def _is_development(app):
    return app.config.get("APP_ENV") == "development"


def _flatten_messages(messages):
    """Marshmallow error dict -> 'field: message' strings."""
    if isinstance(messages, dict):
        out = []
        for key, val in messages.items():
            for msg in _flatten_messages(val):
                out.append(f"{key}: {msg}" if key not in ("json", "query", "_schema") else msg)
        return out
    if isinstance(messages, (list, tuple)):
        return [m for val in messages for m in _flatten_messages(val)]
    return [str(messages)]


def register_error_handlers(app):
    def error_response(status_code, message):
        if _is_development(app):
            body = {"status": status_code, "message": message}
        else:
            body = {"status": "fail" if 400 <= status_code < 500 else "error", "message": message}
        return jsonify(body), status_code

    @app.errorhandler(AppError)
    def handle_app_error(err):
        return error_response(err.status_code, err.message)

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        data = getattr(err, "data", None) or {}
        # Marshmallow / request validation errors
        if err.code == 422:
            messages = data.get("messages") or ["Invalid request"]
            return error_response(400, "Validation error: " + ". ".join(_flatten_messages(messages)))
        if err.code == 404:
            return error_response(404, f"Can't find {request.path} on this server")
        return error_response(err.code, data.get("message") or err.description)

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        if _is_development(app):
            return error_response(500, f"{type(err).__name__}: {err}")
        return error_response(500, "Something went very wrong!")


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if _is_development(app):
        # Show SQL emitted by SQLAlchemy
        app.config.setdefault("SQLALCHEMY_ECHO", True)
        app.logger.setLevel(logging.INFO)

        @app.after_request
        def log_request(response):
            app.logger.info("%s %s %s", request.method, request.path, response.status_code)
            return response

    # Initialize extensions
    db.init_app(app)
    api = Api(app)
    JWTManager(app)

    register_error_handlers(app)

    # Create tables (for local/demo runs; in prod you'd use migrations)
    with app.app_context():
        db.create_all()

    # Register blueprints (endpoints)
    api.register_blueprint(AuthBlueprint)
    api.register_blueprint(UsersBlueprint)
    api.register_blueprint(WeatherBlueprint)

    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=3001, debug=_is_development(app))
