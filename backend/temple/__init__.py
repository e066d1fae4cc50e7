# backend/temple/__init__.py
from flask import Flask, request, jsonify
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.donations import donations_bp
    from .routes.expenses import expenses_bp
    from .routes.transactions import transactions_bp
    from .routes.receipts import receipts_bp
    from .routes.rent import rent_bp
    from .routes.loans import loans_bp, penalties_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(donations_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(rent_bp)
    app.register_blueprint(loans_bp)
    app.register_blueprint(penalties_bp)

    allowed_origins = {
        origin.strip()
        for origin in app.config["CORS_ORIGINS"].split(",")
        if origin.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, Idempotency-Key"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(OperationalError)
    def database_unavailable(e):
        db.session.rollback()
        app.logger.warning("Database unavailable: %s", e)
        return jsonify({
            "error": "Database temporarily unavailable, please retry",
            "code": "DB_UNAVAILABLE",
            "retryable": True,
        }), 503

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error"}), 500

    with app.app_context():
        from .timeouts import install_query_timeout
        if install_query_timeout(db.engine, app.config["QUERY_TIMEOUT_MS"]):
            app.logger.info("Query timeout set to %sms", app.config["QUERY_TIMEOUT_MS"])

        # Tables may not exist yet before the first `flask db upgrade`
        if app.config["SEED_SEQUENCES_ON_STARTUP"] and inspect(db.engine).has_table("receipt_sequences"):
            from .services.receipt_service import seed_sequences
            seed_sequences()

    timeout_seconds = app.config["REQUEST_TIMEOUT_SECONDS"]
    if timeout_seconds and timeout_seconds > 0:
        from .timeouts import RequestTimeoutMiddleware
        app.wsgi_app = RequestTimeoutMiddleware(
            app.wsgi_app,
            timeout_seconds,
            max_workers=app.config["REQUEST_WORKER_THREADS"],
        )

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
