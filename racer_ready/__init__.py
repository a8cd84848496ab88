import logging
import os
import secrets

from flask import Flask


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default) in ("1", "true", "True")


def create_app(test_config=None):
    app = Flask(__name__)

    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError(
            "DATABASE_URL is required. Racer Ready stores every document in PostgreSQL."
        )

    app.secret_key = (
        os.environ.get("SECRET_KEY") or os.environ.get("FLASK_SECRET") or secrets.token_urlsafe(32)
    )
    app.config["SESSION_COOKIE_SECURE"] = _env_flag("SESSION_COOKIE_SECURE")
    app.config["SESSION_COOKIE_SAMESITE"] = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")
    app.config["MAX_CONTENT_LENGTH"] = 8 * 1024 * 1024
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    logging.getLogger("racer_ready").setLevel(app.logger.level)

    from . import datastore_pg as _pg

    # Pool is optional; without it every call opens a direct connection
    try:
        try:
            minconn = int(os.environ.get("DB_POOL_MIN", "1"))
        except ValueError:
            minconn = 1
        try:
            maxconn = int(os.environ.get("DB_POOL_MAX", "10"))
        except ValueError:
            maxconn = 10
        _pg.init_pool(minconn=minconn, maxconn=maxconn)
    except Exception:  # pragma: no cover
        app.logger.exception("PostgreSQL pool initialization failed; continuing without pool")

    from . import routes, routes_auth  # type: ignore
    app.register_blueprint(routes.bp)
    app.register_blueprint(routes_auth.bp)

    app.logger.info("Ensuring document schema")
    try:
        _pg.ensure_schema()
    except Exception:  # pylint: disable=broad-except
        app.logger.exception("Error ensuring document schema")

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
