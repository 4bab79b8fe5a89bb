import os
from datetime import timedelta
from typing import Dict, Optional

from dotenv import load_dotenv
from flask import Flask, send_from_directory
from werkzeug.middleware.proxy_fix import ProxyFix

from marketplace.auth import register_jwt_handlers
from marketplace.errors import register_error_handlers, respond
from marketplace.extensions import cors, jwt, mongo
from marketplace.payments import configure_stripe
from marketplace.routes import register_blueprints

load_dotenv()

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:4173",
    "http://localhost:3000",
]


def _allowed_origins():
    allowed_origins = list(DEFAULT_ALLOWED_ORIGINS)
    allowed_origins.append(os.getenv("FRONTEND_URL", "").strip())
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    return [origin for origin in allowed_origins if origin]


def create_app(test_config: Optional[Dict] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Honor proxy headers so generated upload URLs keep the public origin.
    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["JWT_SECRET_KEY"] = os.getenv(
        "JWT_SECRET_KEY", "change-me-in-production"
    )
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(days=7)
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI", "mongodb://localhost:27017/marketplace"
    )
    max_upload_mb = int(os.getenv("MAX_UPLOAD_SIZE_MB", "16"))
    app.config["MAX_CONTENT_LENGTH"] = max_upload_mb * 1024 * 1024
    app.config["UPLOAD_FOLDER"] = os.getenv(
        "UPLOAD_FOLDER", os.path.join(app.root_path, "uploads")
    )
    allowed_extensions_raw = os.getenv(
        "ALLOWED_UPLOAD_EXTENSIONS", "png,jpg,jpeg,gif,webp,pdf"
    )
    app.config["ALLOWED_UPLOAD_EXTENSIONS"] = {
        extension.strip().lower().lstrip(".")
        for extension in allowed_extensions_raw.split(",")
        if extension.strip()
    }
    app.config["STRIPE_SECRET_KEY"] = os.getenv("STRIPE_SECRET_KEY", "").strip()
    app.config["STRIPE_WEBHOOK_SECRET"] = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
    app.config["FRONTEND_URL"] = os.getenv("FRONTEND_URL", "http://localhost:5173").strip()

    if test_config:
        app.config.update(test_config)

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # --- Initialize extensions ---
    cors.init_app(app, supports_credentials=True, origins=_allowed_origins() or "*")
    jwt.init_app(app)
    mongo.init_app(app)
    configure_stripe(app)

    register_jwt_handlers(jwt)
    register_error_handlers(app)
    register_blueprints(app)

    @app.route("/uploads/<path:filename>")
    def serve_upload(filename: str):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    @app.route("/health")
    def health():
        return respond({"message": "ok"})

    app.logger.info("Marketplace API configured for %s", app.config["FRONTEND_URL"])
    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port)
