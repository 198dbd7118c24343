import logging
import uuid

from flask import Flask, jsonify, request, g
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from extensions import db, limiter, mail, migrate
import models  # noqa: F401 - registers tables with SQLAlchemy metadata
from routes.admin_routes import admin_bp
from routes.attendance_routes import attendance_bp
from routes.auth_routes import auth_bp
from routes.batch_routes import batch_bp
from routes.billing_routes import billing_bp
from routes.cron_routes import cron_bp
from routes.sibling_routes import sibling_bp
from routes.student_routes import student_bp
from routes.webhook_routes import webhook_bp
from utils.errors import ServiceError
from utils.stripe_api import StripeError

app = Flask(__name__)

# Load configuration from Config (falls back to sensible defaults inside Config)
app.config.from_object(Config)
app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")), logging.INFO))

# Trust reverse proxy headers for scheme/host when enabled
if app.config.get("TRUST_PROXY", True):
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[assignment]

db.init_app(app)
migrate.init_app(app, db)
mail.init_app(app)
limiter.init_app(app)


# Assign a per-request correlation id for tracing
@app.before_request
def _assign_request_id():
    g.request_id = (request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16])[:64]


@app.after_request
def _set_response_headers(resp):
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    request_id = getattr(g, "request_id", None)
    if request_id:
        resp.headers["X-Request-ID"] = request_id
    return resp


# --------------------------
# Error handling (JSON everywhere)
# --------------------------

@app.errorhandler(ServiceError)
def _service_error(e: ServiceError):
    db.session.rollback()
    body = {"error": e.message}
    field = getattr(e, "field", None)
    if field:
        body["field"] = field
    return jsonify(body), e.status_code


@app.errorhandler(HTTPException)
def _http_error(e: HTTPException):
    return jsonify({"error": e.description or e.name}), e.code


@app.errorhandler(StripeError)
def _provider_error(e: StripeError):
    db.session.rollback()
    app.logger.warning("Payment provider error [%s]: %s", getattr(g, "request_id", "-"), e)
    return jsonify({"error": str(e)}), 502


@app.errorhandler(SQLAlchemyError)
def _db_error(e: SQLAlchemyError):
    db.session.rollback()
    app.logger.exception("Database error [%s]", getattr(g, "request_id", "-"))
    return jsonify({"error": "Database error"}), 500


app.register_blueprint(auth_bp)
app.register_blueprint(webhook_bp)
app.register_blueprint(batch_bp)
app.register_blueprint(student_bp)
app.register_blueprint(billing_bp)
app.register_blueprint(sibling_bp)
app.register_blueprint(attendance_bp)
app.register_blueprint(admin_bp)
app.register_blueprint(cron_bp)

# Webhooks are authenticated by signature; providers must never be throttled
limiter.exempt(webhook_bp)


@app.route("/healthz")
def healthz():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        app.logger.exception("Health check failed")
        return jsonify({"status": "error"}), 503
    return jsonify({"status": "ok"})


if app.config.get("ENABLE_SCHEDULER"):
    from scheduler import start_scheduler

    _sched = start_scheduler(app)

if __name__ == "__main__":
    app.run(debug=True)
