"""HealthWatch HTTP API.

Thin Flask layer over the engine. Identity is established by the auth
gateway in front of this service and forwarded in two headers:

    X-Actor-Id:   opaque user identifier
    X-Actor-Role: "student" or "admin"

Endpoints:
- GET   /health, /ready
- POST  /api/reports                       - Submit a report (student)
- GET   /api/reports                       - All reports (admin)
- GET   /api/reports/me                    - Caller's own reports
- GET   /api/reports/<id>                  - One report
- PATCH /api/reports/<id>/status           - Transition a report (admin)
- GET   /api/dashboard                     - Composite dashboard (admin)
- POST  /api/dashboard/actions             - Create an action (admin)
- PATCH /api/dashboard/actions/<id>/status - Transition an action (admin)
- POST  /api/dashboard/bayesian/<location>/override - Force a risk estimate
- PUT   /api/dashboard/bayesian/<location>/baseline - Pin a baseline rate
- GET   /api/resources/locations, /api/resources/symptoms
"""
import logging
import os
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from healthwatch.shared.catalog import ReferenceCatalog
from healthwatch.shared.config import EngineConfig
from healthwatch.shared.errors import AuthenticationError, HealthWatchError, ValidationError
from healthwatch.shared.models import Actor, Role
from healthwatch.shared.utils import configure_pii_salt_from_env, hash_pii
from healthwatch.services.engine import Engine, build_engine

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Configure PII salt
configure_pii_salt_from_env(default="default_dev_salt_change_in_production_32chars")

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"
_CALLER_ROLES = {Role.STUDENT.value: Role.STUDENT, Role.ADMIN.value: Role.ADMIN}


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the global engine instance."""
    global _engine
    if _engine is None:
        _engine = build_engine(EngineConfig.from_env(), ReferenceCatalog.from_env())
    return _engine


def set_engine(engine: Optional[Engine]) -> None:
    """Set the global engine (for testing)."""
    global _engine
    _engine = engine


def current_actor() -> Actor:
    actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    role = _CALLER_ROLES.get((request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower())
    if not actor_id or role is None:
        raise AuthenticationError(
            f"{ACTOR_ID_HEADER} and {ACTOR_ROLE_HEADER} (student or admin) headers are required"
        )
    return Actor(actor_id=actor_id, role=role)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


@app.errorhandler(HealthWatchError)
def handle_domain_error(error: HealthWatchError):
    log = logger.warning if error.status_code >= 409 else logger.info
    log(
        "REQUEST_REJECTED",
        extra={
            "path": request.path,
            "error_code": error.error_code,
            "status_code": error.status_code,
        }
    )
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("UNHANDLED_ERROR", extra={"path": request.path, "method": request.method})
    return jsonify({"error": "internal_error", "message": "Internal server error"}), 500


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({"status": "healthy", "service": "healthwatch"}), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check, including the database when PostgreSQL backs the store."""
    result = get_engine().readiness()
    return jsonify(result), 200 if result["status"] == "ready" else 503


@app.route("/api/reports", methods=["POST"])
def submit_report():
    """Submit a health report.

    Request Body:
        {"symptoms": ["fever", "cough"], "location": "Room-12A", "note": "optional"}
    """
    actor = current_actor()
    data = json_body()

    report = get_engine().lifecycle.submit_report(
        actor,
        symptoms=data.get("symptoms"),
        location_id=data.get("location"),
        note=data.get("note"),
    )
    return jsonify(report.to_dict()), 201


@app.route("/api/reports", methods=["GET"])
def list_reports():
    actor = current_actor()
    reports = get_engine().lifecycle.list_reports(actor)
    return jsonify({"reports": [r.to_dict() for r in reports], "count": len(reports)})


@app.route("/api/reports/me", methods=["GET"])
def list_my_reports():
    actor = current_actor()
    reports = get_engine().lifecycle.list_my_reports(actor)

    logger.info(
        "OWN_REPORTS_RETRIEVED",
        extra={"reporter_hash": hash_pii(actor.actor_id), "count": len(reports)}
    )
    return jsonify({"reports": [r.to_dict() for r in reports], "count": len(reports)})


@app.route("/api/reports/<report_id>", methods=["GET"])
def get_report(report_id: str):
    actor = current_actor()
    return jsonify(get_engine().lifecycle.get_report(report_id, actor).to_dict())


@app.route("/api/reports/<report_id>/status", methods=["PATCH"])
def transition_report(report_id: str):
    """Move a report to a new status.

    Request Body:
        {"status": "investigating"}
    """
    actor = current_actor()
    data = json_body()

    report = get_engine().lifecycle.transition_status(report_id, actor, data.get("status"))
    return jsonify(report.to_dict())


@app.route("/api/dashboard", methods=["GET"])
def dashboard():
    """Composite dashboard: stats, hotspots, predictions, actions, bayesian."""
    actor = current_actor()
    return jsonify(get_engine().dashboard.get_dashboard(actor))


@app.route("/api/dashboard/actions", methods=["POST"])
def create_action():
    """Create a remediation action.

    Request Body:
        {"description": "Deep-clean Room 12A", "location": "Room-12A"}
    """
    actor = current_actor()
    data = json_body()

    action = get_engine().dashboard.create_action(
        data.get("description"), actor, location_id=data.get("location")
    )
    return jsonify(action.to_dict()), 201


@app.route("/api/dashboard/actions/<action_id>/status", methods=["PATCH"])
def transition_action(action_id: str):
    actor = current_actor()
    data = json_body()

    action = get_engine().dashboard.transition_action(action_id, actor, data.get("status"))
    return jsonify(action.to_dict())


@app.route("/api/dashboard/bayesian/<location_id>/override", methods=["POST"])
def override_risk(location_id: str):
    """Force a location's outbreak probability.

    Request Body:
        {"probability": 0.05}
    """
    actor = current_actor()
    data = json_body()

    probability = data.get("probability")
    if isinstance(probability, bool):
        raise ValidationError("probability must be a number between 0 and 1")

    param = get_engine().override_risk(location_id, probability, actor)
    return jsonify(param.to_dict())


@app.route("/api/dashboard/bayesian/<location_id>/baseline", methods=["PUT"])
def set_baseline(location_id: str):
    """Pin a location's expected reports per window.

    Request Body:
        {"rate": 2.0}
    """
    actor = current_actor()
    data = json_body()

    rate = data.get("rate")
    if isinstance(rate, bool):
        raise ValidationError("baseline rate must be a positive number")

    rate = get_engine().set_baseline(location_id, rate, actor)
    return jsonify({"location": location_id, "baselineRate": rate})


@app.route("/api/resources/locations", methods=["GET"])
def list_locations():
    catalog = get_engine().catalog
    return jsonify({"locations": [loc.to_dict() for loc in catalog.locations()]})


@app.route("/api/resources/symptoms", methods=["GET"])
def list_symptoms():
    catalog = get_engine().catalog
    return jsonify({"symptoms": [sym.to_dict() for sym in catalog.symptoms()]})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8080"))
    app.run(host="0.0.0.0", port=port, debug=False)
