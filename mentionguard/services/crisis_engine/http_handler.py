"""Crisis Engine HTTP handler - ingestion and crisis management endpoints.

Domain errors map to status codes: NotFoundError -> 404,
InvalidStateError -> 409, ValidationError -> 400.
"""
import logging
import os
from flask import Flask, request, jsonify

from mentionguard.shared.errors import InvalidStateError, NotFoundError, ValidationError
from .config import CrisisConfig
from .handler import CrisisHandler

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Initialize crisis handler
crisis_handler = CrisisHandler(config=CrisisConfig.from_env())


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes")


@app.errorhandler(NotFoundError)
def handle_not_found(error):
    return jsonify({"error": str(error)}), 404


@app.errorhandler(InvalidStateError)
def handle_invalid_state(error):
    return jsonify({"error": str(error)}), 409


@app.errorhandler(ValidationError)
def handle_validation(error):
    return jsonify({"error": str(error)}), 400


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "crisis-engine",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check."""
    if crisis_handler is None:
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/signals", methods=["POST"])
def ingest_signal():
    """Ingest one scored mention.

    Request Body:
        {
            "id": "mention_123",
            "sentiment": -0.6,
            "reach": 15000,
            "captured_at": "2026-01-14T10:05:00Z",
            "content": "Worst support experience ever"
        }

    Response:
        {
            "signal_id": "mention_123",
            "is_crisis": true,
            "crisis": {...},
            "matched_rules": ["rule_abc"]
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    result = crisis_handler.ingest_signal(data)
    return jsonify(result.to_dict()), 200


@app.route("/crisis/active", methods=["GET"])
def get_active_crises():
    """Get active crises, most severe first.

    Query Params:
        severity: Filter by severity level (optional)
        escalated_only: Only escalated crises (optional)
    """
    crises = crisis_handler.list_active_crises(
        severity=request.args.get("severity"),
        escalated_only=_parse_bool(request.args.get("escalated_only", "false")),
    )
    return jsonify({
        "count": len(crises),
        "crises": [c.to_dict() for c in crises],
    }), 200


@app.route("/crisis/statistics", methods=["GET"])
def get_statistics():
    """Aggregate crisis statistics for dashboards."""
    return jsonify(crisis_handler.get_statistics()), 200


@app.route("/crisis/rules", methods=["POST"])
def create_rule():
    """Create a crisis rule.

    Request Body:
        {
            "name": "Refund backlash",
            "keywords": ["refund", "scam"],
            "volume_threshold": 50,
            "auto_escalate": true,
            "notify_users": ["user_1"]
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body required"}), 400

    rule = crisis_handler.create_crisis_rule(data)
    return jsonify(rule.to_dict()), 201


@app.route("/crisis/rules", methods=["GET"])
def list_rules():
    """List crisis rules.

    Query Params:
        active_only: Only active rules (optional)
    """
    rules = crisis_handler.list_rules(
        active_only=_parse_bool(request.args.get("active_only", "false"))
    )
    return jsonify({
        "count": len(rules),
        "rules": [r.to_dict() for r in rules],
    }), 200


@app.route("/crisis/rules/<rule_id>/active", methods=["PUT"])
def set_rule_active(rule_id: str):
    """Enable or disable a rule.

    Request Body:
        {"is_active": false}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "is_active" not in data:
        return jsonify({"error": "Missing is_active"}), 400

    rule = crisis_handler.set_rule_active(rule_id, _parse_bool(data["is_active"]))
    return jsonify(rule.to_dict()), 200


@app.route("/crisis/<crisis_id>", methods=["GET"])
def get_crisis(crisis_id: str):
    """Get one crisis with its escalation records."""
    crisis = crisis_handler.get_crisis(crisis_id)
    escalations = crisis_handler.list_escalations(crisis_id)
    payload = crisis.to_dict()
    payload["escalations"] = [e.to_dict() for e in escalations]
    return jsonify(payload), 200


@app.route("/crisis/<crisis_id>/escalate", methods=["POST"])
def escalate_crisis(crisis_id: str):
    """Escalate a crisis.

    Request Body:
        {
            "reason": "manual",
            "escalated_by": "user_123"
        }
    """
    data = request.get_json(silent=True) or {}
    reason = data.get("reason") or "manual"

    record = crisis_handler.escalate_crisis(
        crisis_id,
        reason=reason,
        escalated_by=data.get("escalated_by"),
    )

    logger.info(
        "CRISIS_ESCALATED_HTTP",
        extra={"crisis_id": crisis_id, "escalation_id": record.id}
    )
    return jsonify(record.to_dict()), 200


@app.route("/crisis/<crisis_id>/status", methods=["PUT"])
def update_crisis_status(crisis_id: str):
    """Update crisis status.

    Request Body:
        {
            "status": "resolved",
            "notes": "Statement published, volume back to baseline"
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("status"):
        return jsonify({"error": "Missing status"}), 400

    crisis = crisis_handler.update_crisis_status(
        crisis_id,
        data["status"],
        notes=data.get("notes"),
    )
    return jsonify(crisis.to_dict()), 200


@app.route("/crisis/<crisis_id>/assign", methods=["POST"])
def assign_crisis(crisis_id: str):
    """Assign a crisis to a team member.

    Request Body:
        {
            "user_id": "user_123",
            "user_name": "Dana"
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("user_id"):
        return jsonify({"error": "Missing user_id"}), 400

    crisis = crisis_handler.assign_crisis(
        crisis_id,
        data["user_id"],
        user_name=data.get("user_name"),
    )
    return jsonify(crisis.to_dict()), 200


@app.route("/crisis/<crisis_id>/notes", methods=["POST"])
def add_note(crisis_id: str):
    """Attach a note to a crisis.

    Request Body:
        {
            "note": "Legal reviewing the response draft",
            "author": "user_123"
        }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("note"):
        return jsonify({"error": "Missing note"}), 400

    crisis = crisis_handler.add_note(crisis_id, data["note"], author=data.get("author"))
    return jsonify(crisis.to_dict()), 200


@app.errorhandler(500)
def handle_internal_error(error):
    logger.error("CRISIS_HTTP_ERROR", extra={"error": str(error)})
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8003"))
    app.run(host="0.0.0.0", port=port, debug=False)
