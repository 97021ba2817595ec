"""
API routes for the card pipeline.

Flask REST endpoints for uploading cards and reading back their outcome.
Authentication is handled upstream; the caller's identity arrives in the
X-User-Id header and admin rights in X-User-Role.
"""

import logging
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from cardscan.errors import QueueFullError, StorageError, ValidationError
from cardscan.models import AuditAction, CardStatus, RequestContext

logger = logging.getLogger(__name__)

# Create Blueprint
api_bp = Blueprint("api", __name__, url_prefix="/api")


def get_services():
    """Services built once by the application factory."""
    return current_app.extensions["cardscan"]


def current_user_id():
    return request.headers.get("X-User-Id", "").strip()


def request_context() -> RequestContext:
    """Client address and user agent for audit events."""
    return RequestContext(
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent")
    )


def require_user(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_user_id():
            return jsonify({
                "success": False,
                "error": "Missing X-User-Id header"
            }), 401
        return view(*args, **kwargs)
    return wrapper


def require_admin(view):
    @wraps(view)
    @require_user
    def wrapper(*args, **kwargs):
        if request.headers.get("X-User-Role", "").lower() != "admin":
            return jsonify({
                "success": False,
                "error": "Admin access required"
            }), 403
        return view(*args, **kwargs)
    return wrapper


def _int_arg(name: str, default: int) -> int:
    try:
        return max(1, int(request.args.get(name, default)))
    except (TypeError, ValueError):
        return default


@api_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "success": True,
        "status": "healthy",
        "message": "Card pipeline API is running",
        "version": "1.0.0"
    }), 200


@api_bp.route("/status", methods=["GET"])
def get_status():
    """Pipeline and queue status."""
    services = get_services()
    return jsonify({
        "success": True,
        "data": {
            "api_status": "running",
            "pipeline_status": services.pipeline.get_status(),
            "queue_status": services.queue.get_status(),
            "storage_backend": services.storage.name
        }
    }), 200


@api_bp.route("/cards/upload", methods=["POST"])
@require_user
def upload_card():
    """Upload a card image.

    Expects:
        - multipart/form-data with 'card' field

    Returns:
        201 with the pending card; OCR runs in the background
    """
    if "card" not in request.files:
        return jsonify({
            "success": False,
            "error": "Please upload an image file in the 'card' field"
        }), 400

    file = request.files["card"]
    try:
        card = get_services().gateway.ingest(
            file.stream,
            file.filename or "",
            current_user_id(),
            content_type=file.mimetype,
            context=request_context()
        )
    except QueueFullError as e:
        return jsonify({
            "success": False,
            "error": str(e)
        }), 503

    return jsonify({
        "success": True,
        "message": "Card uploaded successfully. Processing OCR...",
        "data": {"card": card.to_dict()}
    }), 201


@api_bp.route("/cards", methods=["GET"])
@require_user
def list_cards():
    """List the caller's cards, newest first.

    Query params: status, page (default 1), limit (default 20)
    """
    status = request.args.get("status")
    if status and status not in {s.value for s in CardStatus}:
        raise ValidationError(f"Unknown status: {status}")

    page = _int_arg("page", 1)
    limit = _int_arg("limit", 20)
    services = get_services()
    user_id = current_user_id()

    cards = services.cards.list_for_user(user_id, status=status or None, page=page, limit=limit)
    count = services.cards.count_for_user(user_id, status=status or None)

    return jsonify({
        "success": True,
        "data": {
            "cards": [card.to_dict() for card in cards],
            "total_pages": (count + limit - 1) // limit,
            "current_page": page,
            "total_cards": count
        }
    }), 200


def _load_owned_card(card_id: str):
    card = get_services().cards.get(card_id)
    if card is None:
        return None, (jsonify({"success": False, "error": "Card not found"}), 404)
    if card.user_id != current_user_id():
        return None, (jsonify({"success": False, "error": "Not authorized to access this card"}), 403)
    return card, None


@api_bp.route("/cards/<card_id>", methods=["GET"])
@require_user
def get_card(card_id: str):
    """Card with its contact (if processing succeeded)."""
    card, error = _load_owned_card(card_id)
    if error:
        return error

    contact = get_services().contacts.get_for_card(card.id)
    return jsonify({
        "success": True,
        "data": {
            "card": card.to_dict(),
            "contact": contact.to_dict() if contact else None
        }
    }), 200


@api_bp.route("/cards/<card_id>", methods=["DELETE"])
@require_user
def delete_card(card_id: str):
    """Delete one of the caller's cards and its contact."""
    card, error = _load_owned_card(card_id)
    if error:
        return error

    report = get_services().deletion.delete_card(
        card,
        cascade=True,
        actor_id=current_user_id(),
        context=request_context()
    )
    return jsonify({
        "success": True,
        "message": "Card deleted successfully",
        "data": report.to_dict()
    }), 200


@api_bp.route("/admin/cards/<card_id>", methods=["DELETE"])
@require_admin
def admin_delete_card(card_id: str):
    """Delete any card (moderation)."""
    services = get_services()
    card = services.cards.get(card_id)
    if card is None:
        return jsonify({"success": False, "error": "Card not found"}), 404

    report = services.deletion.delete_card(
        card,
        cascade=True,
        actor_id=current_user_id(),
        action=AuditAction.ADMIN_CARD_DELETED,
        context=request_context()
    )
    return jsonify({
        "success": True,
        "message": "Card deleted successfully",
        "data": report.to_dict()
    }), 200


@api_bp.route("/admin/users/<user_id>/cards", methods=["DELETE"])
@require_admin
def admin_delete_user_cards(user_id: str):
    """Delete every card of a user, cascading through their contacts."""
    reports = get_services().deletion.delete_user_cards(
        user_id,
        actor_id=current_user_id(),
        context=request_context()
    )
    return jsonify({
        "success": True,
        "data": {
            "cards_deleted": sum(1 for r in reports if r.card_deleted),
            "reports": [r.to_dict() for r in reports]
        }
    }), 200


@api_bp.route("/admin/logs", methods=["GET"])
@require_admin
def get_activity_logs():
    """Recent activity. Query params: action, user_id, limit (default 50)."""
    action = request.args.get("action")
    if action and action not in {a.value for a in AuditAction}:
        raise ValidationError(f"Unknown action: {action}")

    entries = get_services().activity.recent_activities(
        action=action or None,
        user_id=request.args.get("user_id") or None,
        limit=_int_arg("limit", 50)
    )
    return jsonify({
        "success": True,
        "data": {"logs": [entry.to_dict() for entry in entries]}
    }), 200


@api_bp.route("/parse-text", methods=["POST"])
def parse_text():
    """Parse raw text (skip OCR).

    Expects:
        - JSON body with 'text' field
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data.get("text"), str):
        return jsonify({
            "success": False,
            "error": "No text provided. Send JSON with 'text' field."
        }), 400

    fields = get_services().parser.parse(data["text"])
    return jsonify({
        "success": True,
        "data": fields.to_dict()
    }), 200


# Error handlers
@api_bp.errorhandler(ValidationError)
def handle_validation_error(error):
    return jsonify({
        "success": False,
        "error": str(error)
    }), 400


@api_bp.errorhandler(StorageError)
def handle_storage_error(error):
    logger.error(f"Storage error: {error}")
    return jsonify({
        "success": False,
        "error": f"Storage error: {error}"
    }), 502
