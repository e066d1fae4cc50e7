# Overview: Flask API routes for user management; parses input and returns JSON responses.

"""
User management routes.

All endpoints require authentication and the Admin role. Users are never
hard-deleted: ledger entries keep pointing at whoever recorded them, so
DELETE deactivates the account and revokes its sessions.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN
from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError, UserNotFoundError, UserValidationError


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    """
    List users.

    Query params:
    - role: Admin | Treasurer | Viewer
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    users = auth_service.list_users(
        role=request.args.get("role") or None,
        include_inactive=include_inactive,
    )
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Create a user.

    Request body:
    {
        "username": "...",
        "email": "...",
        "password": "...",
        "role": "Treasurer"    // default Viewer
    }
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    email = data.get("email")
    password = data.get("password")

    if not all([username, email, password]):
        return jsonify({"error": "username, email and password required"}), 400

    try:
        user = auth_service.create_user(
            username,
            email,
            password,
            role=data.get("role") or "Viewer",
            bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 422
    except UserValidationError as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("User %s (%s) created by %s", user.username, user.role, g.current_user.username)
    return jsonify(user.to_dict()), 201


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    try:
        user = auth_service.get_user(user_id)
    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(user.to_dict())


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    """Update email, role or is_active."""
    data = request.get_json(silent=True) or {}

    if user_id == g.current_user.id and data.get("is_active") is False:
        return jsonify({"error": "You cannot deactivate your own account"}), 400

    try:
        user = auth_service.update_user(
            user_id,
            email=data.get("email"),
            role=data.get("role"),
            is_active=data.get("is_active"),
        )
    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UserValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not user.is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")

    return jsonify(user.to_dict())


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "You cannot deactivate your own account"}), 400

    try:
        user = auth_service.update_user(user_id, is_active=False)
    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    revoked = session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
    current_app.logger.info("User %s deactivated by %s", user.username, g.current_user.username)
    return jsonify({
        "message": "User deactivated",
        "user": user.to_dict(),
        "sessions_revoked": revoked,
    })
