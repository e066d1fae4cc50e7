# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Session management with token-based auth
- Password strength validation on password change
- Changing the password revokes every other session of the user
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError, UserValidationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-registration is disabled.

    Users are created by administrators via:
    - POST /api/users (Admin only)
    - CLI: flask users create
    """
    return jsonify({
        "error": "Self-registration is disabled. Contact an administrator to create an account."
    }), 403


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": "treasurer",   // or "email"
        "password": "..."
    }

    Token must be included as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "expires_at": session.to_dict()["expires_at"],
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1]

        revoked = session_service.revoke_session(token, reason="User logout")
        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and session, so the frontend can check a stored token."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
        "message": "Token valid",
    }), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Change the current user's password.

    Request body:
    {
        "current_password": "...",
        "new_password": "..."
    }

    Other sessions of the user are revoked; the calling session stays valid.
    """
    try:
        data = request.get_json(silent=True) or {}
        current_password = data.get("current_password") or data.get("currentPassword")
        new_password = data.get("new_password") or data.get("newPassword")

        if not current_password or not new_password:
            return jsonify({"error": "current_password and new_password required"}), 400

        user = g.current_user
        auth_service.change_password(
            user.id,
            current_password,
            new_password,
            bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
        )
        revoked = session_service.revoke_all_user_sessions(
            user.id,
            reason="Password changed",
            keep_session_id=g.session_context.session.id,
        )

        return jsonify({
            "message": "Password changed successfully",
            "sessions_revoked": revoked,
        }), 200

    except UserValidationError as e:
        return jsonify({"error": str(e)}), 401
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 422
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500
