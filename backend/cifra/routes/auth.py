# Overview: Flask API routes for seller accounts; parses input and returns JSON responses.

# backend/cifra/routes/auth.py
"""
Seller authentication API routes

- Self-service registration (sellers sign up to open a storefront)
- Login returns a bearer token; only its SHA-256 hash is stored
- Logout revokes the presented token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, bearer_token
from cifra.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _issue_session(seller):
    session, token = session_service.create_session(
        seller_id=seller.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return {
        "seller": seller.to_dict(),
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
    }


@auth_bp.post("/register")
def register_route():
    """
    Create a seller account and log it in.

    Request body: {"email": str, "password": str, "display_name": str?}
    """
    data = request.get_json(silent=True) or {}
    try:
        seller = auth_service.create_seller(
            email=data.get("email"),
            password=data.get("password") or "",
            display_name=data.get("display_name"),
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    try:
        body = _issue_session(seller)
    except Exception:
        current_app.logger.exception("Failed to create session after registration")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Seller %s registered", seller.id)
    body["message"] = "Registration successful"
    return jsonify(body), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate seller and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        seller = auth_service.authenticate(email, password)
        if not seller:
            current_app.logger.info("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        body = _issue_session(seller)
        body["message"] = "Login successful"
        return jsonify(body), 200

    except Exception:
        current_app.logger.exception("Failed to login seller")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required"}), 401

    if not session_service.revoke_session(token, reason="Seller logout"):
        return jsonify({"error": "Invalid or expired token"}), 401

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"seller": g.current_seller.to_dict()}), 200


@auth_bp.patch("/settings")
@require_auth
def settings_route():
    """
    Update storefront profile and notification preferences.

    Request body (any subset): display_name, bio, accent_color, email_notifications
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    try:
        seller = auth_service.update_settings(g.current_seller, data)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"seller": seller}), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """Change password and revoke every other session of this seller."""
    data = request.get_json(silent=True) or {}
    try:
        auth_service.change_password(
            g.current_seller,
            data.get("current_password") or "",
            data.get("new_password") or "",
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 403

    revoked = session_service.revoke_all_seller_sessions(
        g.current_seller.id,
        reason="Password changed",
        keep_session_id=g.session_context.session.id,
    )
    return jsonify({"message": "Password changed", "sessions_revoked": revoked}), 200
