# Overview: Service-layer operations for seller accounts; password hashing, signup, login, settings.

"""
Seller Authentication Service

WHY: Every product, promo code and sale belongs to a seller, so every
dashboard action must be attributable to an authenticated seller.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special char
- Session tokens managed separately (see session_service.py)
- Emails are stored lower-cased; login is case-insensitive
"""

from __future__ import annotations

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Seller
from ..validation import ConflictError, ValidationError, validate_email


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


SELLER_SETTINGS_FIELDS = {"display_name", "bio", "accent_color", "email_notifications"}
_ACCENT_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.?'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() compares in constant time.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def get_seller(seller_id: int) -> Seller | None:
    return db.session.get(Seller, seller_id)


def find_seller_by_email(email: str) -> Seller | None:
    if not email:
        return None
    return db.session.query(Seller).filter_by(email=email.strip().lower()).first()


def create_seller(email: str, password: str, display_name: str | None = None) -> Seller:
    """
    Create a seller account.

    Raises:
        ValidationError: malformed email
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    normalized = validate_email(email)
    if find_seller_by_email(normalized):
        raise ConflictError("A seller with this email already exists")

    seller = Seller(
        email=normalized,
        password_hash=hash_password(password),
        display_name=(display_name or "").strip() or None,
    )
    db.session.add(seller)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A seller with this email already exists")
    return seller


def authenticate(email: str, password: str) -> Seller | None:
    """
    Authenticate seller with email and password.

    Returns the Seller if credentials are valid and the account is active,
    None otherwise.
    """
    if not email or not password:
        return None
    seller = find_seller_by_email(email)
    if not seller or not seller.is_active:
        return None
    if not verify_password(password, seller.password_hash):
        return None
    return seller


def update_settings(seller: Seller, patch: dict) -> dict:
    """
    Update storefront profile and notification preferences.

    Raises:
        ValidationError: unknown field or bad value
    """
    unknown = set(patch) - SELLER_SETTINGS_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if "display_name" in patch:
        value = patch["display_name"]
        if value is not None and (not isinstance(value, str) or len(value.strip()) > 128):
            raise ValidationError("display_name must be a string of at most 128 characters")
        seller.display_name = value.strip() if value else None
    if "bio" in patch:
        value = patch["bio"]
        if value is not None and not isinstance(value, str):
            raise ValidationError("bio must be a string")
        seller.bio = value
    if "accent_color" in patch:
        value = patch["accent_color"]
        if not isinstance(value, str) or not _ACCENT_COLOR_RE.match(value):
            raise ValidationError("accent_color must look like #8b5cf6")
        seller.accent_color = value.lower()
    if "email_notifications" in patch:
        value = patch["email_notifications"]
        if not isinstance(value, bool):
            raise ValidationError("email_notifications must be a boolean")
        seller.email_notifications = value

    db.session.commit()
    return seller.to_dict()


def change_password(seller: Seller, current_password: str, new_password: str) -> None:
    """
    Raises:
        ValueError: current password is wrong
        PasswordValidationError: new password is weak
    """
    if not verify_password(current_password or "", seller.password_hash):
        raise ValueError("Current password is incorrect")
    seller.password_hash = hash_password(new_password)
    db.session.commit()
