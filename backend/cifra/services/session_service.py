# Overview: Service-layer operations for dashboard sessions; issue, validate and revoke bearer tokens.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout or password change
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import Seller, SessionToken
from cifra.time_utils import utcnow, to_utc_naive


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    seller: Seller
    session: SessionToken


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    seller_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for a seller.

    Returns (session_record, plaintext_token).

    Raises ValueError if the seller doesn't exist or is deactivated.
    """
    seller = db.session.get(Seller, seller_id)
    if not seller or not seller.is_active:
        raise ValueError("Seller not found or inactive")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        seller_id=seller_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, revoked, idle for too
    long, or belongs to a deactivated seller. Idle and deactivated
    sessions are revoked on the spot.

    Updates last_used_at on successful validation.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if to_utc_naive(session.expires_at) < now:
        return None

    if now - to_utc_naive(session.last_used_at) > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    seller = session.seller
    if not seller or not seller.is_active:
        _revoke(session, "Seller account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(seller=seller, session=session)


def revoke_session(token: str, reason: str = "Seller logout") -> bool:
    """Returns True if session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_seller_sessions(seller_id: int, reason: str = "Revoke all sessions", keep_session_id: int | None = None) -> int:
    """
    Revoke all active sessions for a seller, optionally sparing one.

    Returns count of sessions revoked.
    """
    now = utcnow()
    q = db.session.query(SessionToken).filter_by(seller_id=seller_id, is_revoked=False)
    if keep_session_id is not None:
        q = q.filter(SessionToken.id != keep_session_id)

    count = 0
    for session in q.all():
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
        count += 1

    db.session.commit()
    return count
