# Overview: Opaque bearer tokens carrying tenant context; create, validate, revoke.

"""
Session Token Management

MULTI-TENANT: Sessions capture tenant_id at creation time. That is the
tenant context for every authenticated request; clients never choose it.

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from SESSION_TTL_HOURS
- Revocable on logout
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from kasir.time_utils import utcnow

DEFAULT_SESSION_TTL = timedelta(hours=24)


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    tenant_id: int


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so a fast hash is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int, ttl: timedelta = DEFAULT_SESSION_TTL) -> tuple[SessionToken, str]:
    """
    Returns (session_record, plaintext_token). Only the hash is stored.

    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        tenant_id=user.tenant_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Returns None if the token is unknown, expired or revoked, or if the user
    or tenant has been deactivated.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session or session.expires_at < now:
        return None

    user = session.user
    if not user or not user.is_active or not session.tenant or not session.tenant.is_active:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = "User or tenant deactivated"
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, tenant_id=session.tenant_id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()
    return True
