# Overview: Password hashing and user authentication; stateless functions over bcrypt.

"""
Authentication Service

MULTI-TENANT: Users belong to exactly one tenant. Login resolves the tenant
by its code, then the username within that tenant.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import Tenant, User
from ..models.auth import VALID_ROLES, ROLE_CASHIER
from ..validation import ConflictError, NotFoundError
from kasir.time_utils import utcnow


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    tenant_id: int,
    username: str,
    email: str,
    password: str,
    role: str = ROLE_CASHIER,
    rounds: int = 12,
) -> User:
    """
    Raises:
        NotFoundError: tenant missing or inactive
        ConflictError: username or email already used in the tenant
        PasswordValidationError: weak password
        ValueError: unknown role
    """
    if role not in VALID_ROLES:
        raise ValueError(f"role must be one of: {', '.join(VALID_ROLES)}")

    tenant = db.session.query(Tenant).filter_by(id=tenant_id, is_active=True).first()
    if tenant is None:
        raise NotFoundError("Tenant not found")

    existing = db.session.query(User).filter(
        User.tenant_id == tenant_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        raise ConflictError("Username or email already exists in this tenant")

    user = User(
        tenant_id=tenant_id,
        username=username,
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(tenant_code: str, username: str, password: str) -> User | None:
    """
    Returns the active user on success, None on any failure.

    The same None is returned for unknown tenant, unknown user, inactive
    account and wrong password.
    """
    tenant = db.session.query(Tenant).filter_by(code=tenant_code, is_active=True).first()
    if tenant is None:
        return None

    user = db.session.query(User).filter_by(tenant_id=tenant.id, username=username).first()
    if user is None or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
