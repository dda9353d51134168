# Overview: Service-layer operations for API bearer tokens.

"""
API Token Management

Tokens are issued out of band (CLI) and presented as
"Authorization: Bearer <token>". Only the SHA-256 hash is stored.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (high-entropy input, no bcrypt needed)
- Revocable; revoked tokens and deactivated users never resolve
"""

from __future__ import annotations

import hashlib
import secrets

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ApiToken, User
from ..models.auth import VALID_ROLES
from ..time_utils import utcnow


def generate_token() -> str:
    """64-character hex string. This plaintext is shown once and never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(user_id: int, label: str | None = None) -> tuple[ApiToken, str]:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    if not user.is_active:
        raise ValidationError("Cannot issue a token to an inactive user")

    token = generate_token()
    record = ApiToken(user_id=user.id, token_hash=hash_token(token), label=label, created_at=utcnow())
    db.session.add(record)
    db.session.commit()
    return record, token


def resolve_token(token: str) -> User | None:
    """Return the active user behind a bearer token, or None."""
    if not token:
        return None
    record = (
        db.session.query(ApiToken)
        .filter(ApiToken.token_hash == hash_token(token), ApiToken.is_revoked.is_(False))
        .first()
    )
    if record is None:
        return None
    user = record.user
    if user is None or not user.is_active:
        return None
    record.last_used_at = utcnow()
    db.session.commit()
    return user


def revoke_token(token_id: int) -> ApiToken:
    record = db.session.get(ApiToken, token_id)
    if record is None:
        raise NotFoundError("Token not found", details={"token_id": token_id})
    record.is_revoked = True
    db.session.commit()
    return record


def create_user(email: str, full_name: str, *, role: str = "USER", phone: str | None = None) -> User:
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if role not in VALID_ROLES:
        raise ValidationError("Unknown role", details={"allowed": sorted(VALID_ROLES)})
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first() is not None:
        raise ValidationError("Email already registered", details={"email": email})

    user = User(email=email, full_name=full_name, phone=phone, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user
