# Overview: Service-layer operations for accounts and credentials.

"""
Authentication Service

Accounts are either INTERNAL staff (optionally with an admin level) or
external RETAILER / VIP buyers. Only the bcrypt hash of a password is kept.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special character
- Emails are stored and matched lowercase
- Session tokens managed separately (see session_service.py)
- invalidate_sessions() bumps User.session_version, which kills every
  outstanding token at the next request
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import USER_LABELS, ADMIN_LEVELS
from ..errors import ConflictError, NotFoundError, ValidationError
from app.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash verifies as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(
    email: str,
    password: str,
    name: str | None = None,
    label: str = "RETAILER",
    admin_level: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: bad email, label or admin level
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if label not in USER_LABELS:
        raise ValidationError(f"label must be one of: {', '.join(USER_LABELS)}")
    if admin_level is not None:
        if admin_level not in ADMIN_LEVELS:
            raise ValidationError(f"admin_level must be one of: {', '.join(ADMIN_LEVELS)}")
        if label != "INTERNAL":
            raise ValidationError("Only INTERNAL users can hold an admin level")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("Email already registered")

    password_hash = hash_password(password)

    user = User(
        email=email,
        name=name,
        password_hash=password_hash,
        label=label,
        admin_level=admin_level,
        session_version=0,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active User for these credentials, or None.

    Updates last_login_at on success. All login flows go through here.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def invalidate_sessions(user_id: int) -> int:
    """
    Bump the user's session_version. Returns the new version.

    WHY a counter instead of revoking rows: one UPDATE invalidates tokens
    on every device, including ones issued concurrently with this call.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")

    user.session_version = (user.session_version or 0) + 1
    db.session.commit()
    return user.session_version


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()
