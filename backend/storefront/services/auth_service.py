# Overview: Password hashing, user creation and credential checks.

"""
Authentication Service

WHY: Staff actions on orders and stock must be attributable to a user.
Customers and staff share the users table; role decides access.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLES
from storefront.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserCreationError(ValueError):
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash. Returned as str for the DB column."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    email: str,
    password: str,
    *,
    name: str | None = None,
    role: str = "CUSTOMER",
    phone: str | None = None,
) -> User:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise UserCreationError("A valid email is required")
    if role not in ROLES:
        raise UserCreationError(f"role must be one of: {', '.join(ROLES)}")
    if db.session.query(User).filter_by(email=email).first():
        raise UserCreationError(f"User {email} already exists")

    user = User(
        email=email,
        name=name,
        phone=phone,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user whose credentials match, else None.

    Stamps last_login_at on success (committed).
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter_by(email=email).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
