# Overview: Staff accounts: bcrypt password hashing, authentication, user creation.

"""
Authentication Service

Passwords are hashed with bcrypt (cost factor 12). Roles are a single
column on User: admin, supervisor, cashier.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserError(Exception):
    """Raised for invalid user management requests."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(username: str, password: str, full_name: str, role: str = "cashier") -> User:
    username = (username or "").strip()
    if not username:
        raise UserError("username is required")
    role = (role or "").strip().lower()
    if role not in ROLES:
        raise UserError(f"role must be one of: {', '.join(ROLES)}")
    if db.session.query(User).filter_by(username=username).first():
        raise UserError(f"User '{username}' already exists")

    user = User(
        username=username,
        full_name=(full_name or username).strip(),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user for these credentials, or None.

    Unknown usernames and wrong passwords are indistinguishable to callers.
    """
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
