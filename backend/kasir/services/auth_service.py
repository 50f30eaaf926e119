# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and user administration

Passwords are hashed with bcrypt (cost factor 12). Users are never deleted:
deactivation disables login, revokes sessions and keeps the account for
attribution on historical transactions.

ROLES: admin (catalog + users + sales), cashier (sales, history, dashboard).
"""

import bcrypt
import re

from flask import current_app

from ..extensions import db
from ..models import User, USER_ROLES
from ..validation import ConflictError, ValidationError
from kasir.time_utils import utcnow


MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise (including
    malformed hashes).
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_username(username) -> str:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    username = username.strip()
    if len(username) > 64:
        raise ValidationError("username exceeds max length 64")
    return username


def _validate_role(role) -> str:
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    return role


def create_user(
    username: str,
    password: str,
    role: str = "cashier",
    full_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: bad username or role
        ConflictError: username already taken
        PasswordValidationError: password too weak
    """
    username = _normalize_username(username)
    role = _validate_role(role)

    existing = db.session.query(User).filter(User.username == username).first()
    if existing:
        raise ConflictError("Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        full_name=(full_name or "").strip() or None,
        role=role,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def update_user(user: User, patch: dict, *, acting_user: User | None = None) -> User:
    """
    Apply an admin edit: username, full_name, role, is_active, password.

    An empty or missing password keeps the current one. Admins cannot
    demote or deactivate themselves (that would lock the shop out).
    Deactivation revokes the user's sessions.
    """
    from .session_service import revoke_all_user_sessions

    is_self = acting_user is not None and acting_user.id == user.id

    if "username" in patch:
        username = _normalize_username(patch["username"])
        if username != user.username:
            clash = db.session.query(User).filter(User.username == username, User.id != user.id).first()
            if clash:
                raise ConflictError("Username already exists")
            user.username = username

    if "full_name" in patch:
        user.full_name = (patch["full_name"] or "").strip() or None

    if "role" in patch:
        role = _validate_role(patch["role"])
        if is_self and role != user.role:
            raise ConflictError("You cannot change your own role")
        user.role = role

    if patch.get("password"):
        user.password_hash = hash_password(patch["password"])

    deactivated = False
    if "is_active" in patch:
        is_active = bool(patch["is_active"])
        if is_self and not is_active:
            raise ConflictError("You cannot deactivate your own account")
        deactivated = user.is_active and not is_active
        user.is_active = is_active

    db.session.commit()

    if deactivated:
        revoke_all_user_sessions(user.id, reason="User account deactivated")
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns the active User if credentials are valid, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def seed_default_users() -> list[User]:
    """
    First-boot bootstrap: create the configured admin and cashier accounts.

    Does nothing if any user already exists. Returns the created users.
    """
    if db.session.query(User.id).first() is not None:
        return []

    cfg = current_app.config
    created = [
        create_user(cfg["SEED_ADMIN_USERNAME"], cfg["SEED_ADMIN_PASSWORD"], role="admin", full_name="Administrator"),
        create_user(cfg["SEED_CASHIER_USERNAME"], cfg["SEED_CASHIER_PASSWORD"], role="cashier", full_name="Kasir"),
    ]
    for user in created:
        current_app.logger.info("Seeded default %s account '%s'", user.role, user.username)
    return created
