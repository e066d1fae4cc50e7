# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every ledger entry must be attributable to a person. Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re
from ..extensions import db
from ..models import User, ROLES, ROLE_VIEWER
from temple.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserValidationError(Exception):
    """Raised when user data fails validation (duplicate username, bad role...)."""
    pass


class UserNotFoundError(Exception):
    """Raised when a user is not found."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt (cost factor 12 by default).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _validate_role(role: str) -> str:
    if role not in ROLES:
        raise UserValidationError(f"Role must be one of: {', '.join(ROLES)}")
    return role


def _validate_email(email: str) -> str:
    email = (email or "").strip()
    if not EMAIL_RE.match(email):
        raise UserValidationError("A valid email is required")
    return email.lower()


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = ROLE_VIEWER,
    *,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        UserValidationError: bad username/email/role, or username/email taken
        PasswordValidationError: password doesn't meet requirements
    """
    username = (username or "").strip()
    if not username:
        raise UserValidationError("Username is required")
    if len(username) > 64:
        raise UserValidationError("Username exceeds max length 64")
    email = _validate_email(email)
    _validate_role(role)

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise UserValidationError("Username or email already exists")

    # Hash password with bcrypt (validates strength automatically)
    password_hash = hash_password(password, rounds=bcrypt_rounds)

    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        role=role,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid and account active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


def list_users(*, role: str | None = None, include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def update_user(
    user_id: int,
    *,
    email: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
) -> User:
    """Update email, role or active flag. Fields left as None are untouched."""
    user = get_user(user_id)

    if email is not None:
        email = _validate_email(email)
        clash = db.session.query(User).filter(User.email == email, User.id != user_id).first()
        if clash:
            raise UserValidationError("Email already in use")
        user.email = email

    if role is not None:
        user.role = _validate_role(role)

    if is_active is not None:
        user.is_active = bool(is_active)

    db.session.commit()
    return user


def change_password(
    user_id: int,
    current_password: str,
    new_password: str,
    *,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Replace the password after checking the current one.

    Raises UserValidationError on a wrong current password and
    PasswordValidationError if the new one is too weak.
    """
    user = get_user(user_id)
    if not verify_password(current_password or "", user.password_hash):
        raise UserValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password, rounds=bcrypt_rounds)
    db.session.commit()
    return user
