# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Accounts are self-registered by buyers; roles other than "user" are granted
by an admin (API or CLI).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special character
- Session tokens managed separately (see session_service.py)
- Banned accounts cannot authenticate
"""

import bcrypt
import re
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_USER, VALID_ROLES
from market.errors import NotFoundError, ValidationError
from market.time_utils import utcnow
from market.validation import LIKE_ESCAPE, like_pattern


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
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
    """Hash password using bcrypt with cost factor 12, after the strength check."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt verification. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(name: str, email: str, password: str, role: str = ROLE_USER) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: malformed name/email, unknown role, or email taken
        PasswordValidationError: password doesn't meet requirements
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()

    if not name:
        raise ValidationError("name is required")
    if len(name) > 100:
        raise ValidationError("Name too long")
    if not EMAIL_RE.match(email) or len(email) > 191:
        raise ValidationError("Invalid email address")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")

    existing = db.session.query(User).filter(User.email == email).first()
    if existing:
        raise ValidationError("Email already registered")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is not banned,
    None otherwise. Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.banned.is_(False),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def set_role(user_id: int, role: str) -> User:
    """Change a user's role."""
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")

    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")

    user.role = role
    db.session.commit()
    return user


USER_SEARCH_FIELDS = {"name": User.name, "email": User.email}
USER_SEARCH_OPERATORS = ("contains", "starts_with", "ends_with")
USER_SORT_FIELDS = {
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "createdAt": User.created_at,
}
MAX_USER_PAGE = 100


def list_users(
    *,
    limit: int = 10,
    offset: int = 0,
    search_value: str = "",
    search_field: str = "name",
    search_operator: str = "contains",
    sort_by: str = "createdAt",
    sort_direction: str = "desc",
) -> dict:
    """Admin user listing: {"users", "total", "limit", "offset"}."""
    if limit < 1 or limit > MAX_USER_PAGE:
        raise ValidationError(f"limit must be between 1 and {MAX_USER_PAGE}")
    if offset < 0:
        raise ValidationError("offset cannot be negative")
    if search_field not in USER_SEARCH_FIELDS:
        raise ValidationError("searchField must be one of: name, email")
    if search_operator not in USER_SEARCH_OPERATORS:
        raise ValidationError(f"searchOperator must be one of: {', '.join(USER_SEARCH_OPERATORS)}")
    if sort_by not in USER_SORT_FIELDS:
        raise ValidationError(f"sortBy must be one of: {', '.join(USER_SORT_FIELDS)}")
    if sort_direction not in ("asc", "desc"):
        raise ValidationError("sortDirection must be asc or desc")

    query = db.session.query(User)
    if search_value:
        column = USER_SEARCH_FIELDS[search_field]
        query = query.filter(column.ilike(like_pattern(search_value, search_operator), escape=LIKE_ESCAPE))

    total = query.count()

    column = USER_SORT_FIELDS[sort_by]
    ordering = column.asc() if sort_direction == "asc" else column.desc()
    users = query.order_by(ordering, User.id.asc()).offset(offset).limit(limit).all()

    return {
        "users": [u.to_dict() for u in users],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
