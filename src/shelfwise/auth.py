"""Password hashing and JWT handling for API callers."""

import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60
REFRESH_TOKEN_EXPIRE_DAYS = 7

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

_PASSWORD_RULES = [
    (r"[A-Z]", "Password must contain at least one uppercase letter"),
    (r"[a-z]", "Password must contain at least one lowercase letter"),
    (r"\d", "Password must contain at least one number"),
    (r'[!@#$%^&*(),.?":{}|<>]', "Password must contain at least one special character"),
]


class SecretKeyError(Exception):
    """Raised when the JWT secret is left at its development default outside debug mode."""

    pass


def _get_secret_key() -> str:
    """Read the signing key from JWT_SECRET_KEY (or SECRET_KEY).

    The built-in development key is only accepted when DEBUG is on and ENV
    is not production.

    Raises:
        SecretKeyError: If the default key would be used in production.
    """
    secret_key = os.getenv("JWT_SECRET_KEY", os.getenv("SECRET_KEY", _DEFAULT_SECRET_KEY))
    debug_mode = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
    is_production = os.getenv("ENV", "development").lower() in ("production", "prod")

    if secret_key == _DEFAULT_SECRET_KEY:
        if is_production or not debug_mode:
            raise SecretKeyError(
                "JWT_SECRET_KEY must be set to a secure value outside debug mode. "
                'Generate one with: python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        logger.warning("Using the development JWT secret; set JWT_SECRET_KEY before deploying.")

    return secret_key


SECRET_KEY = _get_secret_key()

# Compared against when the email is unknown so login timing does not reveal accounts
DUMMY_HASH = bcrypt.hashpw(b"shelfwise-dummy-password", bcrypt.gensalt()).decode("utf-8")


class TokenData(BaseModel):
    """Identity carried in a token."""

    user_id: int
    email: str


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RefreshTokenRequest(BaseModel):
    refresh_token: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def validate_password(password: str) -> tuple[bool, str]:
    """Check password complexity.

    A valid password has at least 8 characters, an uppercase letter, a
    lowercase letter, a digit and a special character.

    Returns:
        Tuple of (is_valid, error_message). The message is empty when valid.
    """
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    for pattern, message in _PASSWORD_RULES:
        if not re.search(pattern, password):
            return False, message
    return True, ""


def _create_token(user_id: int, email: str, token_type: str, lifetime: timedelta) -> str:
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.now(timezone.utc) + lifetime,
        "type": token_type,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(user_id: int, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a short-lived access token (default one hour)."""
    return _create_token(
        user_id,
        email,
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: int, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a refresh token (default seven days)."""
    return _create_token(
        user_id,
        email,
        REFRESH_TOKEN_TYPE,
        expires_delta or timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )


def _decode_token(token: str, expected_type: str) -> Optional[TokenData]:
    """Decode a token, returning None when invalid, expired or of the wrong type."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != expected_type:
        return None
    try:
        user_id = int(payload.get("sub", 0))
    except (TypeError, ValueError):
        return None
    if user_id <= 0:
        return None
    return TokenData(user_id=user_id, email=payload.get("email", ""))


def decode_access_token(token: str) -> Optional[TokenData]:
    return _decode_token(token, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Optional[TokenData]:
    return _decode_token(token, REFRESH_TOKEN_TYPE)
