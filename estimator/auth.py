# estimator/auth.py

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt

from estimator.config import DEFAULT_JWT_SECRET
from estimator.exceptions import AuthenticationError, ValidationError
from estimator.project_store import ProjectStore

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000
TOKEN_TTL_DAYS = 7

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


# -------------------------------------------------------------------
# Passwords
# -------------------------------------------------------------------

def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Salted PBKDF2-SHA256, stored as pbkdf2_sha256$<iterations>$<salt>$<hash>."""
    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "pbkdf2_sha256${}${}${}".format(
        iterations,
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    )


def verify_password(password: str, hashed: str) -> bool:
    try:
        algorithm, iterations, salt_b64, digest_b64 = hashed.split("$")
        if algorithm != "pbkdf2_sha256":
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False

    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(candidate, expected)


# -------------------------------------------------------------------
# Tokens
# -------------------------------------------------------------------

def create_token(
    payload: Dict[str, Any],
    secret: str = DEFAULT_JWT_SECRET,
    ttl_days: int = TOKEN_TTL_DAYS,
) -> str:
    now = datetime.now(timezone.utc)
    claims = dict(payload)
    claims["iat"] = now
    claims["exp"] = now + timedelta(days=ttl_days)
    return jwt.encode(claims, secret, algorithm="HS256")


def verify_token(token: Optional[str], secret: str = DEFAULT_JWT_SECRET) -> Optional[Dict[str, Any]]:
    """Decoded claims, or None for a missing, tampered or expired token."""
    if not token:
        return None
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as e:
        logger.info("Token verification failed: %s", e)
        return None


# -------------------------------------------------------------------
# Validation helpers
# -------------------------------------------------------------------

def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(_EMAIL_RE.match(email))


def is_valid_password(password: Any) -> bool:
    """At least 8 characters with an uppercase letter, a lowercase letter and a digit."""
    return isinstance(password, str) and bool(_PASSWORD_RE.match(password))


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")[:50]


def _public(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password"}


# -------------------------------------------------------------------
# Account flows
# -------------------------------------------------------------------

def register_user(
    store: ProjectStore,
    email: str,
    password: str,
    name: str,
    secret: str = DEFAULT_JWT_SECRET,
    ttl_days: int = TOKEN_TTL_DAYS,
) -> Tuple[Dict[str, Any], str]:
    email = (email or "").strip().lower()
    name = (name or "").strip()

    if not email or not password or not name:
        raise ValidationError("Email, password, and name are required")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    if not is_valid_password(password):
        raise ValidationError(
            "Password must be at least 8 characters with uppercase, lowercase, and number"
        )
    if store.find_user_by_email(email):
        raise ValidationError("User with this email already exists")

    user = store.create_user(email, hash_password(password), name)
    logger.info("Registered user %s", user["id"])

    token = create_token({"user_id": user["id"], "email": email}, secret, ttl_days)
    return _public(user), token


def login_user(
    store: ProjectStore,
    email: str,
    password: str,
    secret: str = DEFAULT_JWT_SECRET,
    ttl_days: int = TOKEN_TTL_DAYS,
) -> Tuple[Dict[str, Any], str]:
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = store.find_user_by_email(email.strip().lower())
    # same message for unknown email and wrong password
    if user is None or not verify_password(password, user.get("password", "")):
        raise AuthenticationError("Invalid email or password")

    token = create_token({"user_id": user["id"], "email": user["email"]}, secret, ttl_days)
    return _public(user), token


def current_user(
    store: ProjectStore,
    token: Optional[str],
    secret: str = DEFAULT_JWT_SECRET,
) -> Optional[Dict[str, Any]]:
    claims = verify_token(token, secret)
    if not claims or not claims.get("user_id"):
        return None
    user = store.get_user(claims["user_id"])
    return _public(user) if user else None
