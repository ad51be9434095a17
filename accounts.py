"""User registration, activation and authentication tokens."""
import base64
import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import models
import schemas
from config import settings
from errors import DuplicateEmail, InvalidCredentials, ValidationFailed

logger = logging.getLogger(__name__)

SCOPE_ACTIVATION = "activation"
SCOPE_AUTHENTICATION = "authentication"


# -----------------------------
# Passwords and tokens
# -----------------------------
def hash_password(password: str, iterations: Optional[int] = None) -> str:
    iterations = iterations or settings.PASSWORD_HASH_ITERATIONS
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def check_password(password: str, encoded: str) -> bool:
    algorithm, iterations, salt, expected = encoded.split("$", 3)
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def generate_token() -> str:
    # 16 random bytes, base32 without padding: 26 characters
    return base64.b32encode(secrets.token_bytes(16)).decode().rstrip("=")


def token_hash(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode()).hexdigest()


def new_token(db: AsyncSession, user_id: int, ttl: timedelta, scope: str) -> schemas.AuthenticationToken:
    plaintext = generate_token()
    expiry = datetime.now(timezone.utc) + ttl
    db.add(models.Token(hash=token_hash(plaintext), user_id=user_id, expiry=expiry, scope=scope))
    return schemas.AuthenticationToken(token=plaintext, expiry=expiry)


async def _user_for_token(db: AsyncSession, scope: str, plaintext: str) -> Optional[models.User]:
    result = await db.execute(
        select(models.User)
        .join(models.Token, models.Token.user_id == models.User.id)
        .where(
            models.Token.hash == token_hash(plaintext),
            models.Token.scope == scope,
            models.Token.expiry > datetime.now(timezone.utc),
        )
    )
    return result.scalar_one_or_none()


# -----------------------------
# Users
# -----------------------------
async def register_user(db: AsyncSession, data: schemas.UserCreate) -> tuple[models.User, schemas.AuthenticationToken]:
    email = data.email.strip().lower()
    existing = await db.scalar(select(models.User.id).where(models.User.email == email))
    if existing is not None:
        raise DuplicateEmail(email)

    user = models.User(
        name=data.name,
        email=email,
        password_hash=hash_password(data.password),
        activated=False,
    )
    db.add(user)
    try:
        await db.flush()
        token = new_token(
            db, user.id, timedelta(hours=settings.ACTIVATION_TOKEN_TTL_HOURS), SCOPE_ACTIVATION
        )
        await db.commit()
    except IntegrityError as err:
        await db.rollback()
        raise DuplicateEmail(email) from err

    await db.refresh(user)
    # No mailer: the activation token goes back to the caller
    logger.info("Registered user %s", user.id)
    return user, token


async def activate_user(db: AsyncSession, plaintext: str) -> models.User:
    user = await _user_for_token(db, SCOPE_ACTIVATION, plaintext)
    if user is None:
        raise ValidationFailed({"token": "invalid or expired activation token"})

    user.activated = True
    await db.execute(
        delete(models.Token).where(
            models.Token.user_id == user.id,
            models.Token.scope == SCOPE_ACTIVATION,
        )
    )
    await db.commit()
    logger.info("Activated user %s", user.id)
    return user


async def create_authentication_token(db: AsyncSession, creds: schemas.Credentials) -> schemas.AuthenticationToken:
    user = await db.scalar(select(models.User).where(models.User.email == creds.email.strip().lower()))
    if user is None or not check_password(creds.password, user.password_hash):
        raise InvalidCredentials()

    token = new_token(
        db, user.id, timedelta(hours=settings.AUTH_TOKEN_TTL_HOURS), SCOPE_AUTHENTICATION
    )
    await db.commit()
    return token


async def user_for_authentication_token(db: AsyncSession, plaintext: str) -> Optional[models.User]:
    return await _user_for_token(db, SCOPE_AUTHENTICATION, plaintext)
