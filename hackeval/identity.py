"""Token issuance and login for provisioned accounts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from dotenv import load_dotenv
from sqlalchemy.orm import Session

from .models import User

logger = logging.getLogger(__name__)

load_dotenv()
DEFAULT_EXPIRES_IN = int(os.getenv("JWT_EXPIRES_IN", "86400"))
ALGORITHM = "HS256"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenMalformedError(TokenError):
    """The token is not a valid signed token for this service."""


class TokenExpiredError(TokenError):
    """The token was valid but its expiry has passed."""


class AuthenticationError(Exception):
    """Email/password did not match a live account."""


@dataclass(frozen=True)
class Principal:
    """Identity carried by a verified token."""

    subject: int
    role: str


class TokenService:
    """Issues and verifies signed tokens carrying (subject id, role)."""

    def __init__(self, secret: Optional[str] = None, expires_in: Optional[int] = None):
        load_dotenv()
        key = secret or os.getenv("JWT_SECRET")
        if not key:
            raise ValueError("Environment variable 'JWT_SECRET' is not set")
        self._secret = key
        self.expires_in = expires_in if expires_in is not None else DEFAULT_EXPIRES_IN

    def issue(self, subject: int, role: str, *, expires_in: Optional[int] = None) -> str:
        now = datetime.now(timezone.utc)
        lifetime = self.expires_in if expires_in is None else expires_in
        payload = {
            "sub": str(subject),
            "role": role,
            "iat": now,
            "exp": now + timedelta(seconds=lifetime),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Principal:
        """Decode ``token`` and return its :class:`Principal`.

        Raises
        ------
        TokenExpiredError
            If the signature is valid but the token has expired.
        TokenMalformedError
            For any other decoding or signature failure, or missing claims.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenMalformedError("Invalid token") from exc

        role = claims.get("role")
        try:
            subject = int(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise TokenMalformedError("Invalid token subject") from exc
        if not role:
            raise TokenMalformedError("Token carries no role")
        return Principal(subject=subject, role=str(role))


def authenticate(
    session: Session, email: str, password: str, tokens: TokenService
) -> tuple[User, str]:
    """Check ``email``/``password`` and return the account with a fresh token.

    ``last_login`` is bumped on success; the caller commits.

    Raises
    ------
    AuthenticationError
        If no live account matches or the password is wrong.
    """

    user = User.get_by_email(session, email)
    if user is None or not user.check_password(password):
        # Never log the password; the email alone is enough to trace attempts.
        logger.info("Rejected login for %s", email)
        raise AuthenticationError("Invalid email or password")

    user.last_login = datetime.now(timezone.utc)
    session.flush()
    return user, tokens.issue(user.id, user.role)


def change_password(
    session: Session, user_id: int, current_password: str, new_password: str
) -> User:
    """Replace the password of a live account after checking the current one.

    Raises
    ------
    AuthenticationError
        If the account does not exist, is deleted, or ``current_password``
        is wrong.
    ValueError
        If ``new_password`` is blank.
    """

    user = session.get(User, user_id)
    if user is None or user.deleted or not user.check_password(current_password):
        logger.info("Rejected password change for user %s", user_id)
        raise AuthenticationError("Current password is incorrect")
    if not new_password or not new_password.strip():
        raise ValueError("New password must not be blank")

    user.set_password(new_password)
    session.flush()
    return user
