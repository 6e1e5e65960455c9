import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy import select, func
from sqlalchemy.orm import sessionmaker

from errors import AuthError
from models import AdminCredential

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class CredentialVerifier(Protocol):
    def verify(self, username: Optional[str], password: str) -> Optional[str]:
        """Return the authenticated subject, or None on any mismatch."""
        ...


class ConfiguredSecret:
    """Single admin secret held in process configuration."""

    subject = "admin"

    def __init__(self, secret: str):
        self._secret = secret.encode("utf-8")

    def verify(self, username: Optional[str], password: str) -> Optional[str]:
        if secrets.compare_digest(password.encode("utf-8"), self._secret):
            return self.subject
        return None


class HashedStoreCredential:
    """Admin rows with salted password hashes in the ``admins`` table."""

    def __init__(self, session_factory: sessionmaker, default_username: str = "admin",
                 context: CryptContext = pwd_context):
        self._session_factory = session_factory
        self.default_username = default_username
        self._context = context

    def ensure_admin(self, username: str, password: str) -> bool:
        """Seed the first admin row if the table is empty. Returns True when created."""
        with self._session_factory() as db:
            count = db.execute(select(func.count()).select_from(AdminCredential)).scalar_one()
            if count:
                return False
            db.add(AdminCredential(username=username, password_hash=self._context.hash(password)))
            db.commit()
        logger.info("Created admin account %r", username)
        return True

    def verify(self, username: Optional[str], password: str) -> Optional[str]:
        username = username or self.default_username
        with self._session_factory() as db:
            row = db.execute(
                select(AdminCredential).where(AdminCredential.username == username)
            ).scalar_one_or_none()
            password_hash = row.password_hash if row else None
        if password_hash is None:
            # keep unknown-user and wrong-password paths indistinguishable
            self._context.dummy_verify()
            return None
        return username if self._context.verify(password, password_hash) else None


class AdminAuth:
    """Password login that yields a signed, time-limited bearer token."""

    def __init__(self, verifier: CredentialVerifier, secret_key: str,
                 token_ttl: timedelta = timedelta(hours=2)):
        self.verifier = verifier
        self._secret_key = secret_key
        self.token_ttl = token_ttl

    def login(self, password: str, username: Optional[str] = None, origin: str = "-") -> str:
        """Check the password and issue a token.

        Raises:
            AuthError: On any credential mismatch; the reason is not disclosed.
        """
        subject = self.verifier.verify(username, password or "")
        if subject is None:
            logger.warning("Failed login attempt from %s", origin)
            raise AuthError("Invalid credentials")
        logger.info("Successful admin login %r from %s", subject, origin)
        return self.issue_token(subject)

    def issue_token(self, subject: str) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": subject,
            "is_admin": True,
            "iat": now,
            "exp": now + self.token_ttl,
        }
        return jwt.encode(claims, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: Optional[str]) -> dict:
        """Validate signature and expiry and return the claims.

        Raises:
            AuthError: Token absent, malformed, expired, badly signed or not an admin token.
        """
        if not token:
            raise AuthError()
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM],
                                options={"require": ["exp", "sub"]})
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired token")
            raise AuthError()
        except jwt.PyJWTError as exc:
            logger.warning("Rejected invalid token: %s", exc)
            raise AuthError()
        if claims.get("is_admin") is not True:
            raise AuthError()
        return claims


bearer_scheme = HTTPBearer(auto_error=False)


def get_auth(request: Request) -> AdminAuth:
    return request.app.state.auth


def verify_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AdminAuth = Depends(get_auth),
) -> dict:
    """FastAPI dependency guarding admin routes."""
    return auth.verify(credentials.credentials if credentials else None)
