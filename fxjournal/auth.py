# fxjournal/auth.py
import hashlib
import hmac
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from .config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against a 'sha256:<hex>' hash"""
    if not hashed_password or ':' not in hashed_password:
        return False

    algo, stored_hash = hashed_password.split(':', 1)
    if algo != 'sha256':
        return False

    computed_hash = hashlib.sha256(plain_password.encode()).hexdigest()
    return hmac.compare_digest(stored_hash, computed_hash)


def get_password_hash(password: str) -> str:
    hex_hash = hashlib.sha256(password.encode()).hexdigest()
    return f"sha256:{hex_hash}"


class CredentialVerifier(ABC):
    """Decides whether a username/password pair may use the journal"""

    @abstractmethod
    def verify(self, username: str, password: str) -> bool:
        pass


class StaticCredentialVerifier(CredentialVerifier):
    """A single fixed login, the password kept only as a hash"""

    def __init__(self, username: str, password: str):
        self.username = username
        self.password_hash = get_password_hash(password)

    def verify(self, username: str, password: str) -> bool:
        if not hmac.compare_digest(username.encode(), self.username.encode()):
            return False
        return verify_password(password, self.password_hash)

    @classmethod
    def from_settings(cls):
        return cls(settings.JOURNAL_USERNAME, settings.JOURNAL_PASSWORD)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """Decode a token, returning its payload or None if invalid or expired"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload
