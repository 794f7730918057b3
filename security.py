from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel

from database import MovieStore
from settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

_pwd_context: Optional[CryptContext] = None


class TokenData(BaseModel):
    """Decoded JWT payload."""
    sub: str
    iat: int
    exp: int


class AuthenticatedUser(BaseModel):
    """Identity attached to a request once its bearer token checks out."""
    Username: str


def get_pwd_context() -> CryptContext:
    global _pwd_context
    if _pwd_context is None:
        _pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=get_settings().bcrypt_rounds,
        )
    return _pwd_context


def reset_pwd_context() -> None:
    """Drop the cached hasher so new settings apply (useful in tests)."""
    global _pwd_context
    _pwd_context = None


def hash_password(password: str) -> str:
    return get_pwd_context().hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return get_pwd_context().verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # stored value is not a hash we recognise
        return False


def create_access_token(subject: str) -> str:
    """Create a signed JWT for the given Username."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.jwt_expires_in)).timestamp()),
    }
    return jwt.encode(
        payload,
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> TokenData:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
        return TokenData(**payload)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


def authenticate(store: MovieStore, username: str, password: str) -> Optional[dict]:
    """Return the stored user when the credentials match, else None."""
    user = store.find_user(username)
    if not user or not verify_password(password, user.get("Password", "")):
        return None
    return user


async def require_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """FastAPI dependency ensuring the request has a valid JWT Bearer token.

    The identity is whatever Username the signed token carries; the account
    is not re-read, so a token outlives a deleted or renamed user until it
    expires.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token_data = decode_token(credentials.credentials)
    return AuthenticatedUser(Username=token_data.sub)
