from jose import jwt, JWTError
from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session
from storefront.config import Settings, get_settings
from storefront.database import get_session
from storefront.errors import Forbidden, Unauthorized
from storefront.models.user import User

# tokens are issued by the identity provider; this service only verifies them
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()

    expire = datetime.utcnow() + (
        expires_delta
        if expires_delta
        else timedelta(minutes=60)
    )

    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.algorithm
    )


def decode_access_token(token: str, settings: Settings):
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> User:
    if credentials is None:
        raise Unauthorized()

    payload = decode_access_token(credentials.credentials, settings)
    if payload is None:
        raise Unauthorized()

    user_id = payload.get("user_id") or payload.get("sub")
    if user_id is None:
        raise Unauthorized()

    try:
        user = session.get(User, int(user_id))
    except (TypeError, ValueError):
        raise Unauthorized()

    if user is None:
        raise Unauthorized()

    if not user.can_login:
        raise Forbidden("User account is disabled")

    return user
