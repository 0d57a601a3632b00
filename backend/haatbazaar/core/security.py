# haatbazaar/core/security.py
# Password hashing, JWT issuing/decoding and the auth dependencies used by routers
from datetime import timedelta
from typing import Annotated, List, Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from haatbazaar.core.config import settings
from haatbazaar.core.exceptions import AuthenticationError, PermissionDeniedError
from haatbazaar.core.logging_setup import logger
from haatbazaar.db.schemas.common_schemas import utcnow
from haatbazaar.db.schemas.user_schemas import UserDoc
from haatbazaar.modules.users.repository import UserRepository

BCRYPT_ROUNDS = 10

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed.")
        return False


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    now = utcnow()
    expire = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"id": user_id, "iat": now, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> str:
    """Returns the user id carried by a valid token."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Not authorized, token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Not authorized, token is invalid") from e
    user_id = payload.get("id")
    if not user_id:
        raise AuthenticationError("Not authorized, token is invalid")
    return str(user_id)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    user_repo: Annotated[UserRepository, Depends()],
) -> UserDoc:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authorized, your token is missing")
    user_id = decode_access_token(credentials.credentials)
    user = await user_repo.get_by_id(user_id)
    if not user:
        raise AuthenticationError("Not authorized, user not found")
    return user


CurrentUser = Annotated[UserDoc, Depends(get_current_user)]


def require_role(roles: List[str]):
    """Dependency factory restricting a route to the given roles."""
    async def role_checker(current_user: CurrentUser) -> UserDoc:
        if current_user.role.value not in roles:
            logger.bind(user_id=current_user.id, role=current_user.role.value).warning("Role not permitted for route.")
            raise PermissionDeniedError(f"User role '{current_user.role.value}' is not authorized to access this route")
        return current_user
    return role_checker
