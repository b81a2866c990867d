"""Shared dependencies: JWT auth, role checks, gateway and notifier handles."""
from datetime import datetime, timedelta
from typing import Annotated, Optional

import bcrypt
from beanie import PydanticObjectId
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from academy.config import settings
from academy.models.user import User, UserRole
from academy.services.gateway import FlutterwaveClient
from academy.services.notify import Notifier

security = HTTPBearer(auto_error=False)


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(subject: str, role: str) -> str:
    expire = datetime.utcnow() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode = {"sub": subject, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id: str = payload.get("sub")
        if not user_id or payload.get("type") != "access":
            raise HTTPException(status_code=401, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user = await User.get(PydanticObjectId(user_id))
    except Exception:
        user = None
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_roles(*allowed: UserRole):
    allowed_values = [role.value for role in allowed]

    async def checker(user: Annotated[User, Depends(get_current_user)]):
        if user.role not in allowed_values:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


def get_gateway(request: Request) -> FlutterwaveClient:
    return request.app.state.gateway


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


# Type aliases for route injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminOnly = Annotated[User, Depends(require_roles(UserRole.ADMIN))]
StaffOnly = Annotated[User, Depends(require_roles(UserRole.ADMIN, UserRole.TUTOR))]
Gateway = Annotated[FlutterwaveClient, Depends(get_gateway)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
