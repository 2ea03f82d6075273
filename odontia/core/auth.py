"""
Authorization Module
Verifies bearer tokens issued by the identity service and exposes the
caller's tenant scope to the endpoints. Login and OAuth flows live elsewhere.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import settings
from odontia.models import UserRole

# HTTP Bearer token scheme
security = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity resolved from the access token"""
    user_id: int
    tenant_id: Optional[int]
    role: UserRole


# ==================== JWT Token Management ====================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token

    Used by service-to-service tooling and tests; end-user tokens come
    from the identity service with the same claims.

    Args:
        data: Claims (user_id, tenant_id, role)
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify and decode a JWT token

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


# ==================== Dependencies ====================

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    Dependency to get the current caller from the bearer token

    Raises:
        HTTPException: If token is invalid or lacks the required claims
    """
    payload = verify_token(credentials.credentials)
    user_id = payload.get("user_id")
    role = payload.get("role")

    if user_id is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {role}",
        )

    tenant_id = payload.get("tenant_id")
    if tenant_id is None and role != UserRole.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not bound to a clinic",
        )

    current_user = CurrentUser(
        user_id=int(user_id),
        tenant_id=int(tenant_id) if tenant_id is not None else None,
        role=role,
    )
    request.state.current_user = current_user
    return current_user


# ==================== Role-Based Access Control ====================

class RoleChecker:
    """
    Dependency class to check if user has required roles
    """

    def __init__(self, allowed_roles: list[UserRole]):
        self.allowed_roles = allowed_roles

    def __call__(self, current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Operation not permitted. Required roles: {[role.value for role in self.allowed_roles]}"
            )
        return current_user


# Clinic staff work inside their own tenant
require_staff = RoleChecker([UserRole.ADMIN, UserRole.DENTIST, UserRole.ASSISTANT])

# Platform console
require_super_admin = RoleChecker([UserRole.SUPER_ADMIN])
