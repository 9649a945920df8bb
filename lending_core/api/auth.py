"""
Authentication dependencies

Identity comes from a verified HS256 bearer token: ``sub`` is the user id and
``tenant_id`` the tenant. Issuing tokens belongs to the identity service;
issue_token exists for operators and tests.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..errors import AuthorizationError, LendingError, NotFoundError, StateError
from ..logging_config import get_logger, log_action
from ..system import LendingSystem


logger = get_logger("lending.api")

security = HTTPBearer(auto_error=False)

_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    """Dependency returning the process-wide LendingSystem, built on first use"""
    global _system
    if _system is None:
        _system = LendingSystem()
    return _system


def set_lending_system(system: Optional[LendingSystem]) -> None:
    global _system
    _system = system


@dataclass(frozen=True)
class Identity:
    """Caller identity extracted from the bearer token"""
    user_id: int
    tenant_id: str


def issue_token(user_id: int, tenant_id: str, secret: str, algorithm: str = "HS256",
                expires_in: timedelta = timedelta(hours=24)) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "tenant_id": tenant_id,
        "iat": now,
        "exp": now + expires_in
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LendingSystem = Depends(get_lending_system)
) -> Identity:
    """Dependency that validates the JWT and returns the caller identity"""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials,
            system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        log_action(logger, "warning", "Rejected invalid bearer token", action="authenticate", resource="auth")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if subject is None or not tenant_id or not str(subject).isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return Identity(user_id=int(subject), tenant_id=str(tenant_id))


def to_http_exception(error: LendingError) -> HTTPException:
    """Map a lending error onto an HTTP status"""
    if isinstance(error, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, AuthorizationError):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, StateError):
        status_code = status.HTTP_409_CONFLICT
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail=error.to_dict())
