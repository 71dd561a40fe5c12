"""Authentication utilities for the ObelixIA backend.

Tokens are issued by Supabase Auth. We verify them with the project's JWT
secret and read the tenant and role from ``app_metadata``.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("obelixia.auth")

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "obelixia_auth"

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)

DEFAULT_ROLE = "gestor"
MANAGER_ROLES = frozenset({
    "superadmin",
    "admin",
    "director_comercial",
    "director_oficina",
    "responsable_comercial",
    "auditor",
})


def create_access_token(
    settings: Settings,
    user_id: str,
    organization_id: str | None = None,
    role: str = DEFAULT_ROLE,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a Supabase-shaped access token (used by tests and local tooling)."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=1))

    app_metadata: dict = {"role": role}
    if organization_id:
        app_metadata["organization_id"] = organization_id

    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "role": "authenticated",
        "app_metadata": app_metadata,
    }
    if settings.jwt_audience:
        to_encode["aud"] = settings.jwt_audience
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthContext:
    """Caller identity extracted from the access token."""

    def __init__(
        self,
        user_id: str,
        organization_id: str | None = None,
        role: str = DEFAULT_ROLE,
        email: str | None = None,
    ):
        self.user_id = user_id
        self.organization_id = organization_id
        self.role = role
        self.email = email

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    @property
    def tenant_key(self) -> str:
        """Key used to partition per-tenant state such as panel snapshots."""
        return self.organization_id or f"user:{self.user_id}"


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext:
    """Get the current caller from the bearer token or auth cookie."""
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE_NAME)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated - provide Authorization header or auth cookie",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    app_metadata = payload.get("app_metadata") or {}
    return AuthContext(
        user_id=user_id,
        organization_id=app_metadata.get("organization_id"),
        role=app_metadata.get("role") or DEFAULT_ROLE,
        email=payload.get("email"),
    )


async def get_manager_user(
    user: Annotated[AuthContext, Depends(get_current_user)],
) -> AuthContext:
    """Require a management role (directors, admins, auditors)."""
    if not user.is_manager:
        logger.warning(f"Forbidden manager access | user={user.user_id} role={user.role}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action requires a management role",
        )
    return user


# Type aliases for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
ManagerUser = Annotated[AuthContext, Depends(get_manager_user)]
