"""Request authentication: API keys, reporter tokens and the same-origin admin UI."""

import secrets
from dataclasses import dataclass
from enum import Enum

import structlog
from fastapi import Depends, Header, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import settings
from ticketflow.database import get_db, utcnow
from ticketflow.models.api_key import ApiKey, hash_key
from ticketflow.models.enums import AuthorType
from ticketflow.services.activity_log import Actor
from ticketflow.services.errors import AuthError

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)

REPORTER_TOKEN_PREFIX = "rt_"


class AuthScope(str, Enum):
    API_KEY = "api_key"
    REPORTER = "reporter"
    ADMIN_UI = "admin_ui"


@dataclass(frozen=True)
class AuthContext:
    scope: AuthScope
    key_name: str | None = None

    @property
    def is_reporter(self) -> bool:
        return self.scope == AuthScope.REPORTER

    def actor(
        self,
        actor_type: AuthorType | None = None,
        actor_name: str | None = None,
        reporter_id: str | None = None,
        reporter_name: str | None = None,
    ) -> Actor:
        """Resolve who is acting. Reporters cannot claim another author type."""
        if self.is_reporter:
            return Actor(type=AuthorType.USER, name=reporter_name or reporter_id or "reporter")
        default_name = self.key_name or ("api" if self.scope == AuthScope.API_KEY else "admin")
        return Actor(type=AuthorType(actor_type or AuthorType.ADMIN), name=actor_name or default_name)


def _matches(candidate: str, expected: str) -> bool:
    return bool(expected) and secrets.compare_digest(candidate.encode(), expected.encode())


def _check_reporter_token(token: str) -> AuthContext:
    if settings.reporter_token:
        if _matches(token, settings.reporter_token):
            return AuthContext(scope=AuthScope.REPORTER)
        logger.warning("auth_rejected", reason="bad_reporter_token")
        raise AuthError("Invalid reporter token")
    if settings.debug:
        # No reporter token configured: accepted in development only
        return AuthContext(scope=AuthScope.REPORTER)
    logger.warning("auth_rejected", reason="reporter_token_not_configured")
    raise AuthError("Reporter access is not configured")


async def _check_api_key(db: AsyncSession, key: str) -> AuthContext:
    if _matches(key, settings.api_key):
        return AuthContext(scope=AuthScope.API_KEY)

    result = await db.execute(
        select(ApiKey).where(ApiKey.key_hash == hash_key(key), ApiKey.is_active.is_(True))
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        logger.warning("auth_rejected", reason="bad_api_key", key_prefix=key[:8])
        raise AuthError("Invalid API key")

    api_key.last_used_at = utcnow()
    await db.commit()
    return AuthContext(scope=AuthScope.API_KEY, key_name=api_key.name)


async def authenticate(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(security),
    x_reporter_token: str | None = Header(None, description="Reporter-scoped token"),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Classify the caller as api_key, reporter or admin_ui."""
    if x_reporter_token:
        return _check_reporter_token(x_reporter_token)

    if credentials is not None:
        token = credentials.credentials
        if token.startswith(REPORTER_TOKEN_PREFIX):
            return _check_reporter_token(token)
        return await _check_api_key(db, token)

    if request.headers.get("authorization"):
        raise AuthError("Unsupported authorization scheme")
    if settings.admin_ui_enabled:
        return AuthContext(scope=AuthScope.ADMIN_UI)
    raise AuthError("Authentication required")


async def require_full_access(auth: AuthContext = Depends(authenticate)) -> AuthContext:
    """Reject reporter-scoped callers."""
    if auth.is_reporter:
        raise AuthError("This endpoint requires an API key or the admin UI", status_code=403)
    return auth


async def require_reporter(auth: AuthContext = Depends(authenticate)) -> AuthContext:
    """Accept only reporter-scoped callers."""
    if not auth.is_reporter:
        raise AuthError("This endpoint requires a reporter token", status_code=403)
    return auth
