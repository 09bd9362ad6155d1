"""FastAPI dependencies shared by the routers (credential checks, page sizes and cursor tokens)."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.unicore.db.repository import PageCursor
from src.unicore.errors import AuthError
from src.unicore.services.auth_service import AuthService
from src.unicore.services.identity import VerifiedIdentity
from src.unicore.state import get_state

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    """AuthService for this app; AuthError when no credential verification is configured."""
    auth = get_state(request.app).auth
    if auth is None:
        logger.warning("Credential verification is not configured; rejecting request")
        raise AuthError()
    return auth


def bearer_credential(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Raw bearer token from the Authorization header; AuthError when it is missing."""
    if not credentials or not credentials.credentials:
        raise AuthError("missing bearer credential")
    return credentials.credentials


def require_identity(
    credential: str = Depends(bearer_credential),
    auth: AuthService = Depends(get_auth_service),
) -> VerifiedIdentity:
    """Verified caller identity; used to guard the VM and payout routes."""
    return auth.verify(credential)


def resolve_page_size(request: Request, limit: Optional[int]) -> int:
    """Requested page size, defaulted and clamped to the configured maximum."""
    cfg = get_state(request.app).config
    if limit is None:
        return cfg.page_size_default
    return max(1, min(int(limit), cfg.page_size_max))


def parse_cursor(request: Request, token: Optional[str]) -> Optional[PageCursor]:
    """Verify and parse a cursor token from a list request; no token means the first page."""
    if not token:
        return None
    return PageCursor.from_token(token, get_state(request.app).cursor_key)


def cursor_token(request: Request, cursor: Optional[PageCursor]) -> Optional[str]:
    """Signed token for the next page, or None when the page was empty."""
    if cursor is None:
        return None
    return cursor.to_token(get_state(request.app).cursor_key)
