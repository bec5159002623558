"""
Caller identity.

The HTTP layer resolves the bearer token into an ``AuthenticatedUser`` (id plus
the role/status from the profiles table). Services receive ``None`` for
anonymous callers and answer with ``NOT_AUTHENTICATED`` before touching data.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from ..core.config import settings
from ..schemas.common import NOT_AUTHENTICATED, OperationError
from .record_store import RecordStore, RecordStoreError, get_record_store, get_supabase_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    role: Optional[str] = None
    status: Optional[str] = None

    @property
    def is_active_dentist(self) -> bool:
        return self.role == "dentist" and self.status == "active"


def require_user(user: Optional[AuthenticatedUser]) -> Optional[OperationError]:
    if user is None:
        return OperationError(error=NOT_AUTHENTICATED)
    return None


def require_active_dentist(user: Optional[AuthenticatedUser], action: str) -> Optional[OperationError]:
    """e.g. action="create research projects" -> "Only active dentists can create research projects"."""
    denied = require_user(user)
    if denied:
        return denied
    if not user.is_active_dentist:
        return OperationError(error=f"Only active dentists can {action}")
    return None


def load_user(store: RecordStore, user_id: str) -> AuthenticatedUser:
    """Attach role/status from the profiles table; a missing profile leaves them empty."""
    try:
        profiles = store.select(settings.PROFILES_TABLE, eq={"id": user_id}, limit=1)
    except RecordStoreError as e:
        logger.warning("Profile lookup failed for %s: %s", user_id, e)
        profiles = []
    profile = profiles[0] if profiles else {}
    return AuthenticatedUser(id=user_id, role=profile.get("role"), status=profile.get("status"))


def resolve_token_user_id(token: str) -> Optional[str]:
    """Validate a Supabase access token; None when it is not accepted."""
    try:
        response = get_supabase_client().auth.get_user(token)
    except Exception as e:
        logger.info("Rejected bearer token: %s", e)
        return None
    user = getattr(response, "user", None)
    return str(user.id) if user else None


def get_current_user(
    authorization: Optional[str] = Header(None),
    store: RecordStore = Depends(get_record_store),
) -> Optional[AuthenticatedUser]:
    """FastAPI dependency: the caller, or None when unauthenticated."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        return None
    user_id = resolve_token_user_id(token)
    if user_id is None:
        return None
    return load_user(store, user_id)
