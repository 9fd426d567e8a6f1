# portal_hub/security.py
"""
Request dependencies: admin token check and access to the shared
services kept on ``app.state``.
"""
from __future__ import annotations
import hmac
from typing import Optional

from fastapi import Header, Request

from portal_hub.database import SessionFactory
from portal_hub.errors import PermissionDenied, InvalidArgument
from portal_hub.services.master_data import MasterDataCache
from portal_hub.settings import settings


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """Privileged operations need X-Admin-Token equal to ADMIN_TOKEN."""
    expected = settings.ADMIN_TOKEN
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise PermissionDenied("Admin token required")


def require_client(x_client_id: Optional[str] = Header(None)) -> str:
    client_id = (x_client_id or "").strip()
    if not client_id:
        raise InvalidArgument("X-Client-Id header is required")
    return client_id


def get_factory(request: Request) -> SessionFactory:
    return request.app.state.session_factory


def get_master_data(request: Request) -> MasterDataCache:
    return request.app.state.master_data
