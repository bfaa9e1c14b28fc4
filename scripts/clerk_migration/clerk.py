"""Clerk Backend API implementation of the identity gateway."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from scripts.clerk_migration.config import ClerkConfig
from scripts.clerk_migration.errors import GatewayError, GatewayErrorKind
from scripts.clerk_migration.gateway import (
    DEFAULT_HASH_SCHEME,
    DEFAULT_MEMBER_ROLE,
    IdentityGateway,
)
from scripts.clerk_migration.models import IdentityHandle

logger = logging.getLogger("clerk_migration.clerk")

STATUS_CONFLICT = 422
STATUS_RATE_LIMITED = 429


def _error_message(resp: requests.Response) -> str:
    """Best human-readable message from a Clerk error body."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        errors = body.get("errors") or []
        if errors and isinstance(errors[0], dict):
            first = errors[0]
            msg = first.get("long_message") or first.get("message")
            if msg:
                return msg
    text = (resp.text or "").strip()
    return text[:500] or f"HTTP {resp.status_code}"


class ClerkGateway(IdentityGateway):
    """Calls the Clerk Backend API over a shared requests.Session."""

    def __init__(
        self,
        config: ClerkConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base = config.api_base_url.rstrip("/")
        self._timeout = config.timeout_s
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {config.secret_key}",
            "Content-Type": "application/json",
        })

    def _post(self, path: str, payload: dict[str, Any], conflict_ok: bool = False) -> dict:
        """POST ``payload`` and return the decoded body, classifying failures.

        A 422 is classified as CONFLICT only when ``conflict_ok`` is set.
        """
        url = f"{self._base}{path}"
        try:
            resp = self._session.post(url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GatewayError(f"Request to {path} failed: {exc}") from exc

        if resp.status_code == STATUS_RATE_LIMITED:
            logger.debug("Clerk rate limit hit on %s", path)
            raise GatewayError(
                "Rate limit exceeded", GatewayErrorKind.RATE_LIMITED, STATUS_RATE_LIMITED
            )
        if resp.status_code == STATUS_CONFLICT and conflict_ok:
            raise GatewayError(
                _error_message(resp), GatewayErrorKind.CONFLICT, STATUS_CONFLICT
            )
        if not resp.ok:
            raise GatewayError(_error_message(resp), GatewayErrorKind.FATAL, resp.status_code)

        try:
            return resp.json()
        except ValueError as exc:
            raise GatewayError(f"Invalid JSON response from {path}") from exc

    def create_organization(self, name: str, created_by_email: str) -> str:
        org = self._post("/organizations", {
            "name": name,
            "created_by": created_by_email,
        })
        return org["id"]

    def create_identity(
        self,
        email: str,
        first_name: str,
        last_name: str,
        credential_digest: str,
        hash_scheme: str = DEFAULT_HASH_SCHEME,
    ) -> IdentityHandle:
        user = self._post(
            "/users",
            {
                "email_address": [email],
                "first_name": first_name,
                "last_name": last_name,
                "password_digest": credential_digest,
                "password_hasher": hash_scheme,
            },
            conflict_ok=True,
        )
        return IdentityHandle(id=user["id"], email=email)

    def create_membership(
        self,
        organization_id: str,
        identity: IdentityHandle,
        role: str = DEFAULT_MEMBER_ROLE,
    ) -> None:
        self._post(
            f"/organizations/{organization_id}/memberships",
            {"user_id": identity.id, "role": role},
        )
