"""Identity provider client (GoTrue-compatible auth server).

The application never stores passwords. Sign-in and sign-up are delegated to
the identity provider; the API then issues its own session cookie.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import httpx

from everease.core.config import settings
from everease.core.exceptions import (
    ConfigurationError,
    DependencyError,
    EverEaseError,
    ValidationError,
)
from everease.services.http_service import request_with_retries
from everease.utils.normalization import clean_email, normalize_email

logger = logging.getLogger(__name__)

IDP_TIMEOUT_SECONDS = 15.0
ADMIN_PAGE_SIZE = 200
ADMIN_MAX_PAGES = 50


class InvalidCredentialsError(EverEaseError):
    status_code = 401
    default_message = "Invalid email or password"


class IdentityAlreadyExistsError(ValidationError):
    default_message = "An account with this email already exists. Sign in instead."


@dataclass
class Identity:
    """An authenticated (or freshly registered) identity."""

    id: UUID
    email: str
    metadata: dict[str, Any] = field(default_factory=dict)
    access_token: str | None = None


class IdentityProvider(Protocol):
    async def sign_in(self, email: str, password: str) -> Identity: ...

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> Identity: ...

    async def get_identity(self, access_token: str) -> Identity: ...

    async def lookup_identity_by_email(self, email: str) -> Identity | None: ...


def _identity_from_user(user: dict, access_token: str | None = None) -> Identity:
    try:
        identity_id = UUID(str(user["id"]))
    except (KeyError, ValueError) as exc:
        raise DependencyError("Identity provider returned a malformed user") from exc
    return Identity(
        id=identity_id,
        email=clean_email(user.get("email")) or "",
        metadata=user.get("user_metadata") or {},
        access_token=access_token,
    )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(
            data.get("msg")
            or data.get("error_description")
            or data.get("message")
            or data.get("error")
            or f"HTTP {response.status_code}"
        )
    return f"HTTP {response.status_code}"


class GoTrueIdentityProvider:
    """IdentityProvider over the GoTrue REST API."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_key = service_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/auth/v1",
            timeout=IDP_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer or self.anon_key}",
            "Content-Type": "application/json",
        }

    async def sign_in(self, email: str, password: str) -> Identity:
        async with self._client() as client:
            response = await request_with_retries(
                lambda: client.post(
                    "/token",
                    params={"grant_type": "password"},
                    headers=self._headers(),
                    json={"email": clean_email(email), "password": password},
                ),
                service="Identity provider",
            )

        if response.status_code in (400, 401, 422):
            raise InvalidCredentialsError()
        if response.status_code != 200:
            logger.error("Identity provider sign-in failed: HTTP %s", response.status_code)
            raise DependencyError(f"Sign-in failed: {_error_message(response)}")

        data = response.json()
        return _identity_from_user(data.get("user") or {}, data.get("access_token"))

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> Identity:
        async with self._client() as client:
            response = await request_with_retries(
                lambda: client.post(
                    "/signup",
                    headers=self._headers(),
                    json={
                        "email": clean_email(email),
                        "password": password,
                        "data": metadata or {},
                    },
                ),
                service="Identity provider",
            )

        if response.status_code in (400, 422):
            message = _error_message(response)
            if "already" in message.lower() or "exists" in message.lower():
                raise IdentityAlreadyExistsError()
            raise ValidationError(message)
        if response.status_code != 200:
            logger.error("Identity provider sign-up failed: HTTP %s", response.status_code)
            raise DependencyError(f"Sign-up failed: {_error_message(response)}")

        data = response.json()
        # Autoconfirm returns a session, otherwise just the user
        user = data.get("user") if isinstance(data.get("user"), dict) else data
        return _identity_from_user(user, data.get("access_token"))

    async def get_identity(self, access_token: str) -> Identity:
        async with self._client() as client:
            response = await request_with_retries(
                lambda: client.get("/user", headers=self._headers(access_token)),
                service="Identity provider",
            )
        if response.status_code == 401:
            raise InvalidCredentialsError("Session expired. Please sign in again.")
        if response.status_code != 200:
            raise DependencyError(f"Identity lookup failed: {_error_message(response)}")
        return _identity_from_user(response.json(), access_token)

    async def lookup_identity_by_email(self, email: str) -> Identity | None:
        """
        Find an existing account by email (admin API, service key required).

        Matches case-insensitively, as the provider treats addresses.

        Returns None when no account uses the email.
        """
        if not self.service_key:
            raise ConfigurationError(
                "Identity lookups need IDENTITY_PROVIDER_SERVICE_KEY"
            )
        target = normalize_email(email)
        if not target:
            return None

        async with self._client() as client:
            for page in range(1, ADMIN_MAX_PAGES + 1):
                response = await request_with_retries(
                    lambda: client.get(
                        "/admin/users",
                        params={"page": page, "per_page": ADMIN_PAGE_SIZE},
                        headers=self._headers(self.service_key),
                    ),
                    service="Identity provider",
                )
                if response.status_code != 200:
                    raise DependencyError(
                        f"Identity lookup failed: {_error_message(response)}"
                    )
                users = response.json().get("users") or []
                for user in users:
                    if normalize_email(user.get("email")) == target:
                        return _identity_from_user(user)
                if len(users) < ADMIN_PAGE_SIZE:
                    return None

        logger.warning("Identity lookup stopped after %d pages", ADMIN_MAX_PAGES)
        return None


def get_identity_provider() -> IdentityProvider:
    """Build the configured identity provider client."""
    if not settings.identity_provider_configured:
        raise ConfigurationError(
            "Identity provider not configured. Set IDENTITY_PROVIDER_URL and "
            "IDENTITY_PROVIDER_ANON_KEY."
        )
    return GoTrueIdentityProvider(
        settings.IDENTITY_PROVIDER_URL,
        settings.IDENTITY_PROVIDER_ANON_KEY,
        settings.IDENTITY_PROVIDER_SERVICE_KEY or None,
    )
