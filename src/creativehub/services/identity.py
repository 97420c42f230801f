"""Federated identity verification for Google, Apple and Facebook sign-in.

Each provider adapter turns a client-supplied token into one
``FederatedIdentity`` shape. ID tokens (Google, Apple) are verified locally
against the provider's published JWKS; Facebook access tokens are checked with
the Graph API ``debug_token`` endpoint.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from jose import JWTError, jwt

from creativehub.config import Settings
from creativehub.exceptions import (
    DependencyError,
    EmailNotVerified,
    InvalidToken,
    ProviderNotConfigured,
)

logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")
APPLE_JWKS_URL = "https://appleid.apple.com/auth/keys"
APPLE_ISSUERS = ("https://appleid.apple.com",)
FACEBOOK_GRAPH_URL = "https://graph.facebook.com"

HTTP_TIMEOUT = 10.0


class Provider(str, Enum):
    """Supported federated identity providers."""

    GOOGLE = "google"
    APPLE = "apple"
    FACEBOOK = "facebook"


@dataclass(frozen=True)
class FederatedIdentity:
    """A verified identity asserted by an external provider."""

    provider: Provider
    subject_id: str
    email: str | None = None
    email_verified: bool | None = None
    display_name: str | None = None


def _as_bool(value: Any) -> bool | None:
    # Apple sends "true"/"false" strings
    if value is None:
        return None
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def resolve_email(identity: FederatedIdentity, domain: str) -> str:
    """Local account email for an identity.

    Providers that withhold the address get a stable synthesized one,
    ``<subject>@<provider>user.<domain>``, so repeat sign-ins by the same
    subject map to the same account.
    """
    if identity.email:
        return identity.email.strip().lower()
    return f"{identity.subject_id}@{identity.provider.value}user.{domain}".lower()


class IdentityProvider(ABC):
    """Verifies a provider token and returns the asserted identity."""

    provider: Provider

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether credentials for this provider are present."""

    @abstractmethod
    async def _verify(self, token: str) -> FederatedIdentity:
        """Provider-specific verification."""

    async def verify(self, token: str) -> FederatedIdentity:
        """Verify ``token``.

        Raises:
            ProviderNotConfigured: provider credentials are missing
            InvalidToken: the provider rejected the token
            EmailNotVerified: the provider reports the address unverified
        """
        if not self.configured:
            raise ProviderNotConfigured(f"{self.provider.value.title()} OAuth not configured")
        if not token:
            raise InvalidToken(f"Missing {self.provider.value} token")
        return await self._verify(token)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=HTTP_TIMEOUT)


class JWKSIdentityProvider(IdentityProvider):
    """Verifies RS256 ID tokens against a provider's JWKS document."""

    jwks_url: str
    issuers: tuple[str, ...]

    def __init__(self, client_id: str, transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__(transport)
        self.client_id = client_id
        self._jwks: dict | None = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id)

    async def _get_jwks(self, refresh: bool = False) -> dict:
        if self._jwks is not None and not refresh:
            return self._jwks
        async with self._client() as client:
            try:
                response = await client.get(self.jwks_url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to fetch {self.provider.value} JWKS: {e!r}")
                raise DependencyError("Identity provider unavailable") from e
        self._jwks = response.json()
        return self._jwks

    async def _decode(self, token: str) -> dict:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except JWTError as e:
            raise InvalidToken(f"{self.provider.value.title()} authentication failed") from e

        jwks = await self._get_jwks()
        if kid and not any(key.get("kid") == kid for key in jwks.get("keys", [])):
            # Provider rotated its keys since we cached them
            jwks = await self._get_jwks(refresh=True)

        try:
            return jwt.decode(
                token,
                jwks,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=list(self.issuers),
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            logger.info(f"{self.provider.value} ID token rejected: {e}")
            raise InvalidToken(f"{self.provider.value.title()} authentication failed") from e


class GoogleIdentityProvider(JWKSIdentityProvider):
    provider = Provider.GOOGLE
    jwks_url = GOOGLE_JWKS_URL
    issuers = GOOGLE_ISSUERS

    async def _verify(self, token: str) -> FederatedIdentity:
        claims = await self._decode(token)
        email = claims.get("email")
        email_verified = _as_bool(claims.get("email_verified"))

        # Only the Google path insists on a verified address
        if not email or not email_verified:
            raise EmailNotVerified("Google email not verified")

        return FederatedIdentity(
            provider=self.provider,
            subject_id=str(claims["sub"]),
            email=email,
            email_verified=True,
            display_name=claims.get("name") or email.split("@")[0],
        )


class AppleIdentityProvider(JWKSIdentityProvider):
    provider = Provider.APPLE
    jwks_url = APPLE_JWKS_URL
    issuers = APPLE_ISSUERS

    async def _verify(self, token: str) -> FederatedIdentity:
        claims = await self._decode(token)
        subject = claims.get("sub")
        email = claims.get("email")
        if not subject and not email:
            raise InvalidToken("Apple authentication failed")

        return FederatedIdentity(
            provider=self.provider,
            subject_id=str(subject or email),
            email=email,
            email_verified=_as_bool(claims.get("email_verified")),
            display_name=email.split("@")[0] if email else None,
        )


class FacebookIdentityProvider(IdentityProvider):
    provider = Provider.FACEBOOK

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        graph_version: str = "v19.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport)
        self.app_id = app_id
        self.app_secret = app_secret
        self.graph_version = graph_version

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_secret)

    async def _verify(self, token: str) -> FederatedIdentity:
        base = f"{FACEBOOK_GRAPH_URL}/{self.graph_version}"
        async with self._client() as client:
            try:
                debug = await client.get(
                    f"{base}/debug_token",
                    params={
                        "input_token": token,
                        "access_token": f"{self.app_id}|{self.app_secret}",
                    },
                )
                debug_data = debug.json().get("data", {}) if debug.is_success else {}
                if not debug_data.get("is_valid"):
                    raise InvalidToken("Invalid Facebook token")
                if str(debug_data.get("app_id", self.app_id)) != self.app_id:
                    raise InvalidToken("Facebook token issued for another app")

                profile = await client.get(
                    f"{base}/me",
                    params={"fields": "id,name,email", "access_token": token},
                )
            except httpx.HTTPError as e:
                logger.error(f"Facebook Graph API request failed: {e!r}")
                raise DependencyError("Identity provider unavailable") from e

        profile_data = profile.json() if profile.is_success else {}
        if not profile_data.get("id"):
            raise InvalidToken("Facebook authentication failed")

        return FederatedIdentity(
            provider=self.provider,
            subject_id=str(profile_data["id"]),
            email=profile_data.get("email"),
            email_verified=None,
            display_name=profile_data.get("name") or "Facebook User",
        )


class MockIdentityProvider(IdentityProvider):
    """Accepts ``mock-<provider>-token`` in development, else delegates."""

    def __init__(self, wrapped: IdentityProvider) -> None:
        super().__init__()
        self.wrapped = wrapped
        self.provider = wrapped.provider

    @property
    def mock_token(self) -> str:
        return f"mock-{self.provider.value}-token"

    @property
    def configured(self) -> bool:
        return True

    async def _verify(self, token: str) -> FederatedIdentity:
        if token == self.mock_token:
            name = self.provider.value
            return FederatedIdentity(
                provider=self.provider,
                subject_id=f"mock-{name}",
                email=f"test-{name}@rkch.dev",
                email_verified=True,
                display_name=f"Test {name.title()} User",
            )
        return await self.wrapped.verify(token)


class IdentityProviders:
    """Registry of provider adapters keyed by ``Provider``."""

    def __init__(self, providers: dict[Provider, IdentityProvider]) -> None:
        self._providers = providers

    @classmethod
    def from_settings(cls, settings: Settings, allow_mock: bool = False) -> "IdentityProviders":
        providers: dict[Provider, IdentityProvider] = {
            Provider.GOOGLE: GoogleIdentityProvider(settings.google_client_id),
            Provider.APPLE: AppleIdentityProvider(settings.apple_client_id),
            Provider.FACEBOOK: FacebookIdentityProvider(
                settings.facebook_app_id,
                settings.facebook_app_secret,
                settings.facebook_graph_version,
            ),
        }
        if allow_mock:
            providers = {key: MockIdentityProvider(value) for key, value in providers.items()}
        return cls(providers)

    def get(self, provider: Provider) -> IdentityProvider:
        return self._providers[provider]
