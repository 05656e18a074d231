"""OpenID Connect 1.0 ID token verification.

Signing keys are discovered through the issuer's
``/.well-known/openid-configuration`` document and its ``jwks_uri``. Both
documents are cached for as long as the provider's ``Cache-Control``
header allows, and an unknown key id forces a single refresh so rotated
keys are picked up without waiting for the cache to expire.

See https://openid.net/specs/openid-connect-core-1_0.html#IDToken and
https://openid.net/specs/openid-connect-discovery-1_0.html.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, Callable, Sequence

import httpx
import jwt
from pydantic import BaseModel, ConfigDict, EmailStr, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 3600
MIN_REFRESH_INTERVAL_SECONDS = 60.0
_MAX_AGE = re.compile(r"max-age\s*=\s*(\d+)")


class OpenIdConnectError(Exception):
    """Base class for ID token failures."""


class DiscoveryError(OpenIdConnectError):
    """Provider metadata or signing keys could not be fetched."""


class TokenVerificationError(OpenIdConnectError):
    """The presented token is malformed, expired or not trusted."""


class ProviderMetadata(BaseModel):
    """Subset of the discovery document needed for verification."""

    model_config = ConfigDict(extra="ignore")

    issuer: str
    jwks_uri: str
    id_token_signing_alg_values_supported: list[str] = ["RS256"]


class IdToken(BaseModel):
    """Claims carried by a verified ID token.

    Only ``iss``, ``sub``, ``aud``, ``exp`` and ``iat`` are mandatory; the
    profile claims are present when the provider was asked for them.
    """

    model_config = ConfigDict(extra="allow")

    # Issuer Identifier.
    iss: str
    # Subject Identifier.
    sub: str
    # Audience(s) the token is intended for.
    aud: str | list[str]
    # Expiration time, epoch seconds.
    exp: int
    # Issued-at time, epoch seconds.
    iat: int
    auth_time: int | None = None
    nonce: str | None = None
    acr: str | None = None
    amr: list[str] | None = None
    # Authorized party.
    azp: str | None = None
    at_hash: str | None = None
    jti: str | None = None
    name: str | None = None
    picture: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    # BCP47 language tag.
    locale: str | None = None
    email: EmailStr | None = None
    email_verified: bool | None = None


def cache_max_age(headers: httpx.Headers, default: int) -> int:
    """Return how many seconds a response may be reused for.

    ``no-store`` and ``no-cache`` disable reuse; a missing ``max-age`` falls
    back to ``default``.
    """
    directives = headers.get("cache-control", "").lower()
    if "no-store" in directives or "no-cache" in directives:
        return 0
    match = _MAX_AGE.search(directives)
    return int(match.group(1)) if match else default


class OpenIdProvider:
    """Discovery document and signing keys of one trusted issuer."""

    def __init__(
        self,
        issuer: str,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
        default_max_age: int = DEFAULT_MAX_AGE_SECONDS,
        min_refresh_interval: float = MIN_REFRESH_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.issuer = issuer.rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None
        self._default_max_age = default_max_age
        self._min_refresh_interval = min_refresh_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._metadata: tuple[ProviderMetadata, float] | None = None
        self._key_set: tuple[jwt.PyJWKSet, float] | None = None
        self._keys_fetched_at: float | None = None

    @property
    def discovery_url(self) -> str:
        return f"{self.issuer}/.well-known/openid-configuration"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def metadata(self) -> ProviderMetadata:
        """Return the cached discovery document, fetching it when stale."""
        with self._lock:
            if self._metadata is not None and self._metadata[1] > self._clock():
                return self._metadata[0]
            payload, max_age = self._get_json(self.discovery_url)
            try:
                metadata = ProviderMetadata.model_validate(payload)
            except ValidationError as exc:
                raise DiscoveryError(f"malformed discovery document at {self.discovery_url}") from exc
            if metadata.issuer.rstrip("/") != self.issuer:
                raise DiscoveryError(
                    f"discovery document names issuer {metadata.issuer!r}, expected {self.issuer!r}"
                )
            self._metadata = (metadata, self._clock() + max_age)
            logger.info("loaded OIDC discovery document for %s (max_age=%ss)", self.issuer, max_age)
            return metadata

    def signing_key(self, key_id: str | None) -> jwt.PyJWK:
        """Return the published key matching ``key_id``.

        An unknown ``key_id`` refetches the key set at most once per
        ``min_refresh_interval`` seconds; in between it is rejected from
        cache. Raises :class:`TokenVerificationError` when no such key is
        published.
        """
        with self._lock:
            key = self._find(self._keys(refresh=False), key_id)
            if key is None and self._may_refresh():
                # a failed refresh also starts the interval
                self._keys_fetched_at = self._clock()
                key = self._find(self._keys(refresh=True), key_id)
        if key is None:
            raise TokenVerificationError(f"no signing key published for kid {key_id!r}")
        return key

    def _keys(self, *, refresh: bool) -> jwt.PyJWKSet:
        if not refresh and self._key_set is not None and self._key_set[1] > self._clock():
            return self._key_set[0]
        jwks_uri = self.metadata().jwks_uri
        payload, max_age = self._get_json(jwks_uri)
        try:
            key_set = jwt.PyJWKSet.from_dict(payload)
        except (jwt.PyJWKSetError, jwt.PyJWKError) as exc:
            raise DiscoveryError(f"no usable signing keys at {jwks_uri}") from exc
        self._key_set = (key_set, self._clock() + max_age)
        self._keys_fetched_at = self._clock()
        logger.info("loaded %d signing keys from %s (max_age=%ss)", len(key_set.keys), jwks_uri, max_age)
        return key_set

    def _may_refresh(self) -> bool:
        fetched_at = self._keys_fetched_at
        return fetched_at is None or self._clock() - fetched_at >= self._min_refresh_interval

    @staticmethod
    def _find(key_set: jwt.PyJWKSet, key_id: str | None) -> jwt.PyJWK | None:
        if key_id is None:
            return key_set.keys[0] if len(key_set.keys) == 1 else None
        for key in key_set.keys:
            if key.key_id == key_id:
                return key
        return None

    def _get_json(self, url: str) -> tuple[dict[str, Any], int]:
        try:
            response = self._client.get(url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("OIDC request to %s failed: %s", url, exc)
            raise DiscoveryError(f"failed to fetch {url}") from exc
        if not isinstance(payload, dict):
            raise DiscoveryError(f"expected a JSON object from {url}")
        return payload, cache_max_age(response.headers, self._default_max_age)


class IdTokenVerifier:
    """Checks signature, issuer, audience and expiry of ID tokens."""

    def __init__(
        self,
        provider: OpenIdProvider,
        audience: str | None,
        *,
        algorithms: Sequence[str] = ("RS256",),
        leeway: int = 0,
    ) -> None:
        self._provider = provider
        self._audience = audience or None
        self._algorithms = list(algorithms)
        self._leeway = leeway

    @property
    def provider(self) -> OpenIdProvider:
        return self._provider

    def verify(self, token: str) -> IdToken:
        """Return the claims of ``token`` or raise :class:`TokenVerificationError`.

        :class:`DiscoveryError` propagates when the provider cannot be
        reached, since that is not the caller's fault.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError("malformed token") from exc
        algorithm = header.get("alg")
        if algorithm not in self._algorithms:
            raise TokenVerificationError(f"unsupported signing algorithm {algorithm!r}")

        key = self._provider.signing_key(header.get("kid"))
        issuer = self._provider.metadata().issuer
        try:
            claims = jwt.decode(
                token,
                key.key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=issuer,
                leeway=self._leeway,
                options={
                    "require": ["iss", "sub", "aud", "exp", "iat"],
                    "verify_aud": self._audience is not None,
                },
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenVerificationError("token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError(f"invalid token: {exc}") from exc

        try:
            return IdToken.model_validate(claims)
        except ValidationError as exc:
            raise TokenVerificationError("token claims are malformed") from exc
