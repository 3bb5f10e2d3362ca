# =============================================================================
# Identity Resource - Bearer Credential Provider
# =============================================================================
# Supplies the OAuth bearer token used for warehouse calls and answers
# whether it is still valid and scoped for the pipeline's work.
# =============================================================================

from dataclasses import dataclass, field
import logging
import time
from typing import Iterable, Optional, Protocol, runtime_checkable

from dagster import ConfigurableResource
import httpx
from pydantic import Field

__all__ = [
    "BIGQUERY_SCOPE",
    "STORAGE_SCOPE",
    "CLOUD_PLATFORM_SCOPE",
    "PIPELINE_SCOPES",
    "Credential",
    "IdentityProvider",
    "IdentityResource",
]

logger = logging.getLogger(__name__)

BIGQUERY_SCOPE = "https://www.googleapis.com/auth/bigquery"
STORAGE_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

PIPELINE_SCOPES = (BIGQUERY_SCOPE, STORAGE_SCOPE)


@dataclass(frozen=True)
class Credential:
    """A bearer token with its expiry (epoch seconds) and granted scopes."""

    token: str
    expires_at: Optional[float] = None
    scopes: tuple[str, ...] = field(default_factory=tuple)

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now if now is not None else time.time())

    def grants(self, required_scopes: Iterable[str]) -> bool:
        """cloud-platform implies every other Google API scope."""
        granted = set(self.scopes)
        if CLOUD_PLATFORM_SCOPE in granted:
            return True
        return all(scope in granted for scope in required_scopes)


@runtime_checkable
class IdentityProvider(Protocol):
    def get_credential(self) -> Credential: ...

    def is_authorized(self, required_scopes: Iterable[str] = PIPELINE_SCOPES) -> bool: ...

    def auth_headers(self) -> dict[str, str]: ...


class IdentityResource(ConfigurableResource):
    """
    Dagster resource holding the pipeline's bearer credential.

    When ``tokeninfo_url`` is set the token's scopes and expiry are looked up
    there; otherwise the configured ``scopes`` and ``expires_at`` are trusted.

    Attributes:
        access_token: OAuth 2.0 bearer token
        scopes: Scopes granted to the token (used when tokeninfo_url is empty)
        expires_at: Token expiry as epoch seconds (None means no known expiry)
        tokeninfo_url: Token introspection endpoint
        timeout_seconds: HTTP timeout for introspection
    """

    access_token: str = Field("", description="OAuth 2.0 bearer token")
    scopes: list[str] = Field(default_factory=list, description="Scopes granted to the token")
    expires_at: Optional[float] = Field(None, description="Token expiry (epoch seconds)")
    tokeninfo_url: str = Field("", description="Token introspection endpoint")
    timeout_seconds: float = Field(10.0, description="HTTP timeout for introspection")

    def get_credential(self) -> Credential:
        """
        Return the current credential.

        Raises:
            RuntimeError: If no token is configured or introspection fails
        """
        if not self.access_token:
            raise RuntimeError("No access token configured")

        if not self.tokeninfo_url:
            return Credential(
                token=self.access_token,
                expires_at=self.expires_at,
                scopes=tuple(self.scopes),
            )

        try:
            response = httpx.get(
                self.tokeninfo_url,
                params={"access_token": self.access_token},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            info = response.json()
        except httpx.HTTPError as exc:
            raise RuntimeError(f"Token introspection failed: {exc}") from exc

        expires_at = self.expires_at
        if info.get("exp"):
            expires_at = float(info["exp"])
        elif info.get("expires_in"):
            expires_at = time.time() + float(info["expires_in"])

        return Credential(
            token=self.access_token,
            expires_at=expires_at,
            scopes=tuple((info.get("scope") or "").split()),
        )

    def is_authorized(self, required_scopes: Iterable[str] = PIPELINE_SCOPES) -> bool:
        """True when the credential is present, unexpired and carries the scopes."""
        try:
            credential = self.get_credential()
        except RuntimeError as exc:
            logger.warning(f"Credential unavailable: {exc}")
            return False

        if credential.is_expired():
            logger.warning("Credential has expired")
            return False

        return credential.grants(required_scopes)

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}
