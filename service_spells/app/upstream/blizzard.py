"""
Blizzard Game Data API client for spell metadata.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.config import BaseConfig
from shared.errors import DataIntegrityError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..models import MetadataRecord
from .base import UpstreamClient, UpstreamError, UpstreamNotFoundError

# Refresh the OAuth token this many seconds before it expires.
TOKEN_EXPIRY_MARGIN_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BlizzardClient(UpstreamClient):
    """Fetches spell names and icons from the Blizzard Game Data API.

    One logical fetch issues the spell request and the spell media request
    concurrently. A 404 on either means the spell does not exist; any other
    failure of either part fails the whole fetch as transient.
    """

    SERVICE_NAME = "blizzard_api"

    def __init__(
        self,
        api_url: str,
        region: str = "us",
        client_id: str = "",
        client_secret: str = "",
        oauth_url: str = "https://oauth.battle.net/token",
        timeout: float = 10.0,
        default_locale: str = "en_US",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_config: Optional[RetryConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.base_url = api_url.rstrip('/')
        self.region = region
        self.client_id = client_id
        self.client_secret = client_secret
        self.oauth_url = oauth_url
        self.default_locale = default_locale
        self.clock = clock or _utcnow
        self.logger = get_logger("spells.upstream.blizzard")

        self.http = http_client or httpx.AsyncClient(timeout=timeout)

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            ignored_exceptions=(UpstreamNotFoundError,),
            name=self.SERVICE_NAME,
        )

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        self._get_json = retry_on_exception(
            (httpx.TransportError,), config=self.retry_config
        )(self._get_json_once)

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: BaseConfig, clock: Optional[Callable[[], datetime]] = None) -> "BlizzardClient":
        """Build a client from service settings."""
        return cls(
            api_url=config.resolved_blizzard_api_url,
            region=config.blizzard_region,
            client_id=config.blizzard_client_id,
            client_secret=config.blizzard_client_secret,
            oauth_url=config.blizzard_oauth_url,
            timeout=config.upstream_timeout_seconds,
            default_locale=config.default_locale,
            failure_threshold=config.upstream_failure_threshold,
            recovery_timeout=config.upstream_recovery_timeout,
            retry_config=RetryConfig(
                max_attempts=config.upstream_retry_attempts,
                base_delay=config.upstream_retry_base_delay,
                max_delay=config.upstream_retry_max_delay,
            ),
            clock=clock,
        )

    @property
    def namespace(self) -> str:
        return f"static-{self.region}"

    async def fetch(self, spell_id: int) -> MetadataRecord:
        """Fetch one complete spell record."""
        try:
            spell, media = await self.circuit_breaker.call(self._fetch_parts, spell_id)
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Blizzard API circuit open", spell_id=spell_id)
            raise UpstreamError(str(exc), status_code=503, details={"spell_id": spell_id})
        except RetryError as exc:
            self.logger.error(
                "Blizzard API unreachable",
                spell_id=spell_id,
                attempts=exc.attempts,
                error=str(exc.last_exception)
            )
            raise UpstreamError(
                f"Transport error: {exc.last_exception}",
                details={"spell_id": spell_id, "attempts": exc.attempts}
            ) from exc

        record = self._build_record(spell_id, spell, media)
        self.logger.debug("Spell metadata fetched", spell_id=spell_id, locales=len(record.display_names))
        return record

    async def _fetch_parts(self, spell_id: int):
        """Issue both requests concurrently; partial success is a failure."""
        results = await asyncio.gather(
            self._get_json(f"/data/wow/spell/{spell_id}", spell_id),
            self._get_json(f"/data/wow/media/spell/{spell_id}", spell_id),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if isinstance(error, UpstreamNotFoundError):
                raise error
        if errors:
            raise errors[0]

        return results[0], results[1]

    async def _get_json_once(self, path: str, spell_id: int) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        params = {"namespace": self.namespace}

        token = await self._get_token()
        response = await self._authorized_get(url, params, token)
        if response.status_code == 401:
            # Token revoked or expired early
            if self._token == token:
                self._token = None
            token = await self._get_token()
            response = await self._authorized_get(url, params, token)

        if response.status_code == 404:
            self.logger.info("Spell not found upstream", url=url, spell_id=spell_id)
            raise UpstreamNotFoundError(spell_id)

        if response.status_code != 200:
            self.logger.error(
                "Blizzard API request failed",
                url=url,
                spell_id=spell_id,
                status_code=response.status_code,
                response=response.text[:500]
            )
            raise UpstreamError(
                f"Unexpected status {response.status_code}",
                status_code=response.status_code,
                details={"spell_id": spell_id, "body": response.text[:500]}
            )

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError(
                "Malformed JSON response",
                details={"spell_id": spell_id, "url": url}
            )
        if not isinstance(payload, dict):
            raise UpstreamError(
                f"Malformed response: expected an object, got {type(payload).__name__}",
                details={"spell_id": spell_id, "url": url}
            )
        return payload

    async def _authorized_get(self, url: str, params: Dict[str, str], token: str) -> httpx.Response:
        return await self.http.get(url, params=params, headers={"Authorization": f"Bearer {token}"})

    async def _get_token(self) -> str:
        """Return a cached client-credentials token, requesting a new one when needed."""
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            response = await self.http.post(
                self.oauth_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
            if response.status_code != 200:
                self.logger.error("Blizzard OAuth token request failed", status_code=response.status_code)
                raise UpstreamError(
                    f"Token request failed with status {response.status_code}",
                    details={"status_code": response.status_code},
                    service="blizzard_oauth",
                )

            try:
                payload = response.json()
                token = payload["access_token"]
                expires_in = float(payload.get("expires_in", 0))
            except (ValueError, KeyError, TypeError):
                raise UpstreamError("Malformed token response", service="blizzard_oauth")
            if not isinstance(token, str) or not token:
                raise UpstreamError("Malformed token response", service="blizzard_oauth")

            self._token = token
            self._token_expires_at = time.monotonic() + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
            self.logger.info("Blizzard OAuth token refreshed", expires_in=expires_in)
            return token

    def _build_record(self, spell_id: int, spell: Mapping[str, Any], media: Mapping[str, Any]) -> MetadataRecord:
        display_names = self._extract_names(spell.get("name"))
        if not display_names:
            raise UpstreamError("Spell payload has no name", details={"spell_id": spell_id})

        icon_ref = self._extract_icon(media)
        if not icon_ref:
            raise UpstreamError("Spell media has no icon asset", details={"spell_id": spell_id})

        try:
            return MetadataRecord(
                id=spell_id,
                display_names=display_names,
                icon_ref=icon_ref,
                fetched_at=self.clock(),
            )
        except DataIntegrityError as exc:
            raise UpstreamError(exc.message, details={"spell_id": spell_id})

    def _extract_names(self, name: Any) -> Dict[str, str]:
        # Localized payloads carry a locale map, single-locale ones a plain string
        if isinstance(name, str):
            return {self.default_locale: name} if name else {}
        if isinstance(name, Mapping):
            return {
                locale: value
                for locale, value in name.items()
                if isinstance(value, str) and value
            }
        return {}

    @staticmethod
    def _extract_icon(media: Mapping[str, Any]) -> Optional[str]:
        for asset in media.get("assets") or []:
            if isinstance(asset, Mapping) and asset.get("key") == "icon":
                return asset.get("value") or None
        return None

    async def aclose(self):
        await self.http.aclose()
