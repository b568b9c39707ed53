"""OAuth token lifecycle for one calendar provider"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx

from stretchtime.core.calendar.errors import AuthenticationError, TokenExchangeError
from stretchtime.core.calendar.providers import ProviderDescriptor
from stretchtime.core.http_client import http_session
from stretchtime.core.periodic import Clock, utc_now
from stretchtime.core.settings_store import SettingsStore
from stretchtime.models.settings import ProviderSettings, TokenSet

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def _coerce_expires_in(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_EXPIRES_IN
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return DEFAULT_EXPIRES_IN


class TokenManager:
    """
    Holds a provider's tokens and hands out a currently valid access token.

    In-memory state is seeded from the settings store. Every successful code
    exchange or refresh is written back to the store before returning.
    Refreshes are not serialized: concurrent callers holding an expired
    token each issue their own refresh request.
    """

    def __init__(
        self,
        provider: ProviderDescriptor,
        store: SettingsStore,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = utc_now,
        expiry_margin_seconds: int = 60,
        timeout: float = 10.0,
    ):
        self.provider = provider
        self._store = store
        self._http_client = http_client
        self._clock = clock
        self._expiry_margin = timedelta(seconds=expiry_margin_seconds)
        self._timeout = timeout

        self.access_token = ""
        self.refresh_token = ""
        self.expires_at: Optional[datetime] = None

        tokens = self._provider_settings().tokens
        if tokens:
            self.access_token = tokens.access_token
            self.refresh_token = tokens.refresh_token or ""
            self.expires_at = tokens.expires_at

    def _provider_settings(self) -> ProviderSettings:
        return self._store.get().provider(self.provider.name)

    def is_connected(self) -> bool:
        """Check the persisted settings for a refresh token"""
        tokens = self._provider_settings().tokens
        return bool(tokens and tokens.refresh_token)

    def needs_refresh(self) -> bool:
        if self.expires_at is None:
            return True
        return self._clock() >= self.expires_at - self._expiry_margin

    async def get_valid_access_token(self) -> str:
        """Return the access token, refreshing it first if it is about to expire.

        A failed refresh leaves the old token in place; the API call that uses
        it is expected to fail and be treated as "no events".
        """
        if self.needs_refresh():
            await self.refresh_access_token()
        return self.access_token

    async def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        """Exchange an authorization code for tokens and persist them."""
        payload = await self.request_code_tokens(code, code_verifier)
        tokens = self.store_token_response(payload)
        logger.info(f"{self.provider.display_name} calendar connected")
        return tokens

    async def request_code_tokens(self, code: str, code_verifier: str) -> Dict[str, Any]:
        """POST an authorization code to the token endpoint. Nothing is stored."""
        provider_settings = self._provider_settings()
        data = {
            "code": code,
            "client_id": provider_settings.client_id,
            "redirect_uri": self.provider.redirect_uri,
            "grant_type": "authorization_code",
            "code_verifier": code_verifier,
        }
        if self.provider.scope_on_token_request:
            data["scope"] = self.provider.scope

        try:
            payload = await self._post_token_request(provider_settings, data)
        except (httpx.HTTPError, ValueError) as e:
            raise AuthenticationError(f"Token exchange request failed: {e}") from e
        return payload

    async def refresh_access_token(self) -> bool:
        """Refresh the access token. Returns False (and logs) on failure."""
        if not self.refresh_token:
            return False

        provider_settings = self._provider_settings()
        data = {
            "refresh_token": self.refresh_token,
            "client_id": provider_settings.client_id,
            "grant_type": "refresh_token",
        }
        if self.provider.scope_on_token_request:
            data["scope"] = self.provider.scope

        try:
            payload = await self._post_token_request(provider_settings, data)
            self.store_token_response(payload)
        except (httpx.HTTPError, TokenExchangeError, ValueError) as e:
            logger.error(f"{self.provider.display_name} token refresh failed: {e}")
            return False

        logger.debug(f"{self.provider.display_name} access token refreshed")
        return True

    def disconnect(self):
        """Forget all tokens, in memory and in the settings store."""
        self.access_token = ""
        self.refresh_token = ""
        self.expires_at = None
        self._store.update({self.provider.name: {"tokens": None}})
        logger.info(f"{self.provider.display_name} calendar disconnected")

    async def _post_token_request(
        self, provider_settings: ProviderSettings, data: Dict[str, str]
    ) -> Dict[str, Any]:
        async with http_session(self._http_client, self._timeout) as client:
            response = await client.post(
                self.provider.token_endpoint(provider_settings),
                data=data,
                headers={"Accept": "application/json"},
            )

        if not response.is_success:
            raise TokenExchangeError(response.status_code, response.text)

        payload = response.json()
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response is missing access_token")
        return payload

    def store_token_response(self, payload: Dict[str, Any]) -> TokenSet:
        """Adopt a token endpoint response and write it to the settings store."""
        self.access_token = payload["access_token"]
        self.refresh_token = payload.get("refresh_token") or self.refresh_token
        expires_in = _coerce_expires_in(payload.get("expires_in"))
        self.expires_at = self._clock() + timedelta(seconds=expires_in)

        tokens = TokenSet(
            access_token=self.access_token,
            refresh_token=self.refresh_token or None,
            expires_at=self.expires_at,
        )
        self._store.update({self.provider.name: {"tokens": tokens.model_dump(mode="json")}})
        return tokens
