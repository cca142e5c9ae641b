"""Minimal Etsy Open API v3 client used by the ledger sync.

Only the payment-account ledger endpoint is exposed. OAuth tokens are read
from, and refreshed tokens written back to, an injected token storage so the
client never owns persistence itself.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import httpx

from finsync.config import settings
from finsync.services.etsy_token_storage import TokenPair
from finsync.utils.logger import logger


class TokenStorage(Protocol):
    def find_access_token(self) -> Optional[TokenPair]: ...

    def store_access_token(self, tokens: TokenPair) -> None: ...


class EtsyApiError(RuntimeError):
    """Non-2xx response from the Etsy API."""

    def __init__(self, status_code: int, body: Any, url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Etsy API returned HTTP {status_code} for {url}: {str(body)[:300]}")


class EtsyAuthError(EtsyApiError):
    """Missing tokens, or the refresh grant was rejected."""


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class EtsyApiClient:
    def __init__(
        self,
        api_key: str,
        shared_secret: str,
        token_storage: TokenStorage,
        *,
        base_url: Optional[str] = None,
        token_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        if not api_key or not shared_secret:
            raise ValueError("ETSY_API_KEY and ETSY_SHARED_SECRET must both be configured")
        self.api_key = api_key
        self.shared_secret = shared_secret
        self.token_storage = token_storage
        self.base_url = (base_url or settings.ETSY_API_BASE_URL).rstrip("/")
        self.token_url = token_url or settings.ETSY_OAUTH_TOKEN_URL
        self._transport = transport
        self._timeout = httpx.Timeout(timeout, connect=5.0)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _load_tokens(self) -> TokenPair:
        tokens = self.token_storage.find_access_token()
        if tokens is None:
            raise EtsyAuthError(401, "No usable OAuth tokens in storage", self.token_url)
        return tokens

    async def _refresh(self, client: httpx.AsyncClient, tokens: TokenPair) -> TokenPair:
        logger.info("[etsy-api] Access token rejected; refreshing")
        resp = await client.post(
            self.token_url,
            data={
                "grant_type": "refresh_token",
                "client_id": self.api_key,
                "refresh_token": tokens.refresh_token,
            },
            headers={"Accept": "application/json"},
        )
        if resp.status_code != 200:
            raise EtsyAuthError(resp.status_code, _response_body(resp), self.token_url)

        data = resp.json() or {}
        access_token = data.get("access_token")
        if not access_token:
            raise EtsyAuthError(resp.status_code, "Refresh response missing access_token", self.token_url)

        refreshed = TokenPair(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or tokens.refresh_token,
        )
        self.token_storage.store_access_token(refreshed)
        return refreshed

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        tokens = self._load_tokens()

        async with self._client() as client:
            for attempt in (1, 2):
                headers = {
                    "x-api-key": f"{self.api_key}:{self.shared_secret}",
                    "Authorization": f"Bearer {tokens.access_token}",
                    "Accept": "application/json",
                }
                resp = await client.get(url, params=params, headers=headers)
                if resp.status_code == 401 and attempt == 1:
                    tokens = await self._refresh(client, tokens)
                    continue
                break

        if resp.status_code == 401:
            raise EtsyAuthError(resp.status_code, _response_body(resp), url)
        if resp.status_code >= 400:
            logger.error(
                "[etsy-api] GET %s failed status=%s body=%s",
                path,
                resp.status_code,
                str(_response_body(resp))[:500],
            )
            raise EtsyApiError(resp.status_code, _response_body(resp), url)
        return resp.json() or {}

    async def get_shop_payment_account_ledger_entries(
        self,
        *,
        shop_id: int,
        min_created: int,
        max_created: int,
        limit: int = 100,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Fetch one page of ledger entries created within ``[min_created, max_created]``."""

        return await self._get(
            f"/v3/application/shops/{shop_id}/payment-account/ledger-entries",
            {
                "min_created": min_created,
                "max_created": max_created,
                "limit": limit,
                "offset": offset,
            },
        )
