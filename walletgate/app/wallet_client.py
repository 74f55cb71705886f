from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from walletgate.registry.models import WalletStatus

logger = logging.getLogger(__name__)


class TezosWalletVerifier:
    """Check wallet existence against the ledger lookup service (`{base}/{wallet}.json`)."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 5.0,
        attempts: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._attempts = max(1, attempts)
        self._transport = transport

    def lookup_url(self, wallet: str) -> str:
        return f"{self._base_url}/{quote(wallet, safe='')}.json"

    async def verify(self, wallet: str) -> WalletStatus:
        url = self.lookup_url(wallet)
        for attempt in range(1, self._attempts + 1):
            logger.debug("[WALLET] fetching wallet=%s url=%s attempt=%s", wallet, url, attempt)
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout_s,
                    transport=self._transport,
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url)
            except httpx.TimeoutException:
                logger.warning("[WALLET] lookup timed out wallet=%s attempt=%s/%s", wallet, attempt, self._attempts)
                continue
            except httpx.HTTPError as e:
                logger.warning(
                    "[WALLET] could not fetch wallet=%s attempt=%s/%s: %s",
                    wallet,
                    attempt,
                    self._attempts,
                    e,
                )
                continue

            status = response.status_code
            if status == 404:
                logger.warning("[WALLET] wallet not found wallet=%s", wallet)
                return WalletStatus.NOT_FOUND
            if 200 <= status < 300:
                logger.debug("[WALLET] wallet fetched wallet=%s status=%s", wallet, status)
                return WalletStatus.VALID
            if status >= 500:
                logger.warning(
                    "[WALLET] upstream status=%s wallet=%s attempt=%s/%s",
                    status,
                    wallet,
                    attempt,
                    self._attempts,
                )
                continue
            logger.error("[WALLET] unexpected upstream status=%s wallet=%s url=%s", status, wallet, url)
            return WalletStatus.ERROR

        logger.error("[WALLET] lookup failed after %s attempts wallet=%s url=%s", self._attempts, wallet, url)
        return WalletStatus.ERROR
