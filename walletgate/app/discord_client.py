from __future__ import annotations

import logging
import random

import httpx

from walletgate.registry.models import IssuerError

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"

# Invite lifetime window in seconds: [2h, 24h).
INVITE_MIN_AGE_SECONDS = 7200
INVITE_MAX_AGE_SECONDS = 86399


class DiscordInviteIssuer:
    """Mint single-use, expiring channel invites through the Discord REST API."""

    def __init__(
        self,
        bot_token: str,
        invite_base_url: str,
        api_base_url: str = API_BASE,
        timeout_s: float = 10.0,
        rng: random.Random | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._invite_base_url = invite_base_url.rstrip("/")
        self._api_base_url = api_base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._rng = rng or random.Random()
        self._transport = transport

    def draw_max_age(self) -> int:
        return self._rng.randrange(INVITE_MIN_AGE_SECONDS, INVITE_MAX_AGE_SECONDS)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bot {self._bot_token}",
            "Content-Type": "application/json",
        }

    async def issue(self, channel_id: str) -> str:
        max_age = self.draw_max_age()
        payload = {"max_age": max_age, "max_uses": 1, "unique": True}
        url = f"{self._api_base_url}/channels/{channel_id}/invites"
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise IssuerError(f"invite creation timed out for channel {channel_id}") from e
        except httpx.HTTPError as e:
            raise IssuerError(f"invite creation request failed for channel {channel_id}: {e}") from e

        # Never log the response body.
        if response.status_code not in (200, 201):
            raise IssuerError(f"invite creation failed for channel {channel_id}: status={response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise IssuerError(f"invite creation returned malformed JSON for channel {channel_id}") from e

        code = data.get("code") if isinstance(data, dict) else None
        if not isinstance(code, str) or not code:
            raise IssuerError(f"invite creation returned no code for channel {channel_id}")

        logger.debug("[INVITE] invite created channel_id=%s max_age=%s", channel_id, max_age)
        return f"{self._invite_base_url}/{code}"
