from __future__ import annotations

import logging
from typing import Protocol

from walletgate.registry.models import (
    IssuerError,
    Outcome,
    RegistrationResult,
    StoreError,
    WalletStatus,
)
from walletgate.registry.repo import RegistryStore

logger = logging.getLogger(__name__)

ADDRESS_LENGTH = 36
DEFAULT_STORE_WRITE_ATTEMPTS = 3


class WalletVerifier(Protocol):
    async def verify(self, wallet: str) -> WalletStatus: ...


class InviteIssuer(Protocol):
    async def issue(self, channel_id: str) -> str: ...


def validate_address(address: str) -> bool:
    return isinstance(address, str) and len(address) == ADDRESS_LENGTH


class RegistrationWorkflow:
    """
    One registration per call: validate, dedupe, verify, reserve, mint, persist.

    The wallet slot is reserved in the store before the issuer is called, so
    concurrent calls for the same wallet mint at most one invite. A reservation
    is released again when minting or persisting fails.
    """

    def __init__(
        self,
        *,
        store: RegistryStore,
        verifier: WalletVerifier,
        issuer: InviteIssuer,
        channel_id: str,
        store_write_attempts: int = DEFAULT_STORE_WRITE_ATTEMPTS,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._issuer = issuer
        self._channel_id = channel_id
        self._store_write_attempts = max(1, store_write_attempts)

    async def register(self, address: str) -> RegistrationResult:
        if not validate_address(address):
            logger.debug("[REGISTER] bad address length=%s", len(address or ""))
            return RegistrationResult(Outcome.BAD_INPUT)

        try:
            existing = await self._store.get(address)
        except StoreError:
            logger.exception("[REGISTER] could not check membership wallet=%s", address)
            return RegistrationResult(Outcome.STORE_ERROR)

        if existing is not None:
            logger.debug("[REGISTER] wallet already registered wallet=%s", address)
            return RegistrationResult(Outcome.ALREADY_REGISTERED, existing.invite_url)

        status = await self._verifier.verify(address)
        if status is WalletStatus.NOT_FOUND:
            logger.warning("[REGISTER] wallet not found wallet=%s", address)
            return RegistrationResult(Outcome.WALLET_NOT_FOUND)
        if status is not WalletStatus.VALID:
            logger.error("[REGISTER] could not verify unregistered wallet wallet=%s", address)
            return RegistrationResult(Outcome.UPSTREAM_ERROR)

        try:
            reserved = await self._store.reserve(address)
        except StoreError:
            logger.exception("[REGISTER] could not reserve wallet=%s", address)
            return RegistrationResult(Outcome.STORE_ERROR)

        if not reserved:
            return await self._lost_reservation(address)

        try:
            invite_url = await self._issuer.issue(self._channel_id)
        except IssuerError:
            logger.exception(
                "[REGISTER] could not generate invite wallet=%s channel_id=%s",
                address,
                self._channel_id,
            )
            await self._release(address)
            return RegistrationResult(Outcome.ISSUER_ERROR)

        if not await self._persist(address, invite_url):
            logger.error(
                "[REGISTER] invite minted but not recorded wallet=%s invite_url=%s",
                address,
                invite_url,
            )
            await self._release(address)
            return RegistrationResult(Outcome.STORE_ERROR)

        logger.info("[REGISTER] invite issued wallet=%s", address)
        return RegistrationResult(Outcome.ISSUED, invite_url)

    async def _lost_reservation(self, address: str) -> RegistrationResult:
        logger.info("[REGISTER] concurrent registration won the reservation wallet=%s", address)
        try:
            existing = await self._store.get(address)
        except StoreError:
            logger.exception("[REGISTER] could not re-read wallet=%s", address)
            return RegistrationResult(Outcome.STORE_ERROR)
        invite_url = existing.invite_url if existing is not None else None
        return RegistrationResult(Outcome.ALREADY_REGISTERED, invite_url)

    async def _persist(self, address: str, invite_url: str) -> bool:
        for attempt in range(1, self._store_write_attempts + 1):
            try:
                written = await self._store.put(address, invite_url)
            except StoreError as e:
                logger.warning(
                    "[REGISTER] could not update db with address wallet=%s attempt=%s/%s: %s",
                    address,
                    attempt,
                    self._store_write_attempts,
                    e,
                )
                continue
            if not written:
                logger.error("[REGISTER] record already issued, refusing overwrite wallet=%s", address)
            return written
        return False

    async def _release(self, address: str) -> None:
        try:
            await self._store.release(address)
        except StoreError:
            logger.exception("[REGISTER] could not release reservation wallet=%s", address)
