from dataclasses import dataclass
from enum import Enum


class RegistrationError(Exception):
    """Base class for collaborator failures surfaced by the registration flow."""


class StoreError(RegistrationError):
    pass


class IssuerError(RegistrationError):
    pass


class WalletStatus(str, Enum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    ERROR = "error"


class Outcome(str, Enum):
    BAD_INPUT = "bad_input"
    ALREADY_REGISTERED = "already_registered"
    WALLET_NOT_FOUND = "wallet_not_found"
    UPSTREAM_ERROR = "upstream_error"
    ISSUER_ERROR = "issuer_error"
    STORE_ERROR = "store_error"
    ISSUED = "issued"

    @property
    def http_status(self) -> int:
        if self is Outcome.BAD_INPUT:
            return 400
        if self in (Outcome.UPSTREAM_ERROR, Outcome.ISSUER_ERROR, Outcome.STORE_ERROR):
            return 500
        return 200


@dataclass(frozen=True)
class RegistrationRecord:
    wallet: str
    invite_url: str | None
    issued_at: str | None

    @property
    def reserved_only(self) -> bool:
        return self.invite_url is None


@dataclass(frozen=True)
class RegistrationResult:
    outcome: Outcome
    invite_url: str | None = None
