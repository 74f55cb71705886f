from .models import (
    IssuerError,
    Outcome,
    RegistrationError,
    RegistrationRecord,
    RegistrationResult,
    StoreError,
    WalletStatus,
)
from .repo import InMemoryRegistryStore, RegistryStore, SqliteRegistryStore
from .service import ADDRESS_LENGTH, RegistrationWorkflow, validate_address

__all__ = [
    "ADDRESS_LENGTH",
    "InMemoryRegistryStore",
    "IssuerError",
    "Outcome",
    "RegistrationError",
    "RegistrationRecord",
    "RegistrationResult",
    "RegistrationWorkflow",
    "RegistryStore",
    "SqliteRegistryStore",
    "StoreError",
    "WalletStatus",
    "validate_address",
]
