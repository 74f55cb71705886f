from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "pubkeyhashes.db"
DEFAULT_DISCORD_URL = "https://discord.gg"
DEFAULT_DISCORD_API_URL = "https://discord.com/api/v10"
DEFAULT_TEZOS_URL = "https://check.tezos.com"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 8080
DEFAULT_STATIC_DIR = "www"


def load_env() -> None:
    """Load `.env` from the working directory; real environment variables take precedence."""
    load_dotenv(find_dotenv(usecwd=True), override=False)


def _normalize_url(value: str | None, default: str) -> str:
    raw = (value or default).strip()
    if raw and not raw.startswith(("http://", "https://")):
        raw = f"https://{raw}"
    return raw.rstrip("/")


def _required(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise ValueError(f"Environment variable '{name}' is not set")
    return value


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable '{name}' must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable '{name}' must be a number, got {raw!r}") from e


def _mask_secret(value: str, visible: int = 4) -> str:
    if not value:
        return "(missing)"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def _key_fingerprint(value: str) -> str:
    if not value:
        return "(missing)"
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:6]


@dataclass(frozen=True)
class Configuration:
    bot_token: str
    channel_id: str
    db_name: str = DEFAULT_DB_NAME
    discord_url: str = DEFAULT_DISCORD_URL
    discord_api_url: str = DEFAULT_DISCORD_API_URL
    tezos_url: str = DEFAULT_TEZOS_URL
    environment: str = DEFAULT_ENVIRONMENT
    http_host: str = DEFAULT_HTTP_HOST
    port: int = DEFAULT_HTTP_PORT
    static_dir: str = DEFAULT_STATIC_DIR
    wallet_timeout_s: float = 5.0
    wallet_attempts: int = 2
    invite_timeout_s: float = 10.0
    store_write_attempts: int = 3

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_config() -> Configuration:
    """Build the process configuration from the environment. Call once at startup."""
    port = _int_env("PORT", _int_env("HTTP_PORT", DEFAULT_HTTP_PORT))
    return Configuration(
        bot_token=_required("BOT_TOKEN"),
        channel_id=_required("CHANNEL_ID"),
        db_name=(os.getenv("DB_NAME") or DEFAULT_DB_NAME).strip(),
        discord_url=_normalize_url(os.getenv("DISCORD_URL"), DEFAULT_DISCORD_URL),
        discord_api_url=_normalize_url(os.getenv("DISCORD_API_URL"), DEFAULT_DISCORD_API_URL),
        tezos_url=_normalize_url(os.getenv("TEZOS_URL"), DEFAULT_TEZOS_URL),
        environment=(os.getenv("ENVIRONMENT") or DEFAULT_ENVIRONMENT).strip().lower(),
        http_host=(os.getenv("HTTP_HOST") or DEFAULT_HTTP_HOST).strip(),
        port=port,
        static_dir=(os.getenv("STATIC_DIR") or DEFAULT_STATIC_DIR).strip(),
        wallet_timeout_s=_float_env("WALLET_LOOKUP_TIMEOUT_SECONDS", 5.0),
        wallet_attempts=_int_env("WALLET_LOOKUP_ATTEMPTS", 2),
        invite_timeout_s=_float_env("INVITE_TIMEOUT_SECONDS", 10.0),
        store_write_attempts=_int_env("STORE_WRITE_ATTEMPTS", 3),
    )


def log_runtime_env_snapshot(config: Configuration) -> None:
    logger.info("[ENV][WALLETGATE] runtime configuration snapshot")
    logger.info("[ENV][WALLETGATE] ENVIRONMENT=%s", config.environment)
    logger.info(
        "[ENV][WALLETGATE] BOT_TOKEN preview=%s sha256_prefix=%s",
        _mask_secret(config.bot_token),
        _key_fingerprint(config.bot_token),
    )
    logger.info("[ENV][WALLETGATE] CHANNEL_ID=%s", config.channel_id)
    logger.info("[ENV][WALLETGATE] DB_NAME=%s", config.db_name)
    logger.info("[ENV][WALLETGATE] TEZOS_URL=%s", config.tezos_url)
    logger.info("[ENV][WALLETGATE] DISCORD_URL=%s", config.discord_url)
    logger.info("[ENV][WALLETGATE] HTTP bind host=%s port=%s", config.http_host, config.port)
