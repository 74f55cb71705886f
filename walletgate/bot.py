import asyncio
import json
import logging
from pathlib import Path

from aiohttp import web
from pydantic import BaseModel, ConfigDict, ValidationError

from walletgate.app.config import Configuration, load_config, load_env, log_runtime_env_snapshot
from walletgate.app.discord_client import DiscordInviteIssuer
from walletgate.app.pages import render_invite_page
from walletgate.app.wallet_client import TezosWalletVerifier
from walletgate.registry import Outcome, RegistrationWorkflow, SqliteRegistryStore

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", Configuration)
WORKFLOW_KEY = web.AppKey("workflow", RegistrationWorkflow)


class InviteForm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address: str


def configure_logging(config: Configuration) -> None:
    level = logging.WARNING if config.is_production else logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_workflow(config: Configuration, store: SqliteRegistryStore) -> RegistrationWorkflow:
    verifier = TezosWalletVerifier(
        config.tezos_url,
        timeout_s=config.wallet_timeout_s,
        attempts=config.wallet_attempts,
    )
    issuer = DiscordInviteIssuer(
        config.bot_token,
        config.discord_url,
        api_base_url=config.discord_api_url,
        timeout_s=config.invite_timeout_s,
    )
    return RegistrationWorkflow(
        store=store,
        verifier=verifier,
        issuer=issuer,
        channel_id=config.channel_id,
        store_write_attempts=config.store_write_attempts,
    )


def _json_response(payload: dict, status: int = 200) -> web.Response:
    return web.Response(
        text=json.dumps(payload, ensure_ascii=False),
        status=status,
        content_type="application/json",
    )


def _page_response(outcome: Outcome, invite_url: str | None = None) -> web.Response:
    return web.Response(
        text=render_invite_page(outcome, invite_url),
        status=outcome.http_status,
        content_type="text/html",
    )


async def _read_form_fields(request: web.Request) -> dict[str, object]:
    """Merge body and query fields; body values win, then the first repeated value."""
    form = await request.post()
    fields: dict[str, object] = {}
    for source in (form, request.query):
        for key in source.keys():
            if key not in fields:
                fields[key] = source.getone(key)
    return fields


async def http_invite_handler(request: web.Request) -> web.Response:
    try:
        fields = await _read_form_fields(request)
    except Exception as e:
        logger.error("[INVITE_HTTP] could not parse form for /invite: %s", e)
        return _page_response(Outcome.BAD_INPUT)

    try:
        form = InviteForm.model_validate(fields)
    except ValidationError:
        logger.debug("[INVITE_HTTP] rejected form fields=%s", sorted(fields))
        return _page_response(Outcome.BAD_INPUT)

    result = await request.app[WORKFLOW_KEY].register(form.address)
    logger.debug("[INVITE_HTTP] wallet=%s outcome=%s", form.address, result.outcome.value)
    return _page_response(result.outcome, result.invite_url)


async def http_index_handler(request: web.Request) -> web.StreamResponse:
    index = Path(request.app[CONFIG_KEY].static_dir) / "index.html"
    if not index.is_file():
        raise web.HTTPNotFound()
    return web.FileResponse(index)


async def http_health_handler(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return _json_response({
        "status": "ok",
        "service": "walletgate",
        "environment": config.environment,
    })


def create_app(config: Configuration, workflow: RegistrationWorkflow) -> web.Application:
    app = web.Application()
    app[CONFIG_KEY] = config
    app[WORKFLOW_KEY] = workflow
    app.router.add_get("/", http_index_handler)
    app.router.add_get("/health", http_health_handler)
    app.router.add_get("/invite", http_invite_handler)
    app.router.add_post("/invite", http_invite_handler)
    static_dir = Path(config.static_dir)
    if static_dir.is_dir():
        app.router.add_static("/static", static_dir)
    else:
        logger.warning("[INVITE_HTTP] static directory missing path=%s", static_dir)
    return app


async def serve(config: Configuration) -> None:
    store = SqliteRegistryStore(config.db_name)
    store.open()
    runner = web.AppRunner(create_app(config, build_workflow(config, store)))
    try:
        await runner.setup()
        site = web.TCPSite(runner, host=config.http_host, port=config.port)
        await site.start()
        logger.info("Invite HTTP server started at http://%s:%s", config.http_host, config.port)
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        store.close()
        logger.info("Invite HTTP server stopped")


def main() -> None:
    load_env()
    config = load_config()
    configure_logging(config)
    log_runtime_env_snapshot(config)
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Stopped by user")


if __name__ == "__main__":
    main()
