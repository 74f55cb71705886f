import asyncio

from aiohttp import test_utils

from walletgate import bot as bot_module
from walletgate.app.config import Configuration
from walletgate.app.pages import render_invite_page
from walletgate.registry import (
    InMemoryRegistryStore,
    IssuerError,
    Outcome,
    RegistrationWorkflow,
    StoreError,
    WalletStatus,
)

WALLET = "tz1VSUr8wwNhLAzempoch5d6hLRiTh8Cjcjb"


class StubVerifier:
    def __init__(self, status=WalletStatus.VALID):
        self.status = status

    async def verify(self, wallet):
        return self.status


class StubIssuer:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    async def issue(self, channel_id):
        self.calls += 1
        if self.fail:
            raise IssuerError("boom")
        return "https://discord.gg/abc123"


def _config(static_dir):
    return Configuration(bot_token="token", channel_id="chan-1", static_dir=str(static_dir))


def _workflow(status=WalletStatus.VALID, issuer=None):
    return RegistrationWorkflow(
        store=InMemoryRegistryStore(),
        verifier=StubVerifier(status),
        issuer=issuer or StubIssuer(),
        channel_id="chan-1",
    )


def _call(tmp_path, requests, workflow=None):
    """Run (method, path, kwargs) requests in order; return [(status, text), ...]."""

    async def scenario():
        app = bot_module.create_app(_config(tmp_path), workflow or _workflow())
        out = []
        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            for method, path, kwargs in requests:
                resp = await client.request(method, path, **kwargs)
                out.append((resp.status, await resp.text()))
        return out

    return asyncio.run(scenario())


def test_valid_wallet_gets_invite(tmp_path):
    [(status, text)] = _call(tmp_path, [("POST", "/invite", {"data": {"address": WALLET}})])

    assert status == 200
    assert "valid wallet!" in text
    assert "https://discord.gg/abc123" in text


def test_repeat_submission_returns_stored_invite(tmp_path):
    issuer = StubIssuer()
    responses = _call(
        tmp_path,
        [
            ("POST", "/invite", {"data": {"address": WALLET}}),
            ("POST", "/invite", {"data": {"address": WALLET}}),
        ],
        workflow=_workflow(issuer=issuer),
    )

    assert [status for status, _ in responses] == [200, 200]
    assert "wallet already registered" in responses[1][1]
    assert "https://discord.gg/abc123" in responses[1][1]
    assert issuer.calls == 1


def test_address_in_query_string_is_accepted(tmp_path):
    [(status, text)] = _call(tmp_path, [("GET", f"/invite?address={WALLET}", {})])

    assert status == 200
    assert "valid wallet!" in text


def test_malformed_forms_are_bad_requests(tmp_path):
    responses = _call(
        tmp_path,
        [
            ("POST", "/invite", {"data": {}}),
            ("POST", "/invite", {"data": {"wallet": WALLET}}),
            ("POST", "/invite", {"data": {"address": WALLET, "extra": "1"}}),
            ("POST", "/invite?ref=x", {"data": {"address": WALLET}}),
            ("POST", "/invite", {"data": {"address": "tz1"}}),
        ],
    )

    for status, text in responses:
        assert status == 400
        assert "bad input" in text


def test_unknown_wallet_is_business_outcome(tmp_path):
    [(status, text)] = _call(
        tmp_path,
        [("POST", "/invite", {"data": {"address": WALLET}})],
        workflow=_workflow(status=WalletStatus.NOT_FOUND),
    )

    assert status == 200
    assert "wallet not found" in text


def test_upstream_failures_are_server_errors(tmp_path):
    verifier_down = _call(
        tmp_path,
        [("POST", "/invite", {"data": {"address": WALLET}})],
        workflow=_workflow(status=WalletStatus.ERROR),
    )
    issuer_down = _call(
        tmp_path,
        [("POST", "/invite", {"data": {"address": WALLET}})],
        workflow=_workflow(issuer=StubIssuer(fail=True)),
    )

    assert verifier_down[0][0] == 500
    assert issuer_down[0][0] == 500
    assert "discord.gg" not in issuer_down[0][1]


def test_health_reports_ok(tmp_path):
    [(status, text)] = _call(tmp_path, [("GET", "/health", {})])

    assert status == 200
    assert '"status": "ok"' in text
    assert '"service": "walletgate"' in text


def test_index_served_from_static_dir(tmp_path):
    (tmp_path / "index.html").write_text("<form action=\"/invite\"></form>", encoding="utf-8")

    responses = _call(tmp_path, [("GET", "/", {})])

    assert responses == [(200, "<form action=\"/invite\"></form>")]


def test_index_missing_is_not_found(tmp_path):
    [(status, _)] = _call(tmp_path / "nowhere", [("GET", "/", {})])

    assert status == 404


def test_page_escapes_invite_url():
    page = render_invite_page(Outcome.ISSUED, 'https://discord.gg/"><script>')

    assert "<script>" not in page
    assert "&quot;&gt;&lt;script&gt;" in page


class BrokenStore(InMemoryRegistryStore):
    async def get(self, wallet):
        raise StoreError("disk gone")


def test_store_failure_is_server_error(tmp_path):
    workflow = RegistrationWorkflow(
        store=BrokenStore(),
        verifier=StubVerifier(),
        issuer=StubIssuer(),
        channel_id="chan-1",
    )

    [(status, text)] = _call(tmp_path, [("POST", "/invite", {"data": {"address": WALLET}})], workflow=workflow)

    assert status == 500
    assert "could not record registration" in text
    assert "discord.gg" not in text


def test_body_address_wins_over_query_address(tmp_path):
    workflow = _workflow()
    [(status, text)] = _call(
        tmp_path,
        [("POST", "/invite?address=tz1", {"data": {"address": WALLET}})],
        workflow=workflow,
    )

    assert status == 200
    assert "valid wallet!" in text
