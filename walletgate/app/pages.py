from __future__ import annotations

import html

from walletgate.registry.models import Outcome

STATUS_MESSAGES: dict[Outcome, str] = {
    Outcome.BAD_INPUT: "bad input",
    Outcome.ALREADY_REGISTERED: "wallet already registered",
    Outcome.WALLET_NOT_FOUND: "wallet not found",
    Outcome.UPSTREAM_ERROR: "could not verify wallet, try again later",
    Outcome.ISSUER_ERROR: "could not generate invite, try again later",
    Outcome.STORE_ERROR: "could not record registration, try again later",
    Outcome.ISSUED: "valid wallet!",
}

_PAGE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Invite</title>
  <link rel="stylesheet" href="/static/style.css">
</head>
<body>
  <main>
    <h1 class="status">{status}</h1>
{body}
    <p><a href="/">Back</a></p>
  </main>
</body>
</html>
"""


def render_invite_page(outcome: Outcome, invite_url: str | None = None) -> str:
    status = html.escape(STATUS_MESSAGES[outcome])
    body = ""
    if invite_url:
        href = html.escape(invite_url, quote=True)
        body = f'    <p class="invite"><a href="{href}">{href}</a></p>'
    return _PAGE.format(status=status, body=body)
