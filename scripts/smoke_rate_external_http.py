import os, sys, tempfile, json
from fastapi.testclient import TestClient
from fxentry.main import create_app
from fxentry.core.config import Settings

"""Smoke test for the external-http rate provider.
Opens a GBP deposit session under the static provider and under the
external-http provider, showing the (likely) different settled amounts or a
graceful fallback to the bootstrap table when the network is unavailable.
"""


def _deposit(settings: Settings) -> dict:
    app = create_app(settings_override=settings)
    with TestClient(app) as client:
        card = next(a for a in client.get("/accounts").json() if a["currency"] == "GBP")
        session = client.post(
            "/sessions", json={"operation": "deposit", "account_id": card["id"]}
        ).json()
        return client.put(
            f"/sessions/{session['session_id']}/input", json={"raw": "100", "wait": True}
        ).json()


def run():
    with tempfile.TemporaryDirectory() as d:
        out = {}
        for kind in ("static", "external-http"):
            s = Settings(db_path=os.path.join(d, f"{kind}.db"), exchange_rate_provider=kind)
            s.init_post_load()
            view = _deposit(s)
            out[kind] = {
                k: view[k]
                for k in ("secondary_display", "rate_display", "rate_is_approximate", "fee")
            }
        print(json.dumps(out, indent=2))


if __name__ == "__main__":
    sys.path.append(os.getcwd())
    run()
