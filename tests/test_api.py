"""
API and page tests through the ASGI app
=======================================
"""
import threading

import pytest
from httpx import AsyncClient, ASGITransport

from fxjournal.auth import StaticCredentialVerifier, create_access_token
from fxjournal.auth_utils import COOKIE_NAME
from fxjournal.main import create_app
from fxjournal.store import JournalStore

pytestmark = pytest.mark.anyio

TRADE = {
    "instrument": "EUR/USD",
    "position": "Long",
    "lot_size": 1.0,
    "entry_price": 1.1000,
    "stop_loss": 1.0950,
    "take_profit": 1.1100,
    "outcome": "Win",
    "trade_date": "2024-03-01",
    "strategy": "Breakout",
    "notes": "London open",
}


async def create_account(client, name="Main", balance=10000, account_type="Live"):
    res = await client.post("/api/accounts", json={
        "name": name, "initial_balance": balance, "account_type": account_type,
    })
    assert res.status_code == 201
    return res.json()


async def create_trade(client, **overrides):
    res = await client.post("/api/trades", json={**TRADE, **overrides})
    assert res.status_code == 201
    return res.json()


class TestAuth:

    async def test_health_is_public(self, anon_client):
        res = await anon_client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "ok"

    @pytest.mark.parametrize("path", ["/api/accounts", "/api/trades", "/api/stats", "/api/instruments"])
    async def test_api_requires_login(self, anon_client, path):
        res = await anon_client.get(path)
        assert res.status_code == 401

    @pytest.mark.parametrize("path", ["/", "/dashboard", "/trades/new", "/calendar"])
    async def test_pages_redirect_to_login(self, anon_client, path):
        res = await anon_client.get(path)
        assert res.status_code == 303
        assert res.headers["location"] == "/login"

    async def test_login_page(self, anon_client):
        res = await anon_client.get("/login")
        assert res.status_code == 200
        assert 'name="username"' in res.text

    async def test_login_form_sets_cookie(self, anon_client, credentials):
        res = await anon_client.post("/login", data=credentials)
        assert res.status_code == 303
        assert res.headers["location"] == "/dashboard"
        assert COOKIE_NAME in res.headers["set-cookie"]

    async def test_login_form_rejects_bad_password(self, anon_client, credentials):
        res = await anon_client.post("/login", data={**credentials, "password": "nope"})
        assert res.status_code == 200
        assert "Invalid username or password." in res.text
        assert "set-cookie" not in res.headers

    async def test_api_login(self, anon_client, credentials):
        res = await anon_client.post("/api/login", json=credentials)
        assert res.status_code == 200
        assert res.json() == {"username": credentials["username"]}
        assert COOKIE_NAME in res.headers["set-cookie"]

    async def test_api_login_failure(self, anon_client, credentials):
        res = await anon_client.post("/api/login", json={**credentials, "username": "someone"})
        assert res.status_code == 401

    async def test_logout_clears_cookie(self, client):
        res = await client.get("/logout")
        assert res.status_code == 303
        assert res.headers["location"] == "/login"
        assert f'{COOKIE_NAME}=""' in res.headers["set-cookie"]

    async def test_tampered_cookie(self, anon_client):
        anon_client.cookies.set(COOKIE_NAME, "not-a-jwt")
        res = await anon_client.get("/api/accounts")
        assert res.status_code == 401


class TestAccountsApi:

    async def test_empty_journal(self, client):
        assert (await client.get("/api/accounts")).json() == []
        assert (await client.get("/api/accounts/active")).json() is None

    async def test_first_account_is_active(self, client):
        account = await create_account(client)
        assert account["name"] == "Main"
        assert account["account_type"] == "Live"
        assert (await client.get("/api/accounts/active")).json()["id"] == account["id"]

    async def test_switch_account(self, client):
        await create_account(client, "First")
        second = await create_account(client, "Second", 100000, "Funded")

        res = await client.put("/api/accounts/active", json={"account_id": second["id"]})

        assert res.status_code == 200
        assert res.json()["name"] == "Second"
        assert [a["name"] for a in (await client.get("/api/accounts")).json()] == ["First", "Second"]

    async def test_switch_to_unknown_account(self, client):
        await create_account(client)
        res = await client.put("/api/accounts/active", json={"account_id": "missing"})
        assert res.status_code == 404

    @pytest.mark.parametrize("body", [
        {"name": "", "initial_balance": 100},
        {"name": "Main", "initial_balance": -1},
        {"name": "Main", "initial_balance": 100, "account_type": "Demo"},
    ])
    async def test_invalid_account(self, client, body):
        res = await client.post("/api/accounts", json=body)
        assert res.status_code == 422


class TestTradesApi:

    async def test_trade_needs_active_account(self, client):
        res = await client.post("/api/trades", json=TRADE)
        assert res.status_code == 409

    async def test_create_win_and_loss(self, client):
        account = await create_account(client)

        win = await create_trade(client)
        loss = await create_trade(client, outcome="Loss", trade_date="2024-03-02")

        assert win["account_id"] == account["id"]
        assert win["exit_price"] == pytest.approx(1.1100)
        assert win["pnl"] == pytest.approx(1000.0)
        assert loss["exit_price"] == pytest.approx(1.0950)
        assert loss["pnl"] == pytest.approx(-500.0)

    async def test_list_is_latest_date_first(self, client):
        await create_account(client)
        await create_trade(client, trade_date="2024-03-02")
        await create_trade(client, trade_date="2024-03-05")
        await create_trade(client, trade_date="2024-03-01")

        res = await client.get("/api/trades")

        assert [t["trade_date"] for t in res.json()] == ["2024-03-05", "2024-03-02", "2024-03-01"]

    async def test_read_update_delete(self, client):
        await create_account(client)
        trade = await create_trade(client)

        res = await client.get(f"/api/trades/{trade['id']}")
        assert res.json() == trade

        res = await client.put(f"/api/trades/{trade['id']}", json={**TRADE, "outcome": "Loss", "lot_size": 2.0})
        assert res.status_code == 200
        assert res.json()["id"] == trade["id"]
        assert res.json()["pnl"] == pytest.approx(-1000.0)

        res = await client.delete(f"/api/trades/{trade['id']}")
        assert res.status_code == 204
        assert (await client.get(f"/api/trades/{trade['id']}")).status_code == 404
        assert (await client.delete(f"/api/trades/{trade['id']}")).status_code == 404

    async def test_unknown_trade(self, client):
        assert (await client.get("/api/trades/missing")).status_code == 404
        assert (await client.put("/api/trades/missing", json=TRADE)).status_code == 404

    @pytest.mark.parametrize("override", [
        {"lot_size": 0},
        {"position": "Sideways"},
        {"outcome": "Draw"},
        {"instrument": ""},
    ])
    async def test_invalid_trade(self, client, override):
        await create_account(client)
        res = await client.post("/api/trades", json={**TRADE, **override})
        assert res.status_code == 422

    async def test_trades_follow_active_account(self, client):
        first = await create_account(client, "First")
        second = await create_account(client, "Second")
        await create_trade(client)

        await client.put("/api/accounts/active", json={"account_id": second["id"]})
        assert (await client.get("/api/trades")).json() == []

        await client.put("/api/accounts/active", json={"account_id": first["id"]})
        assert len((await client.get("/api/trades")).json()) == 1


class TestStatsApi:

    async def test_stats(self, client):
        account = await create_account(client, balance=10000)
        await create_trade(client)                    # +1000
        await create_trade(client, outcome="Loss")    # -500

        stats = (await client.get("/api/stats")).json()

        assert stats["account_id"] == account["id"]
        assert stats["trade_count"] == 2
        assert stats["total_pnl"] == pytest.approx(500)
        assert stats["win_rate"] == pytest.approx(50)
        assert stats["account_growth"] == pytest.approx(5)
        assert stats["current_balance"] == pytest.approx(10500)

    async def test_stats_without_account(self, client):
        stats = (await client.get("/api/stats")).json()
        assert stats["account_id"] is None
        assert stats["trade_count"] == 0

    async def test_equity_curve(self, client):
        await create_account(client, balance=10000)
        await create_trade(client, outcome="Loss", trade_date="2024-03-02")
        await create_trade(client, trade_date="2024-03-01")

        curve = (await client.get("/api/equity-curve")).json()

        assert [p["label"] for p in curve] == ["Start", "Trade 1", "Trade 2"]
        assert [p["balance"] for p in curve] == pytest.approx([10000, 11000, 10500])

    async def test_preview(self, client):
        res = await client.post("/api/pnl/preview", json={
            "instrument": "XAU/USD (Gold)", "position": "Short", "lot_size": 0.5,
            "entry_price": 2000, "stop_loss": 2010, "take_profit": 1980,
        })
        assert res.status_code == 200
        assert res.json() == {"potential_profit": 1000.0, "potential_loss": -500.0, "pnl": 0.0}

    async def test_preview_of_blank_form(self, client):
        res = await client.post("/api/pnl/preview", json={})
        assert res.json() == {"potential_profit": 0.0, "potential_loss": 0.0, "pnl": 0.0}

    async def test_instruments(self, client):
        groups = (await client.get("/api/instruments")).json()
        assert "EUR/USD" in groups["Forex Majors"]


class TestAiApi:

    async def test_analysis(self, client, analyzer):
        await create_account(client)
        trade = await create_trade(client)

        res = await client.post(f"/api/trades/{trade['id']}/analysis")

        assert res.status_code == 200
        assert res.json()["text"] == "Analysis of EUR/USD"
        assert res.json()["sources"] == [{"uri": "https://example.com/news", "title": "Market news"}]
        assert analyzer.analyzed == [trade["id"]]

    async def test_analysis_of_unknown_trade(self, client):
        res = await client.post("/api/trades/missing/analysis")
        assert res.status_code == 404

    async def test_analysis_failure(self, client, analyzer):
        await create_account(client)
        trade = await create_trade(client)
        analyzer.fail = True

        res = await client.post(f"/api/trades/{trade['id']}/analysis")

        assert res.status_code == 502
        assert "error analyzing the trade" in res.json()["detail"]

    async def test_calendar(self, client, analyzer):
        res = await client.get("/api/calendar")
        assert res.status_code == 200
        assert res.json()[0]["event"] == "Non-Farm Payrolls"

        analyzer.fail = True
        res = await client.get("/api/calendar")
        assert res.status_code == 502
        assert res.json()["detail"] == "Failed to fetch economic calendar data."

    async def test_price(self, client, analyzer):
        res = await client.get("/api/price", params={"instrument": "EUR/USD"})
        assert res.json() == {"instrument": "EUR/USD", "price": 1.0845}

        analyzer.fail = True
        res = await client.get("/api/price", params={"instrument": "EUR/USD"})
        assert res.status_code == 502


class TestPages:

    async def test_dashboard_without_account_goes_to_account_form(self, client):
        res = await client.get("/dashboard")
        assert res.status_code == 303
        assert res.headers["location"] == "/accounts/new"

    async def test_create_account_form(self, client, store):
        res = await client.post("/accounts", data={
            "name": "Prop Firm", "initial_balance": "100000", "account_type": "Funded",
        })
        assert res.status_code == 303
        assert store.active_account.name == "Prop Firm"

        res = await client.get("/dashboard")
        assert res.status_code == 200
        assert "Prop Firm" in res.text

    async def test_create_account_form_errors(self, client, store):
        res = await client.post("/accounts", data={"name": "Main", "initial_balance": "lots"})
        assert res.status_code == 400
        assert store.accounts == []

    async def test_new_account_from_form_becomes_active(self, client, store):
        await create_account(client, "First")
        await client.post("/accounts", data={"name": "Second", "initial_balance": "500"})
        assert store.active_account.name == "Second"

    async def test_switch_account_form(self, client, store):
        first = await create_account(client, "First")
        await create_account(client, "Second")
        await client.post("/accounts", data={"name": "Third", "initial_balance": "500"})

        res = await client.post("/accounts/active", data={"account_id": first["id"]})

        assert res.status_code == 303
        assert store.active_account_id == first["id"]

    async def test_add_trade_form(self, client, store):
        await create_account(client)
        assert (await client.get("/trades/new")).status_code == 200

        res = await client.post("/trades", data={k: str(v) for k, v in TRADE.items()})

        assert res.status_code == 303
        assert res.headers["location"] == "/dashboard"
        assert store.trades[0].pnl == pytest.approx(1000.0)

        dashboard = await client.get("/dashboard")
        assert "EUR/USD" in dashboard.text

    async def test_add_trade_form_with_screenshot(self, client, store):
        await create_account(client)
        png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

        res = await client.post(
            "/trades",
            data={k: str(v) for k, v in TRADE.items()},
            files={"screenshot": ("chart.png", png, "image/png")},
        )

        assert res.status_code == 303
        assert store.trades[0].screenshot.startswith("data:image/png;base64,")

    async def test_add_trade_form_rejects_non_image(self, client, store):
        await create_account(client)
        res = await client.post(
            "/trades",
            data={k: str(v) for k, v in TRADE.items()},
            files={"screenshot": ("notes.txt", b"hello", "text/plain")},
        )
        assert res.status_code == 400
        assert "must be an image" in res.text
        assert store.trades == []

    async def test_add_trade_form_validation_error(self, client, store):
        await create_account(client)
        res = await client.post("/trades", data={**{k: str(v) for k, v in TRADE.items()}, "lot_size": ""})
        assert res.status_code == 400
        assert store.trades == []

    async def test_edit_and_delete_trade_pages(self, client, store):
        await create_account(client)
        trade = await create_trade(client)

        res = await client.get(f"/trades/{trade['id']}/edit")
        assert res.status_code == 200
        assert "London open" in res.text

        res = await client.post(f"/trades/{trade['id']}", data={
            **{k: str(v) for k, v in TRADE.items()}, "outcome": "Loss",
        })
        assert res.status_code == 303
        assert res.headers["location"] == f"/trades/{trade['id']}"
        assert store.get_trade(trade["id"]).pnl == pytest.approx(-500.0)

        res = await client.post(f"/trades/{trade['id']}/delete")
        assert res.status_code == 303
        assert store.trades == []

    async def test_edit_keeps_and_removes_screenshot(self, client, store):
        await create_account(client)
        trade = await create_trade(client, screenshot="data:image/png;base64,AAAA")
        fields = {k: str(v) for k, v in TRADE.items()}

        await client.post(f"/trades/{trade['id']}", data=fields)
        assert store.get_trade(trade["id"]).screenshot == "data:image/png;base64,AAAA"

        await client.post(f"/trades/{trade['id']}", data={**fields, "remove_screenshot": "1"})
        assert store.get_trade(trade["id"]).screenshot is None

    async def test_trade_detail_and_analysis(self, client, analyzer):
        await create_account(client)
        trade = await create_trade(client)

        res = await client.get(f"/trades/{trade['id']}")
        assert res.status_code == 200
        assert "Analyze Trade" in res.text

        res = await client.post(f"/trades/{trade['id']}/analyze")
        assert res.status_code == 200
        assert "Analysis of EUR/USD" in res.text
        assert "https://example.com/news" in res.text

        analyzer.fail = True
        res = await client.post(f"/trades/{trade['id']}/analyze")
        assert res.status_code == 200
        assert "error analyzing the trade" in res.text
        assert "Analyze Again" in res.text

    async def test_calendar_page(self, client, analyzer):
        res = await client.get("/calendar")
        assert "Non-Farm Payrolls" in res.text

        analyzer.fail = True
        res = await client.get("/calendar")
        assert res.status_code == 200
        assert "Failed to fetch economic calendar data." in res.text

    async def test_export_csv(self, client):
        await create_account(client)
        await create_trade(client, notes="line one\nline two")

        res = await client.get("/trades/export")

        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        lines = res.text.strip().splitlines()
        assert lines[0].startswith("id,account_id,trade_date,instrument")
        assert len(lines) == 2
        assert "line one line two" in lines[1]


class TestStorageFailures:

    @pytest.fixture
    async def flaky_client(self, flaky_repository, analyzer):
        app = create_app(
            store=JournalStore(flaky_repository),
            verifier=StaticCredentialVerifier("trader", "secret-pass"),
            analyzer=analyzer,
        )
        cookies = {COOKIE_NAME: create_access_token(data={"sub": "trader"})}
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", cookies=cookies) as ac:
            yield ac

    async def test_failed_save_is_503_and_leaves_no_trace(self, flaky_client, flaky_repository):
        await create_account(flaky_client, balance=1000)
        flaky_repository.broken = True

        res = await flaky_client.post("/api/trades", json=TRADE)

        assert res.status_code == 503
        assert res.json()["detail"] == "Failed to save trades"
        assert (await flaky_client.get("/api/trades")).json() == []
        assert (await flaky_client.get("/api/stats")).json()["current_balance"] == 1000


class TestAiRoutesThreading:

    async def test_store_is_read_on_the_event_loop(self, client, store, monkeypatch):
        await create_account(client)
        trade = await create_trade(client)
        threads = []

        def recording(method):
            def wrapper(*args, **kwargs):
                threads.append(threading.current_thread())
                return method(*args, **kwargs)
            return wrapper

        monkeypatch.setattr(store, "get_trade", recording(store.get_trade))
        monkeypatch.setattr(store, "get_account", recording(store.get_account))

        assert (await client.post(f"/api/trades/{trade['id']}/analysis")).status_code == 200
        assert (await client.post(f"/trades/{trade['id']}/analyze")).status_code == 200

        assert threads
        assert all(t is threading.main_thread() for t in threads)
