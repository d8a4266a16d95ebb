"""Tests for the /trades REST endpoints."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest_asyncio

from app.api.deps import get_trade_executor
from app.main import app
from app.services.ledger import SqlLedger
from app.services.price_store import PriceStore
from app.services.trade_executor import TradeExecutor

HEADERS = {"X-User-Id": "user-1"}


@pytest_asyncio.fixture
async def snapshot_id(client, db_session, make_price):
    """A fresh gold snapshot at buy 6984.82 / sell 6950.00."""
    await PriceStore().insert(db_session, make_price())
    response = await client.post("/snapshots", json={"metal": "gold"})
    return response.json()["snapshot_id"]


async def fund(db_session, asset: str, amount: str, user: str = "user-1"):
    await SqlLedger().credit(db_session, user, asset, Decimal(amount))
    await db_session.commit()


def buy(snapshot_id: str, amount: str = "1000", key: str = "key-1") -> dict:
    return {
        "direction": "buy",
        "metal": "gold",
        "snapshot_id": snapshot_id,
        "amount": amount,
        "idempotency_key": key,
    }


async def test_buy_trade(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")

    response = await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert Decimal(data["grams"]) == Decimal("0.143168")
    assert Decimal(data["price_per_gram"]) == Decimal("6984.82")
    assert data["replayed"] is False


async def test_sell_trade(client, db_session, snapshot_id):
    await fund(db_session, "gold", "1")
    body = buy(snapshot_id, amount="0.5") | {"direction": "sell"}

    response = await client.post("/trades", json=body, headers=HEADERS)

    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("3475.00")


async def test_retry_returns_same_trade(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")

    first = (await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)).json()
    second = (await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)).json()

    assert second["trade_id"] == first["trade_id"]
    assert second["replayed"] is True
    assert await SqlLedger().get_balance(db_session, "user-1", "EGP") == Decimal("4000")


async def test_insufficient_balance_is_402(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "10")

    response = await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)

    assert response.status_code == 402
    data = response.json()
    assert data["code"] == "insufficient_balance"
    assert data["trade_id"] is not None

    # The failure is stored and replayed for the same key
    retry = await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)
    assert retry.status_code == 402
    assert retry.json()["trade_id"] == data["trade_id"]


async def test_unknown_snapshot_is_404(client):
    response = await client.post("/trades", json=buy("missing"), headers=HEADERS)

    assert response.status_code == 404
    assert response.json()["code"] == "snapshot_not_found"


async def test_expired_snapshot_is_410(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")
    later = datetime.now(UTC) + timedelta(minutes=10)
    app.dependency_overrides[get_trade_executor] = lambda: TradeExecutor(clock=lambda: later)

    response = await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)

    assert response.status_code == 410
    assert response.json()["code"] == "snapshot_expired"


async def test_metal_mismatch_is_409(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")
    body = buy(snapshot_id) | {"metal": "silver"}

    response = await client.post("/trades", json=body, headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["code"] == "snapshot_metal_mismatch"


async def test_missing_user_header_is_rejected(client, snapshot_id):
    response = await client.post("/trades", json=buy(snapshot_id))

    assert response.status_code == 422


async def test_non_positive_amount_is_rejected(client, snapshot_id):
    response = await client.post("/trades", json=buy(snapshot_id, amount="0"), headers=HEADERS)

    assert response.status_code == 422


async def test_get_trade_includes_failures(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "10")
    failed = (await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)).json()

    response = await client.get(f"/trades/{failed['trade_id']}", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "failed"
    assert data["error_code"] == "insufficient_balance"
    assert data["idempotency_key"] == "key-1"


async def test_get_trade_of_other_user_is_404(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")
    trade = (await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)).json()

    response = await client.get(f"/trades/{trade['trade_id']}", headers={"X-User-Id": "user-2"})

    assert response.status_code == 404


async def test_amount_rounding_to_zero_is_422(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")

    response = await client.post(
        "/trades", json=buy(snapshot_id, amount="0.004"), headers=HEADERS
    )

    assert response.status_code == 422


async def test_reused_snapshot_is_409(client, db_session, snapshot_id):
    await fund(db_session, "EGP", "5000")
    await client.post("/trades", json=buy(snapshot_id), headers=HEADERS)

    response = await client.post("/trades", json=buy(snapshot_id, key="key-2"), headers=HEADERS)

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "snapshot_already_used"
    assert data["trade_id"] is not None
    assert await SqlLedger().get_balance(db_session, "user-1", "EGP") == Decimal("4000")
