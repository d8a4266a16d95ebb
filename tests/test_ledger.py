"""Tests for the SQL balance ledger."""

from decimal import Decimal

from app.services.ledger import SqlLedger

USER = "user-1"


async def test_repeated_fractional_debits_land_on_zero(db_session):
    ledger = SqlLedger()
    await ledger.credit(db_session, USER, "EGP", Decimal("0.3"))

    for _ in range(3):
        assert await ledger.debit(db_session, USER, "EGP", Decimal("0.1")) is True
    await db_session.commit()

    assert await ledger.get_balance(db_session, USER, "EGP") == Decimal("0")
    assert await ledger.debit(db_session, USER, "EGP", Decimal("0.000001")) is False


async def test_debit_of_exact_balance_succeeds(db_session):
    ledger = SqlLedger()
    await ledger.credit(db_session, USER, "gold", Decimal("0.143168"))
    await ledger.credit(db_session, USER, "gold", Decimal("0.000001"))

    assert await ledger.debit(db_session, USER, "gold", Decimal("0.143169")) is True
    assert await ledger.get_balance(db_session, USER, "gold") == Decimal("0")


async def test_large_balances_keep_every_digit(db_session):
    ledger = SqlLedger()
    await ledger.credit(db_session, USER, "EGP", Decimal("123456789012.000001"))

    assert await ledger.get_balance(db_session, USER, "EGP") == Decimal("123456789012.000001")
