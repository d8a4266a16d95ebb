"""Snapshot-priced, idempotent trade execution.

State machine: ``pending -> completed | failed``. A trade is claimed by
inserting a pending row under the unique (user_id, idempotency_key)
index; validation, the ledger mutation and the final status are applied
in that same transaction, so the economic effect and the trade record
commit together or not at all. The unique index guards duplicate keys: a
request that loses the insert race replays the winner's committed result
instead of executing again.

Failed trades are persisted too, so a retry with the same key returns
the same typed error rather than re-attempting.

A snapshot authorizes one trade. A conditional update marks it with the
trade id; later trades against it fail with ``SnapshotAlreadyUsed``. A
trade that fails releases its mark in the failure transaction.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import insert_for
from app.models.price_snapshot import PriceSnapshot
from app.models.trade import Trade
from app.services.ledger import Ledger, SqlLedger
from app.services.price_store import as_utc
from app.services.price_types import Direction, Metal, TradeStatus

GRAMS_QUANTUM = Decimal("0.000001")
CURRENCY_QUANTUM = Decimal("0.01")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TradeError(Exception):
    """Base class for terminal, user-visible trade failures."""

    code = "trade_error"

    def __init__(self, message: str = "", trade_id: str | None = None) -> None:
        super().__init__(message or self.code)
        self.trade_id = trade_id


class SnapshotNotFound(TradeError):
    code = "snapshot_not_found"


class SnapshotExpired(TradeError):
    code = "snapshot_expired"


class SnapshotMetalMismatch(TradeError):
    code = "snapshot_metal_mismatch"


class InsufficientBalance(TradeError):
    code = "insufficient_balance"


class SnapshotAlreadyUsed(TradeError):
    code = "snapshot_already_used"


class TradeInProgress(TradeError):
    code = "trade_in_progress"


ERRORS_BY_CODE: dict[str, type[TradeError]] = {
    cls.code: cls
    for cls in (
        SnapshotNotFound,
        SnapshotExpired,
        SnapshotMetalMismatch,
        SnapshotAlreadyUsed,
        InsufficientBalance,
    )
}


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


@dataclass
class TradeResult:
    trade_id: str
    status: TradeStatus
    direction: Direction
    metal: Metal
    grams: Decimal
    amount: Decimal  # currency amount paid (buy) or received (sell)
    price_per_gram: Decimal
    currency: str
    snapshot_id: str
    replayed: bool = False


def _result_from_row(trade: Trade, replayed: bool) -> TradeResult:
    return TradeResult(
        trade_id=trade.id,
        status=TradeStatus(trade.status),
        direction=Direction(trade.direction),
        metal=Metal(trade.metal),
        grams=trade.amount_grams,
        amount=trade.amount_currency,
        price_per_gram=trade.price_per_gram,
        currency=trade.currency,
        snapshot_id=trade.snapshot_id,
        replayed=replayed,
    )


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class TradeExecutor:
    """Executes buy/sell trades against price snapshots exactly once.

    Amount semantics:
        buy  -- ``amount`` is the currency to spend, rounded to 0.01; grams
                are derived from the snapshot's buy price per gram.
        sell -- ``amount`` is the grams to sell, rounded to 0.000001;
                proceeds are derived from the snapshot's sell price per gram.

    Args:
        ledger: Balance collaborator sharing the executor's transaction.
        currency: Currency asset debited/credited in the ledger.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        ledger: Ledger | None = None,
        currency: str = "EGP",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.ledger = ledger or SqlLedger()
        self.currency = currency
        self.clock = clock

    async def execute(
        self,
        session: AsyncSession,
        user_id: str,
        direction: Direction,
        metal: Metal,
        snapshot_id: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> TradeResult:
        """Execute a trade or replay the stored outcome for its idempotency key.

        Raises:
            ValueError: if amount is not positive once rounded.
            SnapshotNotFound, SnapshotExpired, SnapshotMetalMismatch,
            SnapshotAlreadyUsed, InsufficientBalance: terminal failures,
            persisted as a failed trade.
        """
        quantum = CURRENCY_QUANTUM if direction == Direction.BUY else GRAMS_QUANTUM
        amount = Decimal(amount).quantize(quantum, rounding=ROUND_HALF_EVEN)
        if amount <= 0:
            raise ValueError("amount must be positive")

        existing = await self._find(session, user_id, idempotency_key)
        if existing is not None:
            return self._replay(existing, direction, metal, snapshot_id, amount)

        trade_id = str(uuid.uuid4())
        claimed = await self._claim(
            session, trade_id, user_id, direction, metal, snapshot_id, amount, idempotency_key
        )
        if not claimed:
            # Another request owns this key; its result is committed by now
            await session.rollback()
            existing = await self._find(session, user_id, idempotency_key)
            if existing is None:
                raise TradeInProgress("idempotency key is being processed")
            return self._replay(existing, direction, metal, snapshot_id, amount)

        try:
            result = await self._settle(
                session, trade_id, user_id, direction, metal, snapshot_id, amount
            )
        except TradeError as exc:
            exc.trade_id = trade_id
            await self._release_snapshot(session, snapshot_id, trade_id)
            await session.execute(
                update(Trade)
                .where(Trade.id == trade_id)
                .values(
                    status=TradeStatus.FAILED.value,
                    error_code=exc.code,
                    completed_at=self.clock(),
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            logger.warning(
                "Trade failed | trade_id={trade_id} user_id={user_id} code={code}",
                trade_id=trade_id,
                user_id=user_id,
                code=exc.code,
            )
            raise
        except Exception:
            await session.rollback()
            raise

        await session.commit()
        logger.info(
            "Trade completed | trade_id={trade_id} user_id={user_id} {direction} "
            "{grams}g {metal} for {amount} {currency}",
            trade_id=trade_id,
            user_id=user_id,
            direction=direction.value,
            grams=result.grams,
            metal=metal.value,
            amount=result.amount,
            currency=result.currency,
        )
        return result

    async def get_trade(self, session: AsyncSession, trade_id: str) -> Trade | None:
        return await session.get(Trade, trade_id)

    async def _find(
        self, session: AsyncSession, user_id: str, idempotency_key: str
    ) -> Trade | None:
        result = await session.execute(
            select(Trade).where(
                Trade.user_id == user_id,
                Trade.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    async def _claim(
        self,
        session: AsyncSession,
        trade_id: str,
        user_id: str,
        direction: Direction,
        metal: Metal,
        snapshot_id: str,
        amount: Decimal,
        idempotency_key: str,
    ) -> bool:
        """Insert the pending trade; False if the key is already taken."""
        stmt = (
            insert_for(session, Trade)
            .values(
                id=trade_id,
                user_id=user_id,
                idempotency_key=idempotency_key,
                metal=metal.value,
                direction=direction.value,
                requested_amount=amount,
                snapshot_id=snapshot_id,
                status=TradeStatus.PENDING.value,
                created_at=self.clock(),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "idempotency_key"])
            .returning(Trade.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    def _replay(
        self,
        trade: Trade,
        direction: Direction,
        metal: Metal,
        snapshot_id: str,
        amount: Decimal,
    ) -> TradeResult:
        if (
            trade.direction != direction.value
            or trade.metal != metal.value
            or trade.snapshot_id != snapshot_id
            or trade.requested_amount != amount
        ):
            logger.warning(
                "Idempotency key reused with different arguments | trade_id={trade_id}",
                trade_id=trade.id,
            )

        logger.info(
            "Replaying trade | trade_id={trade_id} status={status}",
            trade_id=trade.id,
            status=trade.status,
        )
        if trade.status == TradeStatus.COMPLETED.value:
            return _result_from_row(trade, replayed=True)
        if trade.status == TradeStatus.FAILED.value:
            error_cls = ERRORS_BY_CODE.get(trade.error_code, TradeError)
            raise error_cls(f"trade {trade.id} failed: {trade.error_code}", trade_id=trade.id)
        raise TradeInProgress(f"trade {trade.id} is still pending", trade_id=trade.id)

    async def _load_snapshot(
        self, session: AsyncSession, snapshot_id: str, metal: Metal
    ) -> PriceSnapshot:
        snapshot = await session.get(PriceSnapshot, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFound(f"snapshot {snapshot_id} not found")
        if self.clock() > as_utc(snapshot.valid_until):
            raise SnapshotExpired(f"snapshot {snapshot_id} expired at {snapshot.valid_until}")
        if snapshot.metal != metal.value:
            raise SnapshotMetalMismatch(
                f"snapshot {snapshot_id} is for {snapshot.metal}, not {metal.value}"
            )
        return snapshot

    async def _release_snapshot(
        self, session: AsyncSession, snapshot_id: str, trade_id: str
    ) -> None:
        """Free a snapshot claimed by a trade that did not complete."""
        await session.execute(
            update(PriceSnapshot)
            .where(
                PriceSnapshot.id == snapshot_id,
                PriceSnapshot.used_by_trade_id == trade_id,
            )
            .values(used_by_trade_id=None)
            .execution_options(synchronize_session=False)
        )

    async def _settle(
        self,
        session: AsyncSession,
        trade_id: str,
        user_id: str,
        direction: Direction,
        metal: Metal,
        snapshot_id: str,
        amount: Decimal,
    ) -> TradeResult:
        snapshot = await self._load_snapshot(session, snapshot_id, metal)
        claimed = await session.execute(
            update(PriceSnapshot)
            .where(
                PriceSnapshot.id == snapshot_id,
                PriceSnapshot.used_by_trade_id.is_(None),
            )
            .values(used_by_trade_id=trade_id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise SnapshotAlreadyUsed(f"snapshot {snapshot_id} already used")
        currency = snapshot.currency or self.currency

        if direction == Direction.BUY:
            price = snapshot.buy_price_per_gram
            cash = amount
            grams = (amount / price).quantize(GRAMS_QUANTUM, rounding=ROUND_HALF_EVEN)
            if not await self.ledger.debit(session, user_id, currency, cash):
                raise InsufficientBalance(f"insufficient {currency} balance")
            await self.ledger.credit(session, user_id, metal.value, grams)
        else:
            price = snapshot.sell_price_per_gram
            grams = amount
            cash = (amount * price).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_EVEN)
            if not await self.ledger.debit(session, user_id, metal.value, grams):
                raise InsufficientBalance(f"insufficient {metal.value} holdings")
            await self.ledger.credit(session, user_id, currency, cash)

        await session.execute(
            update(Trade)
            .where(Trade.id == trade_id)
            .values(
                status=TradeStatus.COMPLETED.value,
                amount_currency=cash,
                amount_grams=grams,
                price_per_gram=price,
                currency=currency,
                completed_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        return TradeResult(
            trade_id=trade_id,
            status=TradeStatus.COMPLETED,
            direction=direction,
            metal=metal,
            grams=grams,
            amount=cash,
            price_per_gram=price,
            currency=currency,
            snapshot_id=snapshot_id,
        )
