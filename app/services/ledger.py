"""Balance ledger collaborator.

The trade executor only depends on the ``Ledger`` protocol. Every call
takes the executor's session so the balance mutation commits in the same
transaction as the trade record. ``SqlLedger`` is the default
implementation over the ``balances`` table.
"""

from decimal import Decimal
from typing import Protocol

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import insert_for
from app.models.balance import Balance


class Ledger(Protocol):
    async def get_balance(self, session: AsyncSession, user_id: str, asset: str) -> Decimal: ...

    async def debit(
        self, session: AsyncSession, user_id: str, asset: str, amount: Decimal
    ) -> bool: ...

    async def credit(
        self, session: AsyncSession, user_id: str, asset: str, amount: Decimal
    ) -> None: ...


class SqlLedger:
    """Ledger over the balances table. Does not commit; the caller owns the transaction."""

    async def get_balance(self, session: AsyncSession, user_id: str, asset: str) -> Decimal:
        result = await session.execute(
            select(Balance.amount).where(Balance.user_id == user_id, Balance.asset == asset)
        )
        amount = result.scalar_one_or_none()
        return amount if amount is not None else Decimal("0")

    async def debit(
        self, session: AsyncSession, user_id: str, asset: str, amount: Decimal
    ) -> bool:
        """Atomically subtract ``amount`` if the balance covers it.

        Returns:
            False (and changes nothing) when the balance is insufficient.
        """
        result = await session.execute(
            update(Balance)
            .where(
                Balance.user_id == user_id,
                Balance.asset == asset,
                Balance.amount >= amount,
            )
            .values(amount=Balance.amount - amount)
            .execution_options(synchronize_session=False)
        )
        ok = result.rowcount == 1
        if not ok:
            logger.info(
                "Debit refused | user_id={user_id} asset={asset} amount={amount}",
                user_id=user_id,
                asset=asset,
                amount=amount,
            )
        return ok

    async def credit(
        self, session: AsyncSession, user_id: str, asset: str, amount: Decimal
    ) -> None:
        stmt = insert_for(session, Balance).values(user_id=user_id, asset=asset, amount=amount)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "asset"],
            set_={"amount": Balance.amount + stmt.excluded.amount},
        )
        await session.execute(stmt)
