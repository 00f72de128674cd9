from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product
from app.services.conflicts import ResourceConflict


logger = logging.getLogger(__name__)


class StockConflict(ResourceConflict):
    def __init__(self, product_id: UUID, requested: int) -> None:
        super().__init__(f"Insufficient stock for product {product_id}")
        self.product_id = product_id
        self.requested = requested


async def decrement_stock(
    session: AsyncSession,
    *,
    product_id: UUID,
    quantity: int,
    allow_oversell: bool = False,
) -> None:
    """Take ``quantity`` units off the shelf in a single conditional statement.

    Two sales of the last unit cannot both succeed: the loser updates zero rows and
    gets a ``StockConflict``. With ``allow_oversell`` the count is floored at zero
    instead of rejecting.
    """
    if quantity <= 0:
        return
    if allow_oversell:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(
                quantity_on_hand=case(
                    (Product.quantity_on_hand >= quantity, Product.quantity_on_hand - quantity),
                    else_=0,
                )
            )
        )
    else:
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.quantity_on_hand >= quantity)
            .values(quantity_on_hand=Product.quantity_on_hand - quantity)
        )
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0:
        logger.warning(
            "stock_conflict",
            extra={"product_id": str(product_id), "requested": quantity},
        )
        raise StockConflict(product_id, quantity)
