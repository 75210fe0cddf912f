"""
订单仓储实现
"""
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import OrderNotFoundException
from domain.order.entity import Order, OrderStatus, PaymentStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            account_id=model.account_id,
            order_number=model.order_number,
            total_amount=model.total_amount,
            currency=model.currency,
            status=OrderStatus(model.status),
            payment_status=PaymentStatus(model.payment_status),
            commission_amount=model.commission_amount,
            refunded_amount=model.refunded_amount,
            customer_id=model.customer_id,
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            customer_phone=model.customer_phone,
            payment_reference=model.payment_reference,
            payment_failure_reason=model.payment_failure_reason,
            items=list(model.items or []),
            paid_at=model.paid_at,
            delivered_at=model.delivered_at,
            funds_released_at=model.funds_released_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, order: Order) -> Order:
        db_order = OrderModel(
            account_id=order.account_id,
            order_number=order.order_number,
            status=order.status.value,
            payment_status=order.payment_status.value,
            total_amount=order.total_amount,
            commission_amount=order.commission_amount,
            refunded_amount=order.refunded_amount,
            currency=order.currency,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            items=[asdict(item) for item in order.items],
            payment_reference=order.payment_reference,
            paid_at=order.paid_at,
            delivered_at=order.delivered_at,
            funds_released_at=order.funds_released_at,
        )
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        db_order = await self.session.get(OrderModel, order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_for_update(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        db_order = await self.session.get(OrderModel, order.id)
        if not db_order:
            raise OrderNotFoundException(order.id)

        db_order.status = order.status.value
        db_order.payment_status = order.payment_status.value
        db_order.payment_reference = order.payment_reference
        db_order.payment_failure_reason = order.payment_failure_reason
        db_order.refunded_amount = order.refunded_amount
        db_order.paid_at = order.paid_at
        db_order.funds_released_at = order.funds_released_at
        db_order.updated_at = order.updated_at

        await self.session.flush()
        await self.session.refresh(db_order)

        logger.info(
            "order_updated",
            order_id=db_order.id,
            status=db_order.status,
            payment_status=db_order.payment_status,
        )
        return self._to_entity(db_order)

    async def list_releasable(self, delivered_before: datetime, limit: int = 500) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.status == OrderStatus.DELIVERED.value,
                OrderModel.payment_status == PaymentStatus.PAID.value,
                OrderModel.funds_released_at.is_(None),
                OrderModel.delivered_at.is_not(None),
                OrderModel.delivered_at <= delivered_before,
            )
            .order_by(OrderModel.delivered_at.asc())
            .limit(limit)
        )
        return [self._to_entity(o) for o in result.scalars().all()]
