"""
退货请求仓储实现
"""
from dataclasses import asdict
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import ReturnNotFoundException
from domain.refund.entity import ReturnRequest, ReturnStatus
from domain.refund.repository import ReturnRequestRepository
from infrastructure.models.return_request import ReturnRequestModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyReturnRequestRepository(ReturnRequestRepository):
    """退货请求仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ReturnRequestModel) -> ReturnRequest:
        return ReturnRequest(
            id=model.id,
            order_id=model.order_id,
            account_id=model.account_id,
            customer_id=model.customer_id,
            items=list(model.items or []),
            reason=model.reason,
            status=ReturnStatus(model.status),
            refund_amount=model.refund_amount,
            refund_reference=model.refund_reference,
            failure_reason=model.failure_reason,
            requested_at=model.requested_at,
            refunded_at=model.refunded_at,
            updated_at=model.updated_at,
        )

    async def create(self, request: ReturnRequest) -> ReturnRequest:
        db_request = ReturnRequestModel(
            order_id=request.order_id,
            account_id=request.account_id,
            customer_id=request.customer_id,
            items=[asdict(item) for item in request.items],
            reason=request.reason,
            status=request.status.value,
            refund_amount=request.refund_amount,
            refund_reference=request.refund_reference,
        )
        self.session.add(db_request)
        await self.session.flush()
        await self.session.refresh(db_request)
        return self._to_entity(db_request)

    async def get_by_id(self, return_id: int) -> Optional[ReturnRequest]:
        db_request = await self.session.get(ReturnRequestModel, return_id)
        return self._to_entity(db_request) if db_request else None

    async def get_for_update(self, return_id: int) -> Optional[ReturnRequest]:
        result = await self.session.execute(
            select(ReturnRequestModel)
            .where(ReturnRequestModel.id == return_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        db_request = result.scalar_one_or_none()
        return self._to_entity(db_request) if db_request else None

    async def update(self, request: ReturnRequest) -> ReturnRequest:
        db_request = await self.session.get(ReturnRequestModel, request.id)
        if not db_request:
            raise ReturnNotFoundException(request.id)

        db_request.status = request.status.value
        db_request.refund_amount = request.refund_amount
        db_request.refund_reference = request.refund_reference
        db_request.failure_reason = request.failure_reason
        db_request.refunded_at = request.refunded_at
        db_request.updated_at = request.updated_at

        await self.session.flush()
        await self.session.refresh(db_request)

        logger.info(
            "return_request_updated",
            return_id=db_request.id,
            status=db_request.status,
            refund_reference=db_request.refund_reference,
        )
        return self._to_entity(db_request)

    async def list_by_order(self, order_id: int) -> List[ReturnRequest]:
        result = await self.session.execute(
            select(ReturnRequestModel)
            .where(ReturnRequestModel.order_id == order_id)
            .order_by(ReturnRequestModel.id.asc())
        )
        return [self._to_entity(r) for r in result.scalars().all()]
