"""
提现仓储实现
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import PayoutNotFoundException
from domain.payout.entity import OPEN_STATUSES, Payout, PayoutMethod, PayoutStatus
from domain.payout.repository import PayoutRepository
from infrastructure.models.payout import PayoutModel
from core.logging_config import get_logger


logger = get_logger(__name__)

_OPEN = [s.value for s in OPEN_STATUSES]


class SQLAlchemyPayoutRepository(PayoutRepository):
    """提现仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PayoutModel) -> Payout:
        return Payout(
            id=model.id,
            account_id=model.account_id,
            amount=model.amount,
            currency=model.currency,
            fee=model.fee,
            method=PayoutMethod(model.method),
            details=model.details or {},
            status=PayoutStatus(model.status),
            reference=model.reference,
            requires_2fa=model.requires_2fa,
            verified_2fa=model.verified_2fa,
            transaction_id=model.transaction_id,
            failure_reason=model.failure_reason,
            requested_at=model.requested_at,
            processed_at=model.processed_at,
            updated_at=model.updated_at,
        )

    async def create(self, payout: Payout) -> Payout:
        db_payout = PayoutModel(
            account_id=payout.account_id,
            amount=payout.amount,
            fee=payout.fee,
            currency=payout.currency,
            status=payout.status.value,
            method=payout.method.value,
            details=payout.details,
            reference=payout.reference,
            requires_2fa=payout.requires_2fa,
            verified_2fa=payout.verified_2fa,
            transaction_id=payout.transaction_id,
            requested_at=payout.requested_at,
        )
        self.session.add(db_payout)
        await self.session.flush()
        await self.session.refresh(db_payout)
        logger.info(
            "payout_created",
            payout_id=db_payout.id,
            account_id=db_payout.account_id,
            amount=db_payout.amount,
            fee=db_payout.fee,
        )
        return self._to_entity(db_payout)

    async def get_by_id(self, payout_id: int) -> Optional[Payout]:
        db_payout = await self.session.get(PayoutModel, payout_id)
        return self._to_entity(db_payout) if db_payout else None

    async def get_for_update(self, payout_id: int) -> Optional[Payout]:
        result = await self.session.execute(
            select(PayoutModel)
            .where(PayoutModel.id == payout_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        db_payout = result.scalar_one_or_none()
        return self._to_entity(db_payout) if db_payout else None

    async def update(self, payout: Payout) -> Payout:
        db_payout = await self.session.get(PayoutModel, payout.id)
        if not db_payout:
            raise PayoutNotFoundException(payout.id)

        db_payout.status = payout.status.value
        db_payout.reference = payout.reference
        db_payout.transaction_id = payout.transaction_id
        db_payout.failure_reason = payout.failure_reason
        db_payout.processed_at = payout.processed_at
        db_payout.updated_at = payout.updated_at

        await self.session.flush()
        await self.session.refresh(db_payout)

        logger.info(
            "payout_updated",
            payout_id=db_payout.id,
            status=db_payout.status,
            reference=db_payout.reference,
        )
        return self._to_entity(db_payout)

    async def has_open_payout(self, account_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(PayoutModel.id)).where(
                PayoutModel.account_id == account_id,
                PayoutModel.status.in_(_OPEN),
            )
        )
        return result.scalar_one() > 0

    async def get_last_completed(self, account_id: int) -> Optional[Payout]:
        result = await self.session.execute(
            select(PayoutModel)
            .where(
                PayoutModel.account_id == account_id,
                PayoutModel.status == PayoutStatus.COMPLETED.value,
            )
            .order_by(PayoutModel.processed_at.desc())
            .limit(1)
        )
        db_payout = result.scalar_one_or_none()
        return self._to_entity(db_payout) if db_payout else None

    async def list_by_account(
        self,
        account_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PayoutStatus] = None,
    ) -> List[Payout]:
        query = select(PayoutModel).where(PayoutModel.account_id == account_id)

        if status:
            query = query.where(PayoutModel.status == status.value)

        query = query.order_by(PayoutModel.requested_at.desc()).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def list_stale(self, requested_before: datetime, limit: int = 200) -> List[Payout]:
        result = await self.session.execute(
            select(PayoutModel)
            .where(
                PayoutModel.status.in_(_OPEN),
                PayoutModel.requested_at <= requested_before,
            )
            .order_by(PayoutModel.requested_at.asc())
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]
