"""
账本仓储实现 - 使用SQLAlchemy实现账户与交易的数据访问
"""
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import AccountNotFoundException, AlreadyProcessedException
from domain.ledger.entity import (
    Account,
    AccountStatus,
    BalanceField,
    Direction,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from domain.ledger.repository import AccountRepository, TransactionRepository
from infrastructure.models.account import AccountModel
from infrastructure.models.transaction import TransactionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyAccountRepository(AccountRepository):
    """账户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: AccountModel) -> Account:
        """将数据库模型转换为领域实体"""
        return Account(
            id=model.id,
            owner_id=model.owner_id,
            name=model.name,
            currency=model.currency,
            balance=model.balance,
            pending_balance=model.pending_balance,
            status=AccountStatus(model.status),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, account: Account) -> Account:
        db_account = AccountModel(
            owner_id=account.owner_id,
            name=account.name,
            currency=account.currency,
            balance=0,
            pending_balance=0,
            status=account.status.value,
        )
        self.session.add(db_account)
        await self.session.flush()
        await self.session.refresh(db_account)
        logger.info("account_created", account_id=db_account.id, currency=db_account.currency)
        return self._to_entity(db_account)

    async def get_by_id(self, account_id: int) -> Optional[Account]:
        result = await self.session.execute(
            select(AccountModel).where(AccountModel.id == account_id)
        )
        db_account = result.scalar_one_or_none()
        return self._to_entity(db_account) if db_account else None

    async def get_for_update(self, account_id: int) -> Optional[Account]:
        """SELECT ... FOR UPDATE（SQLite 忽略行锁，依赖库级写锁）"""
        result = await self.session.execute(
            select(AccountModel)
            .where(AccountModel.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        db_account = result.scalar_one_or_none()
        return self._to_entity(db_account) if db_account else None

    async def save_balances(self, account: Account) -> Account:
        db_account = await self.session.get(AccountModel, account.id)
        if not db_account:
            raise AccountNotFoundException(account.id)

        db_account.balance = account.balance
        db_account.pending_balance = account.pending_balance
        db_account.updated_at = account.updated_at

        await self.session.flush()
        await self.session.refresh(db_account)
        return self._to_entity(db_account)


class SQLAlchemyTransactionRepository(TransactionRepository):
    """交易仓储的SQLAlchemy实现（只追加）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TransactionModel) -> Transaction:
        return Transaction(
            id=model.id,
            account_id=model.account_id,
            type=TransactionType(model.type),
            direction=Direction(model.direction),
            amount=model.amount,
            currency=model.currency,
            balance_field=BalanceField(model.balance_field),
            balance_before=model.balance_before,
            balance_after=model.balance_after,
            description=model.description,
            idempotency_key=model.idempotency_key,
            status=TransactionStatus(model.status),
            order_id=model.order_id,
            reference=model.reference,
            metadata=model.extra_metadata or {},
            processed_at=model.processed_at,
            created_at=model.created_at,
        )

    def _to_model(self, entity: Transaction) -> TransactionModel:
        return TransactionModel(
            account_id=entity.account_id,
            order_id=entity.order_id,
            type=entity.type.value,
            direction=entity.direction.value,
            amount=entity.amount,
            currency=entity.currency,
            balance_field=entity.balance_field.value,
            balance_before=entity.balance_before,
            balance_after=entity.balance_after,
            status=entity.status.value,
            reference=entity.reference,
            description=entity.description,
            idempotency_key=entity.idempotency_key,
            extra_metadata=entity.metadata,
            processed_at=entity.processed_at,
            created_at=entity.created_at,
        )

    async def add(self, transaction: Transaction) -> Transaction:
        """追加交易；幂等键冲突时整个 Unit of Work 随异常回滚"""
        db_tx = self._to_model(transaction)
        try:
            self.session.add(db_tx)
            await self.session.flush()
        except IntegrityError as e:
            if "idempotency_key" in str(e).lower():
                logger.warning(
                    "ledger_entry_duplicate",
                    idempotency_key=transaction.idempotency_key,
                )
                raise AlreadyProcessedException("ledger_entry", transaction.idempotency_key)
            raise
        await self.session.refresh(db_tx)
        logger.info(
            "ledger_entry_recorded",
            transaction_id=db_tx.id,
            account_id=db_tx.account_id,
            type=db_tx.type,
            direction=db_tx.direction,
            balance_field=db_tx.balance_field,
            amount=db_tx.amount,
            balance_after=db_tx.balance_after,
        )
        return self._to_entity(db_tx)

    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        db_tx = await self.session.get(TransactionModel, transaction_id)
        return self._to_entity(db_tx) if db_tx else None

    async def exists_by_idempotency_key(self, key: str) -> bool:
        result = await self.session.execute(
            select(func.count(TransactionModel.id)).where(
                TransactionModel.idempotency_key == key
            )
        )
        return result.scalar_one() > 0

    async def list_by_account(
        self,
        account_id: int,
        skip: int = 0,
        limit: int = 100,
        type: Optional[TransactionType] = None,
    ) -> List[Transaction]:
        query = select(TransactionModel).where(TransactionModel.account_id == account_id)

        if type:
            query = query.where(TransactionModel.type == type.value)

        query = query.order_by(TransactionModel.id.desc()).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return [self._to_entity(t) for t in result.scalars().all()]

    async def list_for_replay(self, account_id: int) -> List[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.account_id == account_id)
            .order_by(TransactionModel.id.asc())
        )
        return [self._to_entity(t) for t in result.scalars().all()]
