"""create_ledger_tables

Revision ID: 5c1e2a7b9d40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e2a7b9d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
    ]


def upgrade() -> None:
    # accounts: 余额对缓存
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=True, comment='店主用户ID'),
        sa.Column('name', sa.String(length=200), nullable=False, comment='店铺名称'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='XOF', comment='货币代码 ISO-4217'),
        sa.Column('balance', sa.BigInteger(), nullable=False, server_default='0', comment='可用余额'),
        sa.Column('pending_balance', sa.BigInteger(), nullable=False, server_default='0', comment='冻结中余额'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active', comment='账户状态: active/suspended/closed'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('balance >= 0', name='ck_accounts_balance_non_negative'),
        sa.CheckConstraint('pending_balance >= 0', name='ck_accounts_pending_balance_non_negative'),
        comment='卖家账户，余额为交易流水的缓存投影'
    )
    op.create_index('ix_accounts_id', 'accounts', ['id'], unique=False)
    op.create_index('ix_accounts_owner_id', 'accounts', ['owner_id'], unique=False)
    op.create_index('ix_accounts_status', 'accounts', ['status'], unique=False)

    # transactions: 只追加流水
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False, comment='账户ID'),
        sa.Column('order_id', sa.Integer(), nullable=True, comment='关联订单ID'),
        sa.Column('type', sa.String(length=30), nullable=False, comment='交易类型: sale/refund/payout/fee/credit/transfer/ad_payment/subscription'),
        sa.Column('direction', sa.String(length=10), nullable=False, comment='方向: credit/debit'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='金额（最小货币单位，恒为正）'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('balance_field', sa.String(length=20), nullable=False, comment='作用的余额: available/pending'),
        sa.Column('balance_before', sa.BigInteger(), nullable=False, comment='变动前余额'),
        sa.Column('balance_after', sa.BigInteger(), nullable=False, comment='变动后余额'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='completed', comment='状态: pending/completed/failed/reversed'),
        sa.Column('reference', sa.String(length=200), nullable=True, comment='渠道引用'),
        sa.Column('description', sa.Text(), nullable=False, comment='描述'),
        sa.Column('idempotency_key', sa.String(length=200), nullable=False, comment='幂等键'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='处理时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_transactions_idempotency_key'),
        comment='账本流水，已完成记录不可修改'
    )
    op.create_index('ix_transactions_id', 'transactions', ['id'], unique=False)
    op.create_index('ix_transactions_account_id', 'transactions', ['account_id'], unique=False)
    op.create_index('ix_transactions_order_id', 'transactions', ['order_id'], unique=False)
    op.create_index('ix_transactions_reference', 'transactions', ['reference'], unique=False)
    op.create_index('ix_transactions_account_created', 'transactions', ['account_id', 'created_at'], unique=False)
    op.create_index('ix_transactions_account_type', 'transactions', ['account_id', 'type'], unique=False)

    # orders: 结算相关字段
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False, comment='卖家账户ID'),
        sa.Column('order_number', sa.String(length=50), nullable=False, comment='订单号'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='订单状态: pending/paid/processing/shipped/delivered/cancelled/refunded'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态: pending/paid/failed/refunded'),
        sa.Column('total_amount', sa.BigInteger(), nullable=False, comment='订单总额'),
        sa.Column('commission_amount', sa.BigInteger(), nullable=False, server_default='0', comment='平台佣金'),
        sa.Column('refunded_amount', sa.BigInteger(), nullable=False, server_default='0', comment='卖家已承担的退款'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='XOF', comment='货币代码'),
        sa.Column('customer_id', sa.Integer(), nullable=True, comment='客户ID'),
        sa.Column('customer_name', sa.String(length=200), nullable=True, comment='客户姓名'),
        sa.Column('customer_email', sa.String(length=255), nullable=True, comment='客户邮箱'),
        sa.Column('customer_phone', sa.String(length=50), nullable=True, comment='客户电话'),
        sa.Column('items', sa.JSON(), nullable=False, comment='订单明细'),
        sa.Column('payment_reference', sa.String(length=200), nullable=True, comment='渠道支付ID'),
        sa.Column('payment_failure_reason', sa.Text(), nullable=True, comment='支付失败原因'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付时间'),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True, comment='签收时间'),
        sa.Column('funds_released_at', sa.DateTime(timezone=True), nullable=True, comment='资金释放时间'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        comment='订单（由结账流程拥有，账本仅读取/更新结算字段）'
    )
    op.create_index('ix_orders_id', 'orders', ['id'], unique=False)
    op.create_index('ix_orders_account_id', 'orders', ['account_id'], unique=False)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)
    op.create_index('ix_orders_payment_reference', 'orders', ['payment_reference'], unique=False)
    op.create_index(
        'ix_orders_release_scan', 'orders',
        ['status', 'payment_status', 'funds_released_at', 'delivered_at'], unique=False,
    )

    # payouts
    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False, comment='账户ID'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='提现总额（扣减可用余额的金额）'),
        sa.Column('fee', sa.BigInteger(), nullable=False, server_default='0', comment='手续费'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='提现状态: pending/processing/completed/failed/cancelled'),
        sa.Column('method', sa.String(length=30), nullable=False, comment='提现方式: mobile_money/bank_transfer/paypal'),
        sa.Column('details', sa.JSON(), nullable=True, comment='收款信息（已脱敏）'),
        sa.Column('reference', sa.String(length=200), nullable=True, comment='渠道提现ID'),
        sa.Column('requires_2fa', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否需要二次验证'),
        sa.Column('verified_2fa', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否已二次验证'),
        sa.Column('transaction_id', sa.Integer(), nullable=True, comment='扣款交易ID'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='申请时间'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='终结时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        comment='提现请求'
    )
    op.create_index('ix_payouts_id', 'payouts', ['id'], unique=False)
    op.create_index('ix_payouts_account_id', 'payouts', ['account_id'], unique=False)
    op.create_index('ix_payouts_reference', 'payouts', ['reference'], unique=False)
    op.create_index('ix_payouts_account_status', 'payouts', ['account_id', 'status'], unique=False)
    op.create_index('ix_payouts_status_requested', 'payouts', ['status', 'requested_at'], unique=False)

    # return_requests
    op.create_table(
        'return_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('account_id', sa.Integer(), nullable=False, comment='卖家账户ID'),
        sa.Column('customer_id', sa.Integer(), nullable=True, comment='客户ID'),
        sa.Column('items', sa.JSON(), nullable=False, comment='退货明细'),
        sa.Column('reason', sa.Text(), nullable=False, comment='退货原因'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='requested', comment='状态: requested/approved/rejected/received/refunded'),
        sa.Column('refund_amount', sa.BigInteger(), nullable=True, comment='退款金额'),
        sa.Column('refund_reference', sa.String(length=200), nullable=True, comment='渠道退款（提现）ID'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='最近一次退款失败原因'),
        sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='申请时间'),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True, comment='退款完成时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        comment='退货/退款请求'
    )
    op.create_index('ix_return_requests_id', 'return_requests', ['id'], unique=False)
    op.create_index('ix_return_requests_order_id', 'return_requests', ['order_id'], unique=False)
    op.create_index('ix_return_requests_account_id', 'return_requests', ['account_id'], unique=False)
    op.create_index('ix_return_requests_refund_reference', 'return_requests', ['refund_reference'], unique=False)


def downgrade() -> None:
    op.drop_table('return_requests')
    op.drop_table('payouts')
    op.drop_table('orders')
    op.drop_table('transactions')
    op.drop_table('accounts')
