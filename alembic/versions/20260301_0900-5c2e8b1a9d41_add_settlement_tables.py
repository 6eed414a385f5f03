"""add_settlement_tables

Revision ID: 5c2e8b1a9d41
Revises:
Create Date: 2026-03-01 09:00:12.418263

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c2e8b1a9d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name: str, nullable: bool = False, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=15, scale=2), nullable=nullable, **kwargs)


def upgrade() -> None:
    # Create orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('order_number', sa.String(length=32), nullable=False, comment='订单号 ORD-YYYYMMDD-XXXXXXXX'),
        sa.Column('customer_id', sa.String(length=64), nullable=False, comment='下单客户ID'),
        _money('subtotal', comment='商品合计'),
        _money('discount', server_default='0', comment='优惠金额'),
        _money('shipping_fee', server_default='0', comment='运费'),
        _money('total', comment='应付总额'),
        sa.Column('address_snapshot', sa.JSON(), nullable=False, comment='收货地址快照（不可变）'),
        sa.Column('coupon_snapshot', sa.JSON(), nullable=True, comment='优惠券快照（不可变）'),
        sa.Column('status', sa.String(length=32), nullable=False, comment='当前状态（冗余）'),
        sa.Column('payment_ref', sa.String(length=128), nullable=True, comment='支付渠道流水号'),
        sa.Column('payment_confirmed_at', sa.DateTime(timezone=True), nullable=True, comment='支付确认时间'),
        sa.Column('cancel_reason', sa.Text(), nullable=True, comment='取消原因'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        comment='订单表'
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_customer_created', 'orders', ['customer_id', 'created_at'], unique=False)

    # Create order_items table
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='所属订单ID'),
        sa.Column('vendor_id', sa.String(length=64), nullable=False, comment='商家ID'),
        sa.Column('product_snapshot', sa.JSON(), nullable=False, comment='商品快照'),
        _money('unit_price', comment='单价'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        _money('total', comment='小计 = 单价 × 数量'),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False, comment='下单时的佣金费率（百分比）'),
        sa.Column('status', sa.String(length=32), nullable=False, comment='订单项状态'),
        sa.Column('tracking_number', sa.String(length=128), nullable=True, comment='物流单号'),
        sa.Column('tracking_url', sa.String(length=512), nullable=True, comment='物流查询链接'),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True, comment='发货时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)
    op.create_index('ix_order_items_vendor_id', 'order_items', ['vendor_id'], unique=False)
    op.create_index('ix_order_items_vendor_status', 'order_items', ['vendor_id', 'status'], unique=False)

    # Create order_status_history table (append-only)
    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='所属订单ID'),
        sa.Column('sequence', sa.Integer(), nullable=False, comment='订单内递增序号'),
        sa.Column('status', sa.String(length=32), nullable=False, comment='进入的状态'),
        sa.Column('note', sa.Text(), nullable=True, comment='备注'),
        sa.Column('actor_id', sa.String(length=64), nullable=True, comment='操作人ID'),
        sa.Column('actor_role', sa.String(length=16), nullable=True, comment='操作人角色'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='记录时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'sequence', name='uq_order_status_history_sequence')
    )

    # Create wallets table
    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('vendor_id', sa.String(length=64), nullable=False, comment='商家ID（一个商家一个钱包）'),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=False, comment='佣金费率（百分比）'),
        _money('pending_balance', server_default='0', comment='待结算余额'),
        _money('available_balance', server_default='0', comment='可提现余额'),
        _money('total_earnings', server_default='0', comment='累计收益'),
        _money('total_withdrawn', server_default='0', comment='累计提现'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.CheckConstraint('pending_balance >= 0', name='ck_wallets_pending_non_negative'),
        sa.CheckConstraint('available_balance >= 0', name='ck_wallets_available_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vendor_id'),
        comment='商家钱包表'
    )

    # Create wallet_transactions table (append-only ledger)
    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID（即写入顺序）'),
        sa.Column('wallet_id', sa.Integer(), nullable=False, comment='钱包ID'),
        sa.Column('type', sa.String(length=16), nullable=False, comment='HOLD/COMMISSION/RELEASE/REFUND/PAYOUT/CREDIT/DEBIT'),
        _money('amount', comment='带符号主金额'),
        _money('gross_amount', nullable=True, comment='RELEASE 从待结算扣除的毛额'),
        _money('net_amount', nullable=True, comment='REFUND 从可用余额冲销的净额'),
        sa.Column('bucket', sa.String(length=16), nullable=True, comment='REFUND 冲销的余额桶'),
        _money('pending_before', comment='记账前待结算余额'),
        _money('pending_after', comment='记账后待结算余额'),
        _money('available_before', comment='记账前可用余额'),
        _money('available_after', comment='记账后可用余额'),
        sa.Column('description', sa.Text(), nullable=True, comment='说明'),
        sa.Column('reference_type', sa.String(length=16), nullable=True, comment='ORDER/DISPUTE/PAYOUT/ADJUSTMENT'),
        sa.Column('reference_id', sa.Integer(), nullable=True, comment='业务对象ID'),
        sa.Column('order_item_id', sa.Integer(), nullable=True, comment='订单项ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='记账时间'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id', 'id'], unique=False)
    op.create_index('ix_wallet_transactions_reference', 'wallet_transactions', ['wallet_id', 'reference_type', 'reference_id'], unique=False)
    op.create_index('ix_wallet_transactions_wallet_created', 'wallet_transactions', ['wallet_id', 'created_at'], unique=False)

    # Create payout_requests table
    op.create_table(
        'payout_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('wallet_id', sa.Integer(), nullable=False, comment='钱包ID'),
        sa.Column('vendor_id', sa.String(length=64), nullable=False, comment='商家ID'),
        _money('amount', comment='提现金额'),
        sa.Column('bank_name', sa.String(length=100), nullable=False, comment='银行名称'),
        sa.Column('account_number', sa.String(length=20), nullable=False, comment='银行账号'),
        sa.Column('account_holder', sa.String(length=100), nullable=False, comment='户名'),
        sa.Column('branch_code', sa.String(length=3), nullable=True, comment='支行代码'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING', comment='PENDING/PROCESSING/COMPLETED/FAILED'),
        sa.Column('notes', sa.Text(), nullable=True, comment='商家备注'),
        sa.Column('admin_notes', sa.Text(), nullable=True, comment='管理员备注'),
        sa.Column('transaction_ref', sa.String(length=128), nullable=True, comment='银行转账流水号'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('processed_by', sa.String(length=64), nullable=True, comment='处理人'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='处理时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        comment='提现申请表'
    )
    op.create_index('ix_payout_requests_vendor_id', 'payout_requests', ['vendor_id'], unique=False)
    op.create_index('ix_payout_requests_status', 'payout_requests', ['status'], unique=False)
    op.create_index('ix_payout_requests_wallet_status', 'payout_requests', ['wallet_id', 'status'], unique=False)

    # Create disputes table
    op.create_table(
        'disputes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('order_id', sa.Integer(), nullable=False, comment='订单ID'),
        sa.Column('customer_id', sa.String(length=64), nullable=False, comment='发起客户ID'),
        sa.Column('reason', sa.String(length=32), nullable=False, comment='争议原因'),
        sa.Column('description', sa.Text(), nullable=False, comment='问题描述'),
        sa.Column('evidence', sa.JSON(), nullable=False, comment='证据URL列表'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='OPEN', comment='争议状态'),
        sa.Column('resolution_type', sa.String(length=32), nullable=True, comment='裁决类型'),
        sa.Column('resolution_notes', sa.Text(), nullable=True, comment='裁决说明'),
        _money('refund_amount', nullable=True, comment='退款金额'),
        sa.Column('refund_processed_at', sa.DateTime(timezone=True), nullable=True, comment='退款执行时间（非空即已退款）'),
        sa.Column('resolved_by', sa.String(length=64), nullable=True, comment='裁决人'),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True, comment='裁决时间'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        comment='订单争议表'
    )
    op.create_index('ix_disputes_order_id', 'disputes', ['order_id'], unique=False)
    op.create_index('ix_disputes_customer_id', 'disputes', ['customer_id'], unique=False)
    op.create_index('ix_disputes_status', 'disputes', ['status'], unique=False)
    op.create_index('ix_disputes_order_status', 'disputes', ['order_id', 'status'], unique=False)

    # Create dispute_comments table
    op.create_table(
        'dispute_comments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('dispute_id', sa.Integer(), nullable=False, comment='争议ID'),
        sa.Column('author_id', sa.String(length=64), nullable=False, comment='作者ID'),
        sa.Column('author_role', sa.String(length=16), nullable=False, comment='作者角色'),
        sa.Column('content', sa.Text(), nullable=False, comment='内容'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['dispute_id'], ['disputes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_dispute_comments_dispute_id', 'dispute_comments', ['dispute_id'], unique=False)

    # Create outbox_events table
    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID（即发生顺序）'),
        sa.Column('event_id', sa.String(length=36), nullable=False, comment='事件UUID'),
        sa.Column('event_type', sa.String(length=64), nullable=False, comment='事件类型'),
        sa.Column('aggregate_type', sa.String(length=32), nullable=False, comment='聚合类型'),
        sa.Column('aggregate_id', sa.String(length=64), nullable=False, comment='聚合ID'),
        sa.Column('payload', sa.JSON(), nullable=False, comment='事件内容'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING', comment='PENDING/DISPATCHED/FAILED'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0', comment='投递次数'),
        sa.Column('last_error', sa.Text(), nullable=True, comment='最近一次投递错误'),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, comment='事件发生时间'),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True, comment='投递成功时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id')
    )
    op.create_index('ix_outbox_events_status_id', 'outbox_events', ['status', 'id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_outbox_events_status_id', table_name='outbox_events')
    op.drop_table('outbox_events')
    op.drop_index('ix_dispute_comments_dispute_id', table_name='dispute_comments')
    op.drop_table('dispute_comments')
    op.drop_index('ix_disputes_order_status', table_name='disputes')
    op.drop_index('ix_disputes_status', table_name='disputes')
    op.drop_index('ix_disputes_customer_id', table_name='disputes')
    op.drop_index('ix_disputes_order_id', table_name='disputes')
    op.drop_table('disputes')
    op.drop_index('ix_payout_requests_wallet_status', table_name='payout_requests')
    op.drop_index('ix_payout_requests_status', table_name='payout_requests')
    op.drop_index('ix_payout_requests_vendor_id', table_name='payout_requests')
    op.drop_table('payout_requests')
    op.drop_index('ix_wallet_transactions_wallet_created', table_name='wallet_transactions')
    op.drop_index('ix_wallet_transactions_reference', table_name='wallet_transactions')
    op.drop_index('ix_wallet_transactions_wallet_id', table_name='wallet_transactions')
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
    op.drop_table('order_status_history')
    op.drop_index('ix_order_items_vendor_status', table_name='order_items')
    op.drop_index('ix_order_items_vendor_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_customer_created', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_customer_id', table_name='orders')
    op.drop_table('orders')
