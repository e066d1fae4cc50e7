"""Initial schema: users, sessions, receipt sequences, transactions

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Users and session tokens (role-based access, hashed bearer tokens)
2. ReceiptSequence (one counter row per transaction type)
3. Transactions (donations, expenses, utilities, salaries, rent income)

Sequence rows are not inserted here: `flask receipts seed` (or start-up
seeding) creates them after the highest receipt number already on record.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPES = ('Donation', 'Expense', 'Utilities', 'Salary', 'RentIncome')


def _transaction_type():
    return sa.Enum(
        *TRANSACTION_TYPES,
        name='transaction_type',
        native_enum=False,
        create_constraint=True,
    )


def upgrade():
    # ==========================================================================
    # 1. USERS AND SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='Viewer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('Admin', 'Treasurer', 'Viewer')", name='ck_users_role'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_session_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_session_tokens_expires_at'), ['expires_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_session_tokens_is_revoked'), ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 2. RECEIPT SEQUENCES
    # ==========================================================================
    op.create_table('receipt_sequences',
        sa.Column('transaction_type', _transaction_type(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('next_number >= 1', name='ck_receipt_sequences_next_number_positive'),
        sa.PrimaryKeyConstraint('transaction_type')
    )

    # ==========================================================================
    # 3. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', _transaction_type(), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('sub_category', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('receipt_number', sa.String(length=50), nullable=True),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),
        sa.Column('donor_name', sa.String(length=100), nullable=True),
        sa.Column('donor_contact', sa.String(length=20), nullable=True),
        sa.Column('family_members', sa.Integer(), nullable=True),
        sa.Column('amount_per_person', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('vendor', sa.String(length=100), nullable=True),
        sa.Column('receipt', sa.String(length=255), nullable=True),
        sa.Column('payee_name', sa.String(length=100), nullable=True),
        sa.Column('payee_contact', sa.String(length=20), nullable=True),
        sa.Column('tenant_name', sa.String(length=100), nullable=True),
        sa.Column('tenant_contact', sa.String(length=20), nullable=True),
        sa.Column('agreement_id', sa.String(length=36), nullable=True),
        sa.Column('shop_number', sa.String(length=20), nullable=True),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('loan_id', sa.String(length=36), nullable=True),
        sa.Column('emi_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('penalty_id', sa.String(length=36), nullable=True),
        sa.Column('penalty_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_transactions_amount_positive'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number', 'type', name='uq_transactions_receipt_number_type'),
        sa.UniqueConstraint('idempotency_key', name='uq_transactions_idempotency_key')
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transactions_date'), ['date'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_category'), ['category'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_receipt_number'), ['receipt_number'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_agreement_id'), ['agreement_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_loan_id'), ['loan_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_penalty_id'), ['penalty_id'], unique=False)
        batch_op.create_index('ix_transactions_type_date', ['type', 'date'], unique=False)


def downgrade():
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.drop_index('ix_transactions_type_date')
        batch_op.drop_index(batch_op.f('ix_transactions_penalty_id'))
        batch_op.drop_index(batch_op.f('ix_transactions_loan_id'))
        batch_op.drop_index(batch_op.f('ix_transactions_agreement_id'))
        batch_op.drop_index(batch_op.f('ix_transactions_receipt_number'))
        batch_op.drop_index(batch_op.f('ix_transactions_category'))
        batch_op.drop_index(batch_op.f('ix_transactions_type'))
        batch_op.drop_index(batch_op.f('ix_transactions_date'))
    op.drop_table('transactions')

    op.drop_table('receipt_sequences')

    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.drop_index('ix_session_tokens_user_active')
        batch_op.drop_index(batch_op.f('ix_session_tokens_is_revoked'))
        batch_op.drop_index(batch_op.f('ix_session_tokens_expires_at'))
        batch_op.drop_index(batch_op.f('ix_session_tokens_token_hash'))
        batch_op.drop_index(batch_op.f('ix_session_tokens_user_id'))
    op.drop_table('session_tokens')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_users_username'))
    op.drop_table('users')
