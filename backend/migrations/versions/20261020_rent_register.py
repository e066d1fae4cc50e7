"""Rent register: shops, tenants, agreements, loans, rent penalties

Revision ID: 20261020_rent_register
Revises: 20261019_initial
Create Date: 2026-10-20

This migration adds:
1. Shops and tenants
2. Agreements (one shop leased to one tenant)
3. Loans and rent penalties (both hang off an agreement)
4. Foreign keys from transactions.agreement_id / loan_id / penalty_id
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_rent_register'
down_revision = '20261019_initial'
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    # ==========================================================================
    # 1. SHOPS AND TENANTS
    # ==========================================================================
    op.create_table('shops',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('shop_number', sa.String(length=20), nullable=False),
        sa.Column('size', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('monthly_rent', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('deposit', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', _enum('shop_status', 'Vacant', 'Occupied', 'Maintenance'), nullable=False, server_default='Vacant'),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('shops', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shops_shop_number'), ['shop_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_shops_status'), ['status'], unique=False)

    op.create_table('tenants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('business_type', sa.String(length=100), nullable=True),
        sa.Column('status', _enum('tenant_status', 'Active', 'Inactive'), nullable=False, server_default='Active'),
        sa.Column('id_proof', sa.String(length=200), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    with op.batch_alter_table('tenants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_tenants_name'), ['name'], unique=False)
        batch_op.create_index(batch_op.f('ix_tenants_phone'), ['phone'], unique=False)
        batch_op.create_index(batch_op.f('ix_tenants_status'), ['status'], unique=False)

    # ==========================================================================
    # 2. AGREEMENTS
    # ==========================================================================
    op.create_table('agreements',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('shop_id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('agreement_date', sa.Date(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('monthly_rent', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('security_deposit', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('advance_rent', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('agreement_type', _enum('agreement_type', 'Residential', 'Commercial'), nullable=False, server_default='Commercial'),
        sa.Column('status', _enum('agreement_status', 'Active', 'Expired', 'Terminated'), nullable=False, server_default='Active'),
        sa.Column('next_due_date', sa.Date(), nullable=False),
        sa.Column('last_payment_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('duration >= 1', name='ck_agreements_duration_positive'),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('agreements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_agreements_shop_id'), ['shop_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_agreements_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_agreements_status'), ['status'], unique=False)

    # ==========================================================================
    # 3. LOANS AND RENT PENALTIES
    # ==========================================================================
    op.create_table('loans',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('agreement_id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('loan_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('interest_rate', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('disbursed_date', sa.Date(), nullable=False),
        sa.Column('loan_duration', sa.Integer(), nullable=False),
        sa.Column('monthly_emi', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('outstanding_balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_repaid', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('status', _enum('loan_status', 'Active', 'Completed', 'Defaulted'), nullable=False, server_default='Active'),
        sa.Column('next_emi_date', sa.Date(), nullable=False),
        sa.Column('last_payment_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('loan_amount > 0', name='ck_loans_amount_positive'),
        sa.CheckConstraint('outstanding_balance >= 0', name='ck_loans_outstanding_non_negative'),
        sa.ForeignKeyConstraint(['agreement_id'], ['agreements.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('loans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_loans_agreement_id'), ['agreement_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loans_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_loans_disbursed_date'), ['disbursed_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_loans_status'), ['status'], unique=False)

    op.create_table('rent_penalties',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('agreement_id', sa.String(length=36), nullable=False),
        sa.Column('rent_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('penalty_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('penalty_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('penalty_paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('penalty_paid_date', sa.Date(), nullable=True),
        sa.Column('status', _enum('penalty_status', 'Pending', 'Paid'), nullable=False, server_default='Pending'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['agreement_id'], ['agreements.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('rent_penalties', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_rent_penalties_agreement_id'), ['agreement_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_rent_penalties_due_date'), ['due_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_rent_penalties_penalty_paid'), ['penalty_paid'], unique=False)
        batch_op.create_index(batch_op.f('ix_rent_penalties_status'), ['status'], unique=False)

    # ==========================================================================
    # 4. TRANSACTION LINKS
    # ==========================================================================
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_foreign_key('fk_transactions_agreement_id', 'agreements', ['agreement_id'], ['id'])
        batch_op.create_foreign_key('fk_transactions_loan_id', 'loans', ['loan_id'], ['id'])
        batch_op.create_foreign_key('fk_transactions_penalty_id', 'rent_penalties', ['penalty_id'], ['id'])


def downgrade():
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.drop_constraint('fk_transactions_penalty_id', type_='foreignkey')
        batch_op.drop_constraint('fk_transactions_loan_id', type_='foreignkey')
        batch_op.drop_constraint('fk_transactions_agreement_id', type_='foreignkey')

    with op.batch_alter_table('rent_penalties', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_rent_penalties_status'))
        batch_op.drop_index(batch_op.f('ix_rent_penalties_penalty_paid'))
        batch_op.drop_index(batch_op.f('ix_rent_penalties_due_date'))
        batch_op.drop_index(batch_op.f('ix_rent_penalties_agreement_id'))
    op.drop_table('rent_penalties')

    with op.batch_alter_table('loans', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_loans_status'))
        batch_op.drop_index(batch_op.f('ix_loans_disbursed_date'))
        batch_op.drop_index(batch_op.f('ix_loans_tenant_id'))
        batch_op.drop_index(batch_op.f('ix_loans_agreement_id'))
    op.drop_table('loans')

    with op.batch_alter_table('agreements', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_agreements_status'))
        batch_op.drop_index(batch_op.f('ix_agreements_tenant_id'))
        batch_op.drop_index(batch_op.f('ix_agreements_shop_id'))
    op.drop_table('agreements')

    with op.batch_alter_table('tenants', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_tenants_status'))
        batch_op.drop_index(batch_op.f('ix_tenants_phone'))
        batch_op.drop_index(batch_op.f('ix_tenants_name'))
    op.drop_table('tenants')

    with op.batch_alter_table('shops', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_shops_status'))
        batch_op.drop_index(batch_op.f('ix_shops_shop_number'))
    op.drop_table('shops')
