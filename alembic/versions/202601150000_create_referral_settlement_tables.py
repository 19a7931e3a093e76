"""Create referral attribution and settlement tables"""
from alembic import op
import sqlalchemy as sa

revision = '202601150000'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('role', sa.Enum('USER', 'ADMIN', name='userrole'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create referral_codes table
    op.create_table(
        'referral_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earnings', sa.Float(), nullable=False, server_default='0'),
        sa.Column('pending_earnings', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_referral_codes_id', 'referral_codes', ['id'])
    op.create_index('ix_referral_codes_owner_id', 'referral_codes', ['owner_id'], unique=True)
    op.create_index('ix_referral_codes_code', 'referral_codes', ['code'], unique=True)

    # Create referral_clicks table
    op.create_table(
        'referral_clicks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'QUALIFIED', 'FRAUDULENT', name='clickstatus'), nullable=False),
        sa.Column('reward_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('clicked_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('qualified_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['referral_id'], ['referral_codes.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_referral_clicks_id', 'referral_clicks', ['id'])
    op.create_index('ix_referral_clicks_referral_id', 'referral_clicks', ['referral_id'])
    op.create_index('ix_referral_clicks_status', 'referral_clicks', ['status'])
    op.create_index('ix_referral_clicks_clicked_at', 'referral_clicks', ['clicked_at'])
    op.create_index('ix_referral_clicks_qualified_at', 'referral_clicks', ['qualified_at'])
    op.create_index('ix_referral_clicks_referral_status', 'referral_clicks', ['referral_id', 'status'])

    # Create referral_uses table
    op.create_table(
        'referral_uses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.Integer(), nullable=False),
        sa.Column('signup_reward_status', sa.Enum('PENDING', 'QUALIFIED', name='rewardstatus'), nullable=False),
        sa.Column('signup_reward_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('listing_reward_status', sa.Enum('PENDING', 'QUALIFIED', name='rewardstatus'), nullable=False),
        sa.Column('listing_reward_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('first_listing_id', sa.String(length=64), nullable=True),
        sa.Column('is_fraud', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.Enum('PENDING', 'COMPLETED', 'CANCELLED', name='referralusestatus'), nullable=False),
        sa.Column('commission', sa.Float(), nullable=False, server_default='0'),
        sa.Column('commission_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['referral_id'], ['referral_codes.id'], ),
        sa.ForeignKeyConstraint(['vendor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_referral_uses_id', 'referral_uses', ['id'])
    op.create_index('ix_referral_uses_referral_id', 'referral_uses', ['referral_id'])
    op.create_index('ix_referral_uses_vendor_id', 'referral_uses', ['vendor_id'], unique=True)
    op.create_index('ix_referral_uses_is_fraud', 'referral_uses', ['is_fraud'])
    op.create_index('ix_referral_uses_status', 'referral_uses', ['status'])
    op.create_index('ix_referral_uses_created_at', 'referral_uses', ['created_at'])
    op.create_index('ix_referral_uses_updated_at', 'referral_uses', ['updated_at'])

    # Create payout_periods table
    op.create_table(
        'payout_periods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.Enum('OPEN', 'LOCKED', 'COMPLETED', name='payoutperiodstatus'), nullable=False),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('month', 'year', name='uq_payout_periods_month_year')
    )
    op.create_index('ix_payout_periods_id', 'payout_periods', ['id'])
    op.create_index('ix_payout_periods_status', 'payout_periods', ['status'])

    # Create monthly_statements table
    op.create_table(
        'monthly_statements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payout_period_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('vendors_referred_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('vendors_activated_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('clicks_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('DRAFT', 'APPROVED', 'PAID', name='statementstatus'), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('payment_reference', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['payout_period_id'], ['payout_periods.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payout_period_id', 'user_id', name='uq_monthly_statements_period_user')
    )
    op.create_index('ix_monthly_statements_id', 'monthly_statements', ['id'])
    op.create_index('ix_monthly_statements_payout_period_id', 'monthly_statements', ['payout_period_id'])
    op.create_index('ix_monthly_statements_user_id', 'monthly_statements', ['user_id'])
    op.create_index('ix_monthly_statements_status', 'monthly_statements', ['status'])

    # Create reward_settings table
    op.create_table(
        'reward_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('signup_reward_amount', sa.Float(), nullable=False),
        sa.Column('listing_reward_amount', sa.Float(), nullable=False),
        sa.Column('click_reward_amount', sa.Float(), nullable=False),
        sa.Column('minimum_payout_amount', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_reward_settings_id', 'reward_settings', ['id'])


def downgrade():
    op.drop_table('reward_settings')
    op.drop_table('monthly_statements')
    op.drop_table('payout_periods')
    op.drop_table('referral_uses')
    op.drop_table('referral_clicks')
    op.drop_table('referral_codes')
    op.drop_table('users')
    for enum_name in ('statementstatus', 'payoutperiodstatus', 'referralusestatus',
                      'rewardstatus', 'clickstatus', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
