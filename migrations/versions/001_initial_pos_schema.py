"""initial pos schema

Revision ID: 001_initial_pos_schema
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = '001_initial_pos_schema'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('superadmin', 'owner', 'manager', 'staff', name='userrole')
table_status = sa.Enum('available', 'occupied', 'reserved', 'maintenance', name='tablestatus')
order_type = sa.Enum('dine_in', 'delivery', name='ordertype')
order_status = sa.Enum('temporary', 'ongoing', 'transferred', 'settled', 'completed', 'cancelled', name='orderstatus')
payment_method = sa.Enum('cash', 'card', 'upi', name='paymentmethod')
pending_status = sa.Enum('pending', 'assigned', name='pendingstatus')
coupon_type = sa.Enum('fixed', 'percentage', name='coupontype')
applied_coupon_kind = sa.Enum('regular', 'dish', name='appliedcouponkind')
collection_source = sa.Enum('staff', 'manager', name='collectionsource')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('pin', sa.String(length=6), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_pin', 'users', ['pin'], unique=True)

    op.create_table(
        'franchises',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_franchises_id', 'franchises', ['id'])

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('franchise_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('cgst_rate', sa.Float(), nullable=False),
        sa.Column('sgst_rate', sa.Float(), nullable=False),
        sa.Column('service_charge_rate', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['franchise_id'], ['franchises.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_locations_id', 'locations', ['id'])
    op.create_foreign_key('fk_users_location_id', 'users', 'locations', ['location_id'], ['id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('order_type', order_type, nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('customer_phone', sa.String(), nullable=True),
        sa.Column('delivery_address', sa.String(), nullable=True),
        sa.Column('order_mode', sa.String(), nullable=True),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('cgst_amount', sa.Float(), nullable=False),
        sa.Column('sgst_amount', sa.Float(), nullable=False),
        sa.Column('service_charge', sa.Float(), nullable=False),
        sa.Column('coupon_discount', sa.Float(), nullable=False),
        sa.Column('original_total', sa.Float(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('payment_method', payment_method, nullable=True),
        sa.Column('pending_payment_method', payment_method, nullable=True),
        sa.Column('amount_paid', sa.Float(), nullable=True),
        sa.Column('session_started_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('transferred_at', sa.DateTime(), nullable=True),
        sa.Column('transferred_by_id', sa.Integer(), nullable=True),
        sa.Column('settled_at', sa.DateTime(), nullable=True),
        sa.Column('settled_by_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by_id', sa.Integer(), nullable=True),
        sa.Column('updated_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['staff_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['transferred_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['settled_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['updated_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])

    op.create_table(
        'tables',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('status', table_status, nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('current_order_id', sa.Integer(), nullable=True),
        sa.Column('occupied_at', sa.DateTime(), nullable=True),
        sa.Column('merge_group', sa.String(), nullable=True),
        sa.Column('merged_into_id', sa.Integer(), nullable=True),
        sa.Column('reserved_by_id', sa.Integer(), nullable=True),
        sa.Column('reserved_at', sa.DateTime(), nullable=True),
        sa.Column('reservation_expiry_at', sa.DateTime(), nullable=True),
        sa.Column('reservation_customer_name', sa.String(), nullable=True),
        sa.Column('reservation_customer_phone', sa.String(), nullable=True),
        sa.Column('reservation_notes', sa.String(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['current_order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['merged_into_id'], ['tables.id'], ),
        sa.ForeignKeyConstraint(['reserved_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'name', name='uq_tables_location_name')
    )
    op.create_index('ix_tables_id', 'tables', ['id'])
    op.create_index('ix_tables_merge_group', 'tables', ['merge_group'])

    op.create_table(
        'order_tables',
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['table_id'], ['tables.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('order_id', 'table_id')
    )

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('menu_item_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('portion_size', sa.String(), nullable=True),
        sa.Column('modifications', sa.JSON(), nullable=True),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('added_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'])

    op.create_table(
        'manager_pending_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('transferred_by_id', sa.Integer(), nullable=False),
        sa.Column('assigned_to_id', sa.Integer(), nullable=True),
        sa.Column('status', pending_status, nullable=False),
        sa.Column('priority', sa.String(), nullable=False),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['transferred_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id')
    )
    op.create_index('ix_manager_pending_orders_id', 'manager_pending_orders', ['id'])

    op.create_table(
        'order_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('performed_by_id', sa.Integer(), nullable=False),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['performed_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_history_id', 'order_history', ['id'])
    op.create_index('ix_order_history_order_id', 'order_history', ['order_id'])

    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('type', coupon_type, nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('max_discount_amount', sa.Float(), nullable=True),
        sa.Column('min_order_amount', sa.Float(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_coupons_id', 'coupons', ['id'])
    op.create_index('ix_coupons_location_id', 'coupons', ['location_id'])

    op.create_table(
        'dish_coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('coupon_code', sa.String(), nullable=False),
        sa.Column('dish_name', sa.String(), nullable=False),
        sa.Column('discount_percentage', sa.Float(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_dish_coupons_id', 'dish_coupons', ['id'])
    op.create_index('ix_dish_coupons_coupon_code', 'dish_coupons', ['coupon_code'])
    op.create_index('ix_dish_coupons_location_id', 'dish_coupons', ['location_id'])

    op.create_table(
        'applied_coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('kind', applied_coupon_kind, nullable=False),
        sa.Column('coupon_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('coupon_type', coupon_type, nullable=False),
        sa.Column('dish_name', sa.String(), nullable=True),
        sa.Column('discount_percentage', sa.Float(), nullable=True),
        sa.Column('discount_amount', sa.Float(), nullable=False),
        sa.Column('applied_at', sa.DateTime(), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_applied_coupons_id', 'applied_coupons', ['id'])
    op.create_index('ix_applied_coupons_order_id', 'applied_coupons', ['order_id'])

    op.create_table(
        'customer_data',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('payment_method', payment_method, nullable=True),
        sa.Column('source', collection_source, nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id')
    )
    op.create_index('ix_customer_data_id', 'customer_data', ['id'])
    op.create_index('ix_customer_data_location_id', 'customer_data', ['location_id'])
    op.create_index('ix_customer_data_timestamp', 'customer_data', ['timestamp'])


def downgrade():
    op.drop_table('customer_data')
    op.drop_table('applied_coupons')
    op.drop_table('dish_coupons')
    op.drop_table('coupons')
    op.drop_table('order_history')
    op.drop_table('manager_pending_orders')
    op.drop_table('order_items')
    op.drop_table('order_tables')
    op.drop_table('tables')
    op.drop_table('orders')
    op.drop_constraint('fk_users_location_id', 'users', type_='foreignkey')
    op.drop_table('locations')
    op.drop_table('franchises')
    op.drop_table('users')
    for enum_type in (collection_source, applied_coupon_kind, coupon_type, pending_status, payment_method,
                      order_status, order_type, table_status, user_role):
        enum_type.drop(op.get_bind(), checkfirst=True)
