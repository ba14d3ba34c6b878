"""Create billing tables

Revision ID: 001_create_billing_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_billing_schema'
down_revision = None
branch_labels = None
depends_on = None

PAYMENT_STATUSES = ('pending', 'paid', 'failed', 'cancelled', 'refunded')
PAYMENT_METHODS = ('cash', 'card', 'upi', 'net_banking', 'gateway')


def upgrade():
    # Create customers table
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('address', sa.String(200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_customers_email', 'customers', ['email'], unique=True)

    # Create products table
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=False, server_default=''),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('price >= 0', name='check_product_price'),
        sa.CheckConstraint('quantity >= 0', name='check_product_quantity'),
    )
    op.create_index('ix_products_name', 'products', ['name'])

    # Create bills table
    op.create_table(
        'bills',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('bill_number', sa.String(32), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(20), nullable=False, server_default='cash'),
        sa.Column('gateway_order_id', sa.String(64), nullable=True),
        sa.Column('gateway_payment_id', sa.String(64), nullable=True),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('email_sent_to', sa.String(255), nullable=True),
        sa.Column('rendered_document_ref', sa.String(255), nullable=True),
        sa.Column('created_by_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.CheckConstraint(
            "payment_status IN ('" + "','".join(PAYMENT_STATUSES) + "')",
            name='check_bill_payment_status',
        ),
        sa.CheckConstraint(
            "payment_method IN ('" + "','".join(PAYMENT_METHODS) + "')",
            name='check_bill_payment_method',
        ),
        sa.CheckConstraint(
            'subtotal >= 0 AND tax_amount >= 0 AND discount_amount >= 0 AND total_amount >= 0',
            name='check_bill_amounts',
        ),
    )

    # Bill numbers are assigned once and never reused
    op.create_index('ix_bills_bill_number', 'bills', ['bill_number'], unique=True)
    op.create_index('ix_bills_customer_id', 'bills', ['customer_id'])
    op.create_index('ix_bills_created_by_id', 'bills', ['created_by_id'])
    op.create_index('ix_bills_payment_status', 'bills', ['payment_status'])
    op.create_index('ix_bills_gateway_order_id', 'bills', ['gateway_order_id'])
    op.create_index('ix_bills_due_date', 'bills', ['due_date'])
    op.create_index('ix_bills_created_at', 'bills', ['created_at'])

    # Create bill_line_items table
    op.create_table(
        'bill_line_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('bill_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('product_name', sa.String(100), nullable=False),
        sa.Column('product_description', sa.String(500), nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.CheckConstraint('quantity > 0', name='check_line_item_quantity'),
    )
    op.create_index('ix_bill_line_items_bill_id', 'bill_line_items', ['bill_id'])

    # Create bill_sequences table
    op.create_table(
        'bill_sequences',
        sa.Column('day', sa.String(8), primary_key=True),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade():
    # Drop tables in reverse order
    op.drop_table('bill_sequences')
    op.drop_table('bill_line_items')
    op.drop_table('bills')
    op.drop_table('products')
    op.drop_table('customers')
