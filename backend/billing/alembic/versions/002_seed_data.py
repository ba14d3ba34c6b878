"""Seed initial data

Revision ID: 002_seed_data
Revises: 001_create_billing_schema
Create Date: 2026-10-18 11:00:00.000000

"""
from alembic import op

# revision identifiers, used by Alembic.
revision = '002_seed_data'
down_revision = '001_create_billing_schema'
branch_labels = None
depends_on = None


def upgrade():
    # Insert the demo admin principal
    op.execute("""
        INSERT INTO customers (id, name, email, phone, address, is_active) VALUES
        ('550e8400-e29b-41d4-a716-446655440001', 'Store Admin', 'admin@billingapp.com', '+1 (555) 123-4567', '123 Business Street, Tech City', true),
        ('550e8400-e29b-41d4-a716-446655440002', 'Asha Verma', 'asha.verma@example.com', '+91 98200 11122', '14 MG Road, Pune', true)
    """)

    # Insert sample products
    op.execute("""
        INSERT INTO products (id, name, description, category, price, quantity, low_stock_threshold, is_active) VALUES
        ('660e8400-e29b-41d4-a716-446655440001', 'Wireless Mouse', 'Ergonomic 2.4GHz wireless mouse', 'Electronics', 799.00, 120, 10, true),
        ('660e8400-e29b-41d4-a716-446655440002', 'Mechanical Keyboard', 'Tenkeyless keyboard with brown switches', 'Electronics', 3499.00, 45, 5, true),
        ('660e8400-e29b-41d4-a716-446655440003', 'USB-C Hub', '7-in-1 hub with HDMI and card reader', 'Accessories', 1899.00, 60, 10, true),
        ('660e8400-e29b-41d4-a716-446655440004', 'Laptop Stand', 'Adjustable aluminium stand', 'Accessories', 1299.00, 30, 5, true),
        ('660e8400-e29b-41d4-a716-446655440005', 'A4 Notebook', '200 page ruled notebook', 'Stationery', 120.00, 500, 50, true)
    """)


def downgrade():
    op.execute("""
        DELETE FROM products WHERE id IN (
            '660e8400-e29b-41d4-a716-446655440001', '660e8400-e29b-41d4-a716-446655440002',
            '660e8400-e29b-41d4-a716-446655440003', '660e8400-e29b-41d4-a716-446655440004',
            '660e8400-e29b-41d4-a716-446655440005'
        )
    """)
    op.execute("""
        DELETE FROM customers WHERE id IN (
            '550e8400-e29b-41d4-a716-446655440001', '550e8400-e29b-41d4-a716-446655440002'
        )
    """)
