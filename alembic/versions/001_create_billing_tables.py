"""Create billing tables (clients, rates, bookings, expenses, invoices)

Revision ID: 001_create_billing_tables
Revises:
Create Date: 2026-03-01

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision = '001_create_billing_tables'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'clients',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('branch_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=True, server_default='active'),
        *_timestamps(),
    )

    op.create_table(
        'service_rates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('branch_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('service_name', sa.String(255), nullable=False),
        sa.Column('service_code', sa.String(50), nullable=True),
        sa.Column('rate_type', sa.String(40), nullable=True, server_default='hourly_rate'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('applicable_days', sa.JSON, nullable=True),
        sa.Column('effective_from', sa.Date, nullable=False),
        sa.Column('effective_to', sa.Date, nullable=True),
        sa.Column('is_vatable', sa.Boolean, nullable=True, server_default='false'),
        sa.Column('status', sa.String(20), nullable=True, server_default='active'),
        *_timestamps(),
    )

    op.create_table(
        'client_rate_schedules',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true', index=True),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),

        # Coverage
        sa.Column('days_covered', sa.JSON, nullable=True),
        sa.Column('time_from', sa.Time, nullable=False),
        sa.Column('time_until', sa.Time, nullable=False),

        # Pricing
        sa.Column('charge_type', sa.String(40), nullable=True, server_default='rate_per_minutes_pro_rata'),
        sa.Column('base_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('rate_15_minutes', sa.Numeric(10, 2), nullable=True),
        sa.Column('rate_30_minutes', sa.Numeric(10, 2), nullable=True),
        sa.Column('rate_45_minutes', sa.Numeric(10, 2), nullable=True),
        sa.Column('rate_60_minutes', sa.Numeric(10, 2), nullable=True),
        sa.Column('bank_holiday_multiplier', sa.Numeric(4, 2), nullable=True, server_default='1'),
        sa.Column('is_vatable', sa.Boolean, nullable=True, server_default='false'),
        *_timestamps(),
    )

    op.create_table(
        'client_rate_assignments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('service_rate_id', UUID(as_uuid=True), sa.ForeignKey('service_rates.id'), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true', index=True),
        sa.Column('start_date', sa.Date, nullable=True),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'bank_holidays',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('registered_on', sa.Date, nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=True, server_default='Active'),
    )

    op.create_table(
        'client_invoices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_number', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('branch_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),

        # Totals
        sa.Column('net_amount', sa.Numeric(10, 2), nullable=True, server_default='0'),
        sa.Column('vat_amount', sa.Numeric(10, 2), nullable=True, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=True, server_default='0'),

        # Dates
        sa.Column('invoice_date', sa.Date, nullable=False),
        sa.Column('due_date', sa.Date, nullable=False),
        sa.Column('start_date', sa.Date, nullable=True),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('paid_date', sa.Date, nullable=True),

        # Origin
        sa.Column('invoice_type', sa.String(20), nullable=True, server_default='manual'),
        sa.Column('invoice_method', sa.String(20), nullable=True),
        sa.Column('generated_from_booking', sa.Boolean, nullable=True, server_default='false'),
        sa.Column('booked_time_minutes', sa.Integer, nullable=True, server_default='0'),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'bookings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('branch_id', UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=True),
        sa.Column('staff_id', UUID(as_uuid=True), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actual_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=True, server_default='assigned'),

        # Billing
        sa.Column('is_invoiced', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('client_invoices.id'), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'expense_claims',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('branch_id', UUID(as_uuid=True), nullable=False),
        sa.Column('staff_id', UUID(as_uuid=True), nullable=True),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id'), nullable=True),
        sa.Column('category', sa.String(50), nullable=False, server_default='other'),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('expense_date', sa.Date, nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=True, server_default='approved'),
        sa.Column('is_invoiced', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('client_invoices.id'), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'extra_time_records',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id'), nullable=False, index=True),
        sa.Column('branch_id', UUID(as_uuid=True), nullable=False),
        sa.Column('staff_id', UUID(as_uuid=True), nullable=True),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id'), nullable=True),
        sa.Column('work_date', sa.Date, nullable=False, index=True),
        sa.Column('scheduled_duration_minutes', sa.Integer, nullable=True, server_default='0'),
        sa.Column('actual_duration_minutes', sa.Integer, nullable=True),
        sa.Column('extra_time_minutes', sa.Integer, nullable=False),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('extra_time_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), nullable=True, server_default='approved'),
        sa.Column('invoiced', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('client_invoices.id'), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'invoice_line_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('client_invoices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('position', sa.Integer, nullable=True, server_default='0'),
        sa.Column('line_type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('quantity', sa.Numeric(10, 2), nullable=True, server_default='1'),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=True, server_default='0'),
        sa.Column('line_total', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('vat_amount', sa.Numeric(10, 2), nullable=True, server_default='0'),

        # Visit lines
        sa.Column('visit_date', sa.Date, nullable=True),
        sa.Column('duration_minutes', sa.Integer, nullable=True),
        sa.Column('rate_type_applied', sa.String(40), nullable=True),
        sa.Column('bank_holiday_multiplier_applied', sa.Numeric(4, 2), nullable=True),
        sa.Column('day_type', sa.String(20), nullable=True),

        # Manual expense lines
        sa.Column('admin_cost_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('pay_staff', sa.Boolean, nullable=True, server_default='false'),
        sa.Column('staff_id', UUID(as_uuid=True), nullable=True),
        sa.Column('pay_staff_amount', sa.Numeric(10, 2), nullable=True),

        # Consumed sources, each billable at most once
        sa.Column('source_booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id'), nullable=True, unique=True),
        sa.Column('source_expense_id', UUID(as_uuid=True), sa.ForeignKey('expense_claims.id'), nullable=True, unique=True),
        sa.Column('source_extra_time_id', UUID(as_uuid=True), sa.ForeignKey('extra_time_records.id'), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'payment_records',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_id', UUID(as_uuid=True), sa.ForeignKey('client_invoices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('payment_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('payment_date', sa.Date, nullable=False),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('payment_records')
    op.drop_table('invoice_line_items')
    op.drop_table('extra_time_records')
    op.drop_table('expense_claims')
    op.drop_table('bookings')
    op.drop_table('client_invoices')
    op.drop_table('bank_holidays')
    op.drop_table('client_rate_assignments')
    op.drop_table('client_rate_schedules')
    op.drop_table('service_rates')
    op.drop_table('clients')
