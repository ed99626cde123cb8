"""Booking ledger schema (SQL-only).

Revision ID: 001_ledger_schema
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_ledger_schema"
down_revision = None
branch_labels = None
depends_on = None


SQL = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    external_subject TEXT NOT NULL UNIQUE,
    email TEXT,
    name TEXT,
    is_admin BOOLEAN NOT NULL DEFAULT FALSE,
    payout_fund_account_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS platform_settings (
    id SMALLINT PRIMARY KEY CHECK (id = 1),
    unit_fee_percent NUMERIC(6, 2) NOT NULL,
    event_fee_percent NUMERIC(6, 2) NOT NULL,
    currency TEXT NOT NULL DEFAULT 'INR',
    version INTEGER NOT NULL DEFAULT 1,
    unit_fee_version INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS units (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    host_id UUID NOT NULL REFERENCES users(id),
    name TEXT NOT NULL,
    base_price INTEGER NOT NULL CHECK (base_price >= 0),
    weekend_price_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    weekend_price INTEGER CHECK (weekend_price >= 0),
    weekend_days SMALLINT[] NOT NULL DEFAULT '{4,5}',
    discounts JSONB NOT NULL DEFAULT '{}'::jsonb,
    extra_features JSONB NOT NULL DEFAULT '{}'::jsonb,
    is_new_listing BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS host_auto_accept (
    host_id UUID NOT NULL REFERENCES users(id),
    guest_id UUID NOT NULL REFERENCES users(id),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (host_id, guest_id)
);

CREATE TABLE IF NOT EXISTS events (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    organizer_id UUID NOT NULL REFERENCES users(id),
    title TEXT NOT NULL,
    price_per_attendee INTEGER NOT NULL CHECK (price_per_attendee >= 0),
    capacity INTEGER NOT NULL CHECK (capacity > 0),
    attendees INTEGER NOT NULL DEFAULT 0,
    starts_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT events_capacity_ck CHECK (attendees <= capacity)
);

CREATE TABLE IF NOT EXISTS settlement_records (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    gateway TEXT NOT NULL CHECK (gateway IN ('stripe', 'razorpay')),
    gateway_order_id TEXT,
    gateway_payment_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'paid', 'failed')),
    subject_type TEXT NOT NULL CHECK (subject_type IN ('unit_booking', 'event_booking')),
    subject_id UUID NOT NULL,
    user_id UUID NOT NULL REFERENCES users(id),
    amount INTEGER NOT NULL CHECK (amount >= 0),
    tax_amount INTEGER NOT NULL DEFAULT 0,
    currency TEXT NOT NULL DEFAULT 'INR',
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    failure_reason TEXT,
    settlement_error TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    paid_at TIMESTAMPTZ,
    failed_at TIMESTAMPTZ,
    CONSTRAINT settlement_records_order_uq UNIQUE (gateway, gateway_order_id)
);

CREATE SEQUENCE IF NOT EXISTS booking_public_seq;

CREATE TABLE IF NOT EXISTS bookings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    public_id TEXT NOT NULL UNIQUE,
    unit_id UUID NOT NULL REFERENCES units(id),
    guest_id UUID NOT NULL REFERENCES users(id),
    host_id UUID NOT NULL REFERENCES users(id),
    start_date DATE NOT NULL,
    end_date DATE NOT NULL,
    status TEXT NOT NULL
        CHECK (status IN ('pending', 'confirmed', 'cancelled', 'completed')),
    before_tax INTEGER NOT NULL,
    tax INTEGER NOT NULL,
    with_tax INTEGER NOT NULL,
    discount_amount INTEGER NOT NULL DEFAULT 0,
    extras_amount INTEGER NOT NULL DEFAULT 0,
    final_amount INTEGER NOT NULL,
    currency TEXT NOT NULL DEFAULT 'INR',
    pricing_snapshot JSONB NOT NULL DEFAULT '{}'::jsonb,
    payment_ref UUID UNIQUE REFERENCES settlement_records(id),
    cancelled_by TEXT CHECK (cancelled_by IN ('guest', 'host', 'admin')),
    cancellation_reason TEXT,
    refund_amount INTEGER,
    penalty_amount INTEGER,
    penalty_percent INTEGER,
    days_before_cancellation INTEGER,
    cancelled_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT bookings_range_ck CHECK (end_date > start_date)
);

CREATE INDEX IF NOT EXISTS bookings_status_end_idx ON bookings (status, end_date);

CREATE TABLE IF NOT EXISTS event_bookings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    public_id TEXT NOT NULL UNIQUE,
    event_id UUID NOT NULL REFERENCES events(id),
    guest_id UUID NOT NULL REFERENCES users(id),
    organizer_id UUID NOT NULL REFERENCES users(id),
    attendees INTEGER NOT NULL CHECK (attendees > 0),
    before_tax INTEGER NOT NULL,
    tax INTEGER NOT NULL,
    final_amount INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'confirmed'
        CHECK (status IN ('confirmed', 'cancelled')),
    payment_ref UUID UNIQUE REFERENCES settlement_records(id),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS calendar_nights (
    unit_id UUID NOT NULL REFERENCES units(id),
    night DATE NOT NULL,
    status TEXT NOT NULL DEFAULT 'available'
        CHECK (status IN ('available', 'booked', 'blocked')),
    price_before_fee INTEGER NOT NULL,
    price_with_fee INTEGER NOT NULL,
    price_source TEXT NOT NULL CHECK (price_source IN ('base', 'weekend', 'manual')),
    is_weekend BOOLEAN NOT NULL DEFAULT FALSE,
    booking_id UUID REFERENCES bookings(id),
    note TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (unit_id, night),
    CONSTRAINT calendar_nights_booking_ck
        CHECK ((status = 'booked') = (booking_id IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS calendar_nights_booking_idx
    ON calendar_nights (booking_id) WHERE booking_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS wallets (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id),
    role TEXT NOT NULL CHECK (role IN ('guest', 'host', 'platform')),
    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
    hold_balance INTEGER NOT NULL DEFAULT 0 CHECK (hold_balance >= 0),
    commission INTEGER NOT NULL DEFAULT 0 CHECK (commission >= 0),
    total_earnings INTEGER NOT NULL DEFAULT 0,
    currency TEXT NOT NULL DEFAULT 'INR',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT wallets_user_role_uq UNIQUE (user_id, role)
);

CREATE TABLE IF NOT EXISTS wallet_transactions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    wallet_id UUID NOT NULL REFERENCES wallets(id),
    amount INTEGER NOT NULL,
    type TEXT NOT NULL
        CHECK (type IN ('booking_earning', 'refund', 'withdrawal', 'transfer')),
    status TEXT NOT NULL
        CHECK (status IN ('pending', 'completed', 'failed', 'reversed')),
    booking_id UUID,
    booking_type TEXT CHECK (booking_type IN ('unit', 'event')),
    external_ref TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS wallet_transactions_wallet_idx
    ON wallet_transactions (wallet_id, created_at DESC);
CREATE INDEX IF NOT EXISTS wallet_transactions_booking_idx
    ON wallet_transactions (booking_id, type);
CREATE UNIQUE INDEX IF NOT EXISTS wallet_transactions_external_ref_uq
    ON wallet_transactions (external_ref) WHERE external_ref IS NOT NULL;

CREATE TABLE IF NOT EXISTS outbox_events (
    id BIGSERIAL PRIMARY KEY,
    event_type TEXT NOT NULL,
    aggregate_type TEXT NOT NULL,
    aggregate_id TEXT NOT NULL,
    payload JSONB,
    correlation_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS outbox_events_aggregate_idx
    ON outbox_events (aggregate_type, aggregate_id, event_type);
"""


def upgrade() -> None:
    # exec_driver_sql runs the multi-statement script as-is
    op.get_bind().exec_driver_sql(SQL)


def downgrade() -> None:
    raise NotImplementedError("Downgrade not supported")
