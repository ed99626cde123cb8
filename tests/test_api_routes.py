"""Tests for public API routes with authentication and domain calls mocked."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from staybook.api.auth import CurrentUser, get_current_user
from staybook.api.factory import create_app
from staybook.domain import checkout
from staybook.domain.calendar import CalendarConflictError
from staybook.domain.ledger import InsufficientBalanceError
from staybook.infra.platform_settings import PlatformSettings

GUEST = CurrentUser(id="guest-1", external_subject="sub-guest", email=None, name="Guest")
HOST = CurrentUser(id="host-1", external_subject="sub-host", email=None, name="Host")
ADMIN = CurrentUser(id="admin-1", external_subject="sub-admin", email=None, name="Admin", is_admin=True)

UNIT_ID = "5b0c2f4e-8a51-4c5e-9a43-6f1d2a7b9c10"
BOOKING_ID = "0e6f7a18-3c2d-4b9e-8f21-7d4c5b6a9e02"
EVENT_ID = "9a8b7c6d-1e2f-4a3b-8c4d-5e6f7a8b9c0d"
GUEST_ID = "c3d4e5f6-0718-4293-a4b5-c6d7e8f90a1b"

BOOKING = {
    "id": BOOKING_ID,
    "public_id": "BK00001",
    "guest_id": "guest-1",
    "host_id": "host-1",
    "status": "pending",
}


def _client_as(user: CurrentUser) -> TestClient:
    app = create_app(role="public")
    app.dependency_overrides[get_current_user] = lambda: user
    return TestClient(app)


@contextmanager
def _patched_txn(module: str):
    mock_cur = MagicMock()

    @contextmanager
    def mock_txn():
        yield mock_cur

    with patch(f"{module}.txn", mock_txn):
        yield mock_cur


class TestHealth:
    def test_health(self):
        response = TestClient(create_app(role="public")).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestQuoteRoute:
    MOD = "staybook.api.routes.quotes"

    def test_unknown_unit_404(self):
        with _patched_txn(self.MOD), patch(f"{self.MOD}.units_repository.get_unit", return_value=None):
            response = TestClient(create_app(role="public")).post(
                f"/units/{UNIT_ID}/quote", json={"start": "2026-12-01", "end": "2026-12-03"}
            )
        assert response.status_code == 404

    def test_conflict_409_lists_nights(self):
        error = CalendarConflictError(
            "requested nights are not available",
            conflicts=[{"night": date(2026, 12, 2), "status": "booked"}],
        )
        with _patched_txn(self.MOD), patch(
            f"{self.MOD}.units_repository.get_unit", return_value={"id": UNIT_ID}
        ), patch(f"{self.MOD}.load_platform_settings"), patch(
            f"{self.MOD}.build_quote", side_effect=error
        ):
            response = TestClient(create_app(role="public")).post(
                f"/units/{UNIT_ID}/quote", json={"start": "2026-12-01", "end": "2026-12-03"}
            )

        assert response.status_code == 409
        assert response.json()["detail"]["conflicts"] == [{"night": "2026-12-02", "status": "booked"}]

    def test_quote_returns_snapshot_and_signature(self):
        snapshot = {
            "amount_breakdown": {"final_amount": 2200},
            "nights": [],
            "discounts": [],
            "extra_features": [],
            "currency": "INR",
        }
        with _patched_txn(self.MOD), patch(
            f"{self.MOD}.units_repository.get_unit", return_value={"id": UNIT_ID}
        ), patch(f"{self.MOD}.load_platform_settings"), patch(
            f"{self.MOD}.build_quote", return_value={"snapshot": snapshot, "signature": "sig"}
        ):
            response = TestClient(create_app(role="public")).post(
                f"/units/{UNIT_ID}/quote", json={"start": "2026-12-01", "end": "2026-12-03"}
            )

        assert response.status_code == 200
        assert response.json()["signature"] == "sig"
        assert response.json()["amount_breakdown"]["final_amount"] == 2200


class TestCheckoutRoute:
    def test_requires_auth(self):
        response = TestClient(create_app(role="public")).post(
            "/checkout", json={"gateway": "stripe", "snapshot": {}, "signature": "x"}
        )
        assert response.status_code == 401

    def test_created(self):
        order = {"settlement_id": "rec-1", "gateway": "stripe", "gateway_order_id": "pi_1"}
        with patch.object(checkout, "start_unit_checkout", return_value=order) as start:
            response = _client_as(GUEST).post(
                "/checkout", json={"gateway": "stripe", "snapshot": {"a": 1}, "signature": "x"}
            )

        assert response.status_code == 201
        assert response.json()["settlement_id"] == "rec-1"
        assert start.call_args.kwargs["user_id"] == "guest-1"

    def test_gateway_failure_502(self):
        with patch.object(
            checkout, "start_unit_checkout", side_effect=checkout.GatewayOrderError("down")
        ):
            response = _client_as(GUEST).post(
                "/checkout", json={"gateway": "razorpay", "snapshot": {}, "signature": "x"}
            )
        assert response.status_code == 502

    def test_event_attendees_validated(self):
        response = _client_as(GUEST).post(
            f"/events/{EVENT_ID}/checkout", json={"gateway": "stripe", "attendees": 0}
        )
        assert response.status_code == 422


class TestBookingRoutes:
    def test_guest_cannot_confirm(self):
        with patch("staybook.api.access._get_booking", return_value=BOOKING):
            response = _client_as(GUEST).post(f"/bookings/{BOOKING_ID}/confirm")
        assert response.status_code == 403

    def test_stranger_forbidden(self):
        stranger = CurrentUser(id="x", external_subject="x", email=None, name=None)
        with patch("staybook.api.access._get_booking", return_value=BOOKING):
            response = _client_as(stranger).post(f"/bookings/{BOOKING_ID}/cancel", json={"reason": "no"})
        assert response.status_code == 403

    def test_unknown_booking_404(self):
        with patch("staybook.api.access._get_booking", return_value=None):
            response = _client_as(HOST).post(f"/bookings/{BOOKING_ID}/confirm")
        assert response.status_code == 404

    def test_host_confirms(self):
        with patch("staybook.api.access._get_booking", return_value=BOOKING), patch(
            "staybook.domain.bookings.confirm",
            return_value={"status": "confirmed", "booking_id": BOOKING_ID},
        ) as confirm:
            response = _client_as(HOST).post(f"/bookings/{BOOKING_ID}/confirm")

        assert response.status_code == 200
        assert confirm.call_args.kwargs["actor"] == "host"

    def test_guest_cancel_passes_actor(self):
        result = {
            "status": "cancelled",
            "booking_id": BOOKING_ID,
            "refund_amount": 1650,
            "penalty_amount": 550,
            "nights_released": 2,
        }
        with patch("staybook.api.access._get_booking", return_value=BOOKING), patch(
            "staybook.domain.bookings.cancel", return_value=result
        ) as cancel:
            response = _client_as(GUEST).post(f"/bookings/{BOOKING_ID}/cancel", json={"reason": "plans changed"})

        assert response.status_code == 200
        assert response.json()["refund_amount"] == 1650
        assert cancel.call_args.kwargs["actor"] == "guest"

    def test_cancel_requires_reason(self):
        response = _client_as(GUEST).post(f"/bookings/{BOOKING_ID}/cancel", json={"reason": ""})
        assert response.status_code == 422

    def test_admin_cancel_already_cancelled_409(self):
        from staybook.domain.bookings import BookingNotCancellableError

        with patch("staybook.api.access._get_booking", return_value=BOOKING), patch(
            "staybook.domain.bookings.cancel", side_effect=BookingNotCancellableError("already")
        ):
            response = _client_as(ADMIN).post(f"/bookings/{BOOKING_ID}/cancel", json={"reason": "dup"})
        assert response.status_code == 409

    def test_remove_missing_auto_accept_404(self):
        with _patched_txn("staybook.api.routes.bookings"), patch(
            "staybook.api.routes.bookings.units_repository.remove_auto_accept", return_value=False
        ):
            response = _client_as(HOST).delete(f"/hosts/me/auto-accept/{GUEST_ID}")
        assert response.status_code == 404


class TestWalletRoutes:
    MOD = "staybook.api.routes.wallets"

    def test_missing_wallet_reads_zero(self):
        with _patched_txn(self.MOD), patch(f"{self.MOD}.wallets_repository.get_wallet", return_value=None):
            response = _client_as(HOST).get("/wallets/me?role=host")

        assert response.status_code == 200
        assert response.json()["wallet"]["balance"] == 0
        assert response.json()["transactions"] == []

    def test_bad_role_422(self):
        response = _client_as(HOST).get("/wallets/me?role=platform")
        assert response.status_code == 422

    def test_withdraw_accepted(self):
        with patch(
            f"{self.MOD}.request_withdrawal",
            return_value={"transaction_id": "t1", "amount": 500, "status": "pending"},
        ):
            response = _client_as(HOST).post("/wallets/me/withdraw", json={"amount": 500})
        assert response.status_code == 202

    def test_withdraw_insufficient_409(self):
        with patch(f"{self.MOD}.request_withdrawal", side_effect=InsufficientBalanceError("low")):
            response = _client_as(HOST).post("/wallets/me/withdraw", json={"amount": 500})
        assert response.status_code == 409


class TestSettingsRoutes:
    MOD = "staybook.api.routes.settings"

    def test_fees_admin_only(self):
        response = _client_as(HOST).put("/admin/settings/fees", json={"unit_fee_percent": "12"})
        assert response.status_code == 403

    def test_fees_updated(self):
        settings = PlatformSettings(
            unit_fee_percent=Decimal("12"), event_fee_percent=Decimal("15"), version=7
        )
        with patch(f"{self.MOD}.reprice.change_platform_fees", return_value=settings):
            response = _client_as(ADMIN).put("/admin/settings/fees", json={"unit_fee_percent": "12"})

        assert response.status_code == 202
        assert response.json() == {
            "unit_fee_percent": "12",
            "event_fee_percent": "15",
            "version": 7,
        }

    def test_fee_out_of_range_422(self):
        response = _client_as(ADMIN).put("/admin/settings/fees", json={"unit_fee_percent": "150"})
        assert response.status_code == 422

    def test_unit_pricing_not_host_403(self):
        with patch("staybook.api.access._get_unit", return_value={"id": UNIT_ID, "host_id": "host-2"}):
            response = _client_as(HOST).put(f"/units/{UNIT_ID}/pricing", json={"base_price": 1000})
        assert response.status_code == 403

    def test_fee_reprice_not_enqueued_503(self):
        from staybook.domain.reprice import RepriceEnqueueError

        with patch(
            f"{self.MOD}.reprice.change_platform_fees", side_effect=RepriceEnqueueError("down")
        ):
            response = _client_as(ADMIN).put("/admin/settings/fees", json={"unit_fee_percent": "12"})
        assert response.status_code == 503

    def test_unit_pricing_reprice_not_enqueued_503(self):
        from staybook.domain.reprice import RepriceEnqueueError

        with patch(
            "staybook.api.access._get_unit", return_value={"id": UNIT_ID, "host_id": "host-1"}
        ), patch(
            f"{self.MOD}.reprice.change_unit_pricing", side_effect=RepriceEnqueueError("down")
        ):
            response = _client_as(HOST).put(f"/units/{UNIT_ID}/pricing", json={"base_price": 1000})
        assert response.status_code == 503


class TestCalendarRoute:
    MOD = "staybook.api.routes.calendar"

    def test_month_query(self):
        nights = [
            {
                "night": date(2026, 12, 1),
                "status": "booked",
                "price_with_fee": 1100,
                "booking_public_id": "BK00007",
            }
        ]
        with _patched_txn(self.MOD), patch(
            f"{self.MOD}.units_repository.get_unit", return_value={"id": UNIT_ID}
        ), patch(f"{self.MOD}.calendar_repository.list_nights", return_value=nights) as list_nights:
            response = TestClient(create_app(role="public")).get(
                f"/units/{UNIT_ID}/calendar", params={"month": 12, "year": 2026}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["start"] == "2026-12-01"
        assert body["end"] == "2027-01-01"
        assert body["nights"][0]["night"] == "2026-12-01"
        assert body["nights"][0]["booking_public_id"] == "BK00007"
        assert list_nights.call_args.kwargs["end"] == date(2027, 1, 1)

    def test_invalid_month_422(self):
        response = TestClient(create_app(role="public")).get(
            f"/units/{UNIT_ID}/calendar", params={"month": 13}
        )
        assert response.status_code == 422

    def test_unknown_unit_404(self):
        with _patched_txn(self.MOD), patch(
            f"{self.MOD}.units_repository.get_unit", return_value=None
        ), patch(f"{self.MOD}.calendar_repository.list_nights") as list_nights:
            response = TestClient(create_app(role="public")).get(f"/units/{UNIT_ID}/calendar")

        assert response.status_code == 404
        list_nights.assert_not_called()


class TestMalformedIds:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/units/not-a-uuid/calendar"),
            ("post", "/units/not-a-uuid/quote"),
            ("get", "/bookings/not-a-uuid"),
            ("post", "/bookings/123/confirm"),
            ("get", "/bookings/abc/cancellation-preview"),
        ],
    )
    def test_rejected_with_422(self, method, path):
        with patch("staybook.api.access._get_booking") as get_booking:
            response = getattr(_client_as(HOST), method)(path)

        assert response.status_code == 422
        get_booking.assert_not_called()
