"""Checkout session, release and webhook handling."""

import hashlib
import hmac
import json
import time as time_module
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from tutorbook.core.config import Settings
from tutorbook.core.exceptions import (
    BookingConflictException,
    ConflictException,
    ForbiddenException,
    PaymentSessionException,
    ServiceException,
    ValidationException,
)
from tutorbook.models.booking import Booking, BookingStatus, PaymentStatus
from tutorbook.schemas.booking import BookingCreate, RecurringBookingCreate
from tutorbook.schemas.checkout import CheckoutSessionCreate
from tutorbook.services.booking_service import BookingService
from tutorbook.services.checkout_service import CheckoutService

MONDAY = "2030-01-07"
WEBHOOK_SECRET = "whsec_test_secret"


def stripe_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "stripe_secret_key": "sk_test_123",
        "stripe_webhook_secret": WEBHOOK_SECRET,
        "frontend_url": "https://tutorbook.example.com",
    }
    values.update(overrides)
    return Settings(**values)


def sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time_module.time())
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def session_event(event_type: str, booking: Booking, **session_fields) -> dict:
    session = {
        "id": booking.stripe_session_id,
        "payment_intent": "pi_test_1",
        "payment_status": "paid",
        "client_reference_id": booking.id,
        "metadata": {"booking_id": booking.id, "recurring_id": booking.recurring_id or ""},
    }
    session.update(session_fields)
    return {"id": "evt_1", "type": event_type, "data": {"object": session}}


@pytest.fixture
def bookings(db, fixed_clock):
    return BookingService(db, clock=fixed_clock)


@pytest.fixture
def checkout(db, fixed_clock):
    return CheckoutService(db, clock=fixed_clock)


@pytest.fixture
def booking(bookings, student, tutor):
    return bookings.create_booking(
        student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00")
    )


@pytest.fixture
def series(bookings, student, tutor):
    rows, _ = bookings.create_recurring_series(
        student,
        RecurringBookingCreate(tutor_id=tutor.id, start_date=MONDAY, time="14:00", weeks=4),
    )
    return rows


class TestCreateSession:
    def test_mock_session_without_stripe(self, checkout, student, booking):
        result = checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        assert result["session_id"] == f"cs_mock_{booking.id}"
        assert result["amount"] == Decimal("20.00")
        assert f"booking_id={booking.id}" in result["url"]
        assert booking.stripe_session_id == result["session_id"]
        assert booking.payment_status == PaymentStatus.PENDING.value

    def test_series_is_charged_once_for_all_lessons(self, checkout, student, series):
        result = checkout.create_session(
            student,
            CheckoutSessionCreate(
                booking_id=series[0].id,
                recurring_id=series[0].recurring_id,
                is_recurring=True,
                recurring_weeks=4,
            ),
        )
        assert result["amount"] == Decimal("72.00")
        assert {row.stripe_session_id for row in series} == {result["session_id"]}

    def test_stripe_session_parameters(self, db, fixed_clock, fixed_now, student, tutor, booking):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        fake_session = SimpleNamespace(id="cs_test_abc", url="https://checkout.stripe.test/abc")

        with patch("stripe.checkout.Session.create", return_value=fake_session) as create:
            result = service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        assert result == {
            "session_id": "cs_test_abc",
            "url": "https://checkout.stripe.test/abc",
            "amount": Decimal("20.00"),
        }
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 2000
        assert kwargs["metadata"]["booking_id"] == booking.id
        assert kwargs["client_reference_id"] == booking.id
        assert kwargs["success_url"].startswith(
            f"https://tutorbook.example.com/booking/success?booking_id={booking.id}"
        )
        # the session cannot outlive the hold window
        expires_at = fixed_now + timedelta(minutes=30)
        assert kwargs["expires_at"] == int(expires_at.timestamp())
        assert booking.checkout_expires_at == expires_at

    def test_trial_session_charges_trial_price(self, db, fixed_clock, bookings, student, tutor):
        trial = bookings.create_booking(
            student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00", use_trial=True)
        )
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        fake_session = SimpleNamespace(id="cs_test_trial", url="https://checkout.stripe.test/t")

        with patch("stripe.checkout.Session.create", return_value=fake_session) as create:
            service.create_session(
                student, CheckoutSessionCreate(booking_id=trial.id, use_trial=True)
            )

        assert create.call_args.kwargs["line_items"][0]["price_data"]["unit_amount"] == 500
        assert create.call_args.kwargs["metadata"]["is_trial"] == "true"

    def test_stripe_failure_keeps_booking_pending(self, db, fixed_clock, student, booking):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())

        with patch(
            "stripe.checkout.Session.create", side_effect=stripe.APIConnectionError("down")
        ):
            with pytest.raises(PaymentSessionException) as exc_info:
                service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        assert exc_info.value.status_code == 502
        assert booking.payment_status == PaymentStatus.PENDING.value
        assert booking.stripe_session_id is None

    def test_mock_payment_stays_pending_until_webhook(self, checkout, student, booking):
        session = checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
        assert checkout.get_payment_status(booking.id, student).payment_status == "pending"

        checkout.handle_webhook_event(session_event("checkout.session.completed", booking))

        assert session["session_id"].startswith("cs_mock_")
        assert checkout.get_payment_status(booking.id, student).payment_status == "paid"

    def test_new_session_expires_the_previous_one(self, db, fixed_clock, student, booking):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        sessions = [
            SimpleNamespace(id="cs_test_first", url="https://checkout.stripe.test/1"),
            SimpleNamespace(id="cs_test_second", url="https://checkout.stripe.test/2"),
        ]

        with patch("stripe.checkout.Session.create", side_effect=sessions), patch(
            "stripe.checkout.Session.expire"
        ) as expire:
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        expire.assert_called_once_with("cs_test_first", api_key="sk_test_123")
        assert booking.stripe_session_id == "cs_test_second"

    def test_session_completed_elsewhere_blocks_new_session(
        self, db, fixed_clock, student, booking
    ):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        first = SimpleNamespace(id="cs_test_first", url="https://checkout.stripe.test/1")
        with patch("stripe.checkout.Session.create", return_value=first):
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        with patch(
            "stripe.checkout.Session.expire",
            side_effect=stripe.InvalidRequestError("Session is already complete", None),
        ), patch("stripe.checkout.Session.create") as create:
            with pytest.raises(ConflictException) as exc_info:
                service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        assert exc_info.value.code == "PAYMENT_IN_PROGRESS"
        create.assert_not_called()

    def test_only_owner_can_pay(self, checkout, other_student, booking):
        with pytest.raises(ForbiddenException):
            checkout.create_session(other_student, CheckoutSessionCreate(booking_id=booking.id))

    def test_trial_flag_must_match_booking(self, checkout, student, booking):
        with pytest.raises(ValidationException) as exc_info:
            checkout.create_session(
                student, CheckoutSessionCreate(booking_id=booking.id, use_trial=True)
            )
        assert exc_info.value.code == "TRIAL_MISMATCH"

    def test_series_requires_first_booking(self, checkout, student, series):
        with pytest.raises(ValidationException) as exc_info:
            checkout.create_session(
                student, CheckoutSessionCreate(booking_id=series[1].id, is_recurring=True)
            )
        assert exc_info.value.code == "NOT_FIRST_IN_SERIES"

    def test_series_booking_needs_recurring_flag(self, checkout, student, series):
        with pytest.raises(ValidationException) as exc_info:
            checkout.create_session(student, CheckoutSessionCreate(booking_id=series[0].id))
        assert exc_info.value.code == "RECURRING_REQUIRED"

    def test_paid_booking_cannot_be_paid_again(self, checkout, db, fixed_now, student, booking):
        booking.mark_paid("pi_1", fixed_now)
        db.commit()
        with pytest.raises(ConflictException):
            checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))


def test_recurring_and_trial_cannot_be_combined():
    with pytest.raises(ValueError):
        CheckoutSessionCreate(booking_id="b1", is_recurring=True, use_trial=True)


class TestCancelCheckout:
    def test_release_frees_slot_for_another_student(
        self, checkout, bookings, db, student, other_student, tutor, booking
    ):
        assert checkout.cancel_checkout(booking.id, student) == 1
        assert db.get(Booking, booking.id) is None

        again = bookings.create_booking(
            other_student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00")
        )
        assert again.student_id == other_student.id

    def test_release_removes_whole_series(self, checkout, db, student, series):
        assert checkout.cancel_checkout(series[0].id, student) == 4
        assert db.query(Booking).count() == 0

    def test_paid_booking_is_not_released(self, checkout, db, fixed_now, student, booking):
        booking.mark_paid("pi_1", fixed_now)
        db.commit()
        with pytest.raises(ConflictException):
            checkout.cancel_checkout(booking.id, student)

    def test_other_student_cannot_release(self, checkout, other_student, booking):
        with pytest.raises(ForbiddenException):
            checkout.cancel_checkout(booking.id, other_student)

    def test_open_stripe_session_is_expired_before_release(
        self, db, fixed_clock, student, booking
    ):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        session = SimpleNamespace(id="cs_test_cancel", url="https://checkout.stripe.test/c")
        with patch("stripe.checkout.Session.create", return_value=session):
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        with patch("stripe.checkout.Session.expire") as expire:
            assert service.cancel_checkout(booking.id, student) == 1

        expire.assert_called_once_with("cs_test_cancel", api_key="sk_test_123")
        assert db.get(Booking, booking.id) is None

    def test_session_that_cannot_be_expired_blocks_release(
        self, db, fixed_clock, student, booking
    ):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        session = SimpleNamespace(id="cs_test_paid", url="https://checkout.stripe.test/p")
        with patch("stripe.checkout.Session.create", return_value=session):
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        with patch(
            "stripe.checkout.Session.expire",
            side_effect=stripe.InvalidRequestError("Session is already complete", None),
        ):
            with pytest.raises(ConflictException) as exc_info:
                service.cancel_checkout(booking.id, student)

        assert exc_info.value.code == "PAYMENT_IN_PROGRESS"
        assert db.get(Booking, booking.id) is not None


class TestLatePayments:
    """Payments that land after the booking's hold was released."""

    def test_completion_after_stale_release_is_refunded(
        self, db, fixed_now, checkout, student, other_student, tutor, booking
    ):
        checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
        later = BookingService(db, clock=lambda: fixed_now + timedelta(minutes=31))
        taken = later.create_booking(
            other_student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00")
        )

        result = checkout.handle_webhook_event(
            session_event("checkout.session.completed", booking)
        )

        assert result == {
            "event_type": "checkout.session.completed",
            "handled": True,
            "updated": 0,
            "refunded": 1,
        }
        assert booking.status == BookingStatus.CANCELLED.value
        assert booking.payment_status == PaymentStatus.REFUNDED.value
        assert booking.stripe_payment_intent_id == "pi_test_1"
        assert taken.status == BookingStatus.CONFIRMED.value
        assert taken.payment_status == PaymentStatus.PENDING.value

    def test_open_session_keeps_hold_past_hold_window(
        self, db, fixed_now, student, other_student, tutor, booking
    ):
        opened_late = CheckoutService(db, clock=lambda: fixed_now + timedelta(minutes=10))
        opened_late.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        with pytest.raises(BookingConflictException):
            BookingService(db, clock=lambda: fixed_now + timedelta(minutes=31)).create_booking(
                other_student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00")
            )
        assert booking.status == BookingStatus.CONFIRMED.value

        result = opened_late.handle_webhook_event(
            session_event("checkout.session.completed", booking)
        )
        assert result["updated"] == 1
        assert booking.payment_status == PaymentStatus.PAID.value

    def test_late_stripe_payment_is_refunded_through_stripe(
        self, db, fixed_clock, fixed_now, student, other_student, tutor, booking
    ):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        session = SimpleNamespace(id="cs_test_late", url="https://checkout.stripe.test/l")
        with patch("stripe.checkout.Session.create", return_value=session):
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
        BookingService(db, clock=lambda: fixed_now + timedelta(minutes=31)).create_booking(
            other_student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00")
        )

        with patch("stripe.Refund.create") as refund:
            result = service.handle_webhook_event(
                session_event("checkout.session.completed", booking)
            )

        refund.assert_called_once_with(
            payment_intent="pi_test_1",
            amount=2000,
            metadata={"booking_ids": booking.id},
            idempotency_key="refund-cs_test_late",
        )
        assert result["refunded"] == 1
        assert booking.payment_status == PaymentStatus.REFUNDED.value

    def test_failed_refund_is_retried_by_stripe(
        self, db, fixed_clock, fixed_now, student, other_student, tutor, booking
    ):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        session = SimpleNamespace(id="cs_test_retry", url="https://checkout.stripe.test/r")
        with patch("stripe.checkout.Session.create", return_value=session):
            service.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
        BookingService(db, clock=lambda: fixed_now + timedelta(minutes=31)).create_booking(
            other_student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00")
        )

        with patch("stripe.Refund.create", side_effect=stripe.APIConnectionError("down")):
            with pytest.raises(ServiceException) as exc_info:
                service.handle_webhook_event(
                    session_event("checkout.session.completed", booking)
                )

        assert exc_info.value.code == "REFUND_FAILED"
        assert booking.payment_status == PaymentStatus.FAILED.value

    def test_superseded_trial_is_refunded_and_not_consumed(
        self, checkout, bookings, student, tutor
    ):
        first = bookings.create_booking(
            student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00", use_trial=True)
        )
        checkout.create_session(student, CheckoutSessionCreate(booking_id=first.id, use_trial=True))
        second = bookings.create_booking(
            student,
            BookingCreate(tutor_id=tutor.id, date="2030-01-09", time="18:00", use_trial=True),
        )

        with pytest.raises(ConflictException) as exc_info:
            checkout.create_session(
                student, CheckoutSessionCreate(booking_id=first.id, use_trial=True)
            )
        assert exc_info.value.code == "BOOKING_CANCELLED"

        late = checkout.handle_webhook_event(session_event("checkout.session.completed", first))
        assert (late["updated"], late["refunded"]) == (0, 1)
        assert student.has_used_trial is False

        checkout.create_session(student, CheckoutSessionCreate(booking_id=second.id, use_trial=True))
        paid = checkout.handle_webhook_event(session_event("checkout.session.completed", second))
        assert paid["updated"] == 1
        assert student.has_used_trial is True


class TestWebhooks:
    def test_completed_session_marks_booking_paid(self, checkout, student, booking):
        checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        result = checkout.handle_webhook_event(
            session_event("checkout.session.completed", booking)
        )

        assert result == {
            "event_type": "checkout.session.completed",
            "handled": True,
            "updated": 1,
            "refunded": 0,
        }
        assert booking.payment_status == PaymentStatus.PAID.value
        assert booking.stripe_payment_intent_id == "pi_test_1"
        assert booking.paid_at is not None

    def test_repeated_delivery_is_harmless(self, checkout, student, booking):
        checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
        event = session_event("checkout.session.completed", booking)

        checkout.handle_webhook_event(event)
        assert checkout.handle_webhook_event(event)["updated"] == 0

    def test_paid_trial_consumes_trial(self, checkout, bookings, student, tutor):
        trial = bookings.create_booking(
            student, BookingCreate(tutor_id=tutor.id, date=MONDAY, time="14:00", use_trial=True)
        )
        checkout.create_session(student, CheckoutSessionCreate(booking_id=trial.id, use_trial=True))

        checkout.handle_webhook_event(session_event("checkout.session.completed", trial))

        assert student.has_used_trial is True
        assert student.trial_used_at is not None

    def test_series_paid_by_recurring_id(self, checkout, student, series):
        checkout.create_session(
            student,
            CheckoutSessionCreate(booking_id=series[0].id, is_recurring=True, recurring_weeks=4),
        )
        result = checkout.handle_webhook_event(
            session_event("checkout.session.completed", series[0])
        )
        assert result["updated"] == 4
        assert all(row.payment_status == PaymentStatus.PAID.value for row in series)

    def test_unpaid_completion_waits_for_async_payment(self, checkout, student, booking):
        checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))
        result = checkout.handle_webhook_event(
            session_event("checkout.session.completed", booking, payment_status="unpaid")
        )
        assert result["updated"] == 0
        assert booking.payment_status == PaymentStatus.PENDING.value

    def test_expired_session_fails_and_releases_slot(self, checkout, student, booking):
        checkout.create_session(student, CheckoutSessionCreate(booking_id=booking.id))

        result = checkout.handle_webhook_event(session_event("checkout.session.expired", booking))

        assert result["updated"] == 1
        assert booking.payment_status == PaymentStatus.FAILED.value
        assert booking.status == BookingStatus.CANCELLED.value

    def test_unknown_event_is_acknowledged(self, checkout):
        result = checkout.handle_webhook_event({"type": "customer.created", "data": {}})
        assert result == {
            "event_type": "customer.created",
            "handled": False,
            "updated": 0,
            "refunded": 0,
        }

    def test_signed_payload_is_accepted(self, db, fixed_clock):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        payload = json.dumps({"id": "evt_1", "type": "customer.created", "data": {"object": {}}})

        event = service.construct_webhook_event(payload.encode("utf-8"), sign(payload))
        assert event["type"] == "customer.created"

    def test_bad_signature_is_rejected(self, db, fixed_clock):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        payload = json.dumps({"type": "checkout.session.completed"})

        with pytest.raises(ValidationException) as exc_info:
            service.construct_webhook_event(payload.encode("utf-8"), sign(payload, "whsec_other"))
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_missing_signature_is_rejected(self, db, fixed_clock):
        service = CheckoutService(db, clock=fixed_clock, config=stripe_settings())
        with pytest.raises(ValidationException):
            service.construct_webhook_event(b"{}", None)

    def test_unsigned_payload_refused_in_production(self, db, fixed_clock):
        config = stripe_settings(environment="production", stripe_webhook_secret=None)
        service = CheckoutService(db, clock=fixed_clock, config=config)
        with pytest.raises(ServiceException):
            service.construct_webhook_event(b"{}", None)

    def test_unsigned_payload_accepted_outside_production(self, checkout):
        event = checkout.construct_webhook_event(b'{"type": "ping"}', None)
        assert event == {"type": "ping"}

    def test_malformed_payload(self, checkout):
        with pytest.raises(ValidationException):
            checkout.construct_webhook_event(b"not json", None)
