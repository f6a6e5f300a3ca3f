# backend/tutorbook/services/checkout_service.py
"""
Checkout Service for the Tutorbook platform.

Bridges bookings and Stripe Checkout:

- opens a Checkout Session for a pending booking or a whole recurring series
- reports payment status for the confirmation page poller
- releases unpaid bookings when the student abandons checkout
- applies Stripe webhook events, the only path from ``pending`` to ``paid``

Every session is created with an ``expires_at`` and the bookings remember
it, so a hold is never released while its session can still be paid. A
payment that still lands on a released hold is refunded.

Without a Stripe secret key the service runs in mock mode and returns a
local session that points straight at the success page, which keeps local
development and tests off the network. Nothing confirms a mock payment on
its own: the booking stays ``pending`` until a
``checkout.session.completed`` event is posted to ``/api/webhook/stripe``
(accepted unsigned outside production).
"""

from datetime import datetime, timedelta
from decimal import Decimal
import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from sqlalchemy.orm import Session
import stripe

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PaymentSessionException,
    ServiceException,
    ValidationException,
)
from ..domain.pricing import to_minor_units
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.checkout import CheckoutSessionCreate
from .base import BaseService, Clock
from .payment_sessions import close_open_session, is_mock_session
from .trial_service import TrialService
from .tutor_service import TutorService

SESSION_PAID_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)
SESSION_FAILED_EVENTS = (
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
)


class CheckoutService(BaseService):
    """Payment sessions, payment status and webhook handling for bookings."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock)
        self.config = config or default_settings
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.tutor_service = TutorService(db, clock)
        self.trial_service = TrialService(db, clock, trial_price=self.config.trial_price)

        self.stripe_configured = self.config.stripe_configured
        if self.stripe_configured:
            stripe.api_key = self.config.stripe_secret_key.get_secret_value()
            stripe.max_network_retries = 1
        else:
            self.logger.info("Stripe secret key not configured; checkout runs in mock mode")

    # ------------------------------------------------------------------
    # Session creation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_checkout_session")
    def create_session(self, student: User, payload: CheckoutSessionCreate) -> Dict[str, Any]:
        """
        Open a payment session for a booking, or for every lesson of its series.

        The charged amount is the sum of the stored payment amounts, which
        already reflect trial pricing or the recurring discount.

        Raises:
            NotFoundException: booking unknown
            ForbiddenException: booking belongs to another student
            ConflictException: already paid, cancelled, or an earlier session
                for it can no longer be closed
            ValidationException: request flags disagree with the booking
            PaymentSessionException: Stripe refused; bookings stay pending
        """
        booking = self._get_booking(payload.booking_id)
        if booking.student_id != student.id:
            raise ForbiddenException("You can only pay for your own bookings")

        bookings = self._bookings_for_checkout(booking, payload)
        if any(b.payment_status == PaymentStatus.PAID.value for b in bookings):
            raise ConflictException("This booking has already been paid", code="ALREADY_PAID")
        if any(b.status == BookingStatus.CANCELLED.value for b in bookings):
            raise ConflictException(
                "This booking has been cancelled", code="BOOKING_CANCELLED"
            )

        now = self.now()
        if not close_open_session(bookings, now, self.config):
            raise self._payment_in_progress(booking.id)
        expires_at = now + timedelta(minutes=self.config.checkout_session_minutes)

        amount = sum((Decimal(b.payment_amount) for b in bookings), Decimal("0"))
        description = self._describe(booking, len(bookings))
        metadata = {
            "booking_id": booking.id,
            "recurring_id": booking.recurring_id or "",
            "student_id": student.id,
            "is_trial": "true" if booking.is_trial else "false",
        }

        if self.stripe_configured:
            session_id, url = self._create_stripe_session(
                booking, student, amount, description, metadata, expires_at
            )
        else:
            session_id, url = self._mock_session(booking)

        with self.transaction():
            for row in bookings:
                row.stripe_session_id = session_id
                row.checkout_expires_at = expires_at

        prometheus_metrics.record_checkout_session("created")
        self.log_operation(
            "create_checkout_session",
            booking_id=booking.id,
            recurring_id=booking.recurring_id,
            session_id=session_id,
            amount=str(amount),
        )
        return {"session_id": session_id, "url": url, "amount": amount}

    def _bookings_for_checkout(
        self, booking: Booking, payload: CheckoutSessionCreate
    ) -> List[Booking]:
        if payload.use_trial != bool(booking.is_trial):
            raise ValidationException(
                "Trial selection does not match the booking",
                code="TRIAL_MISMATCH",
                details={"booking_is_trial": bool(booking.is_trial)},
            )

        if booking.recurring_id is None:
            if payload.is_recurring or payload.recurring_id:
                raise ValidationException(
                    "Booking is not part of a recurring series", code="NOT_RECURRING"
                )
            return [booking]

        if not payload.is_recurring:
            raise ValidationException(
                "Booking belongs to a recurring series; pay for the series",
                code="RECURRING_REQUIRED",
                details={"recurring_id": booking.recurring_id},
            )
        if payload.recurring_id and payload.recurring_id != booking.recurring_id:
            raise ValidationException(
                "Recurring id does not match the booking", code="RECURRING_MISMATCH"
            )
        if booking.recurring_index not in (None, 1):
            raise ValidationException(
                "Checkout must reference the first booking of the series",
                code="NOT_FIRST_IN_SERIES",
            )

        series = self.booking_repository.get_series(booking.recurring_id)
        if payload.recurring_weeks is not None and payload.recurring_weeks != len(series):
            raise ValidationException(
                "Recurring weeks do not match the series",
                code="RECURRING_MISMATCH",
                details={"expected": len(series), "received": payload.recurring_weeks},
            )
        return series

    def _describe(self, booking: Booking, lessons: int) -> str:
        tutor = self.tutor_service.find_tutor(booking.tutor_id)
        tutor_name = tutor.name if tutor else "your tutor"
        if lessons > 1:
            return f"{lessons} weekly lessons with {tutor_name}"
        if booking.is_trial:
            return f"Trial lesson with {tutor_name}"
        return f"Lesson with {tutor_name} on {booking.booking_date.isoformat()}"

    def _return_url(self, outcome: str, booking: Booking) -> str:
        query = urlencode({"booking_id": booking.id})
        base = self.config.frontend_url.rstrip("/")
        if outcome == "success":
            return f"{base}/booking/success?{query}&session_id={{CHECKOUT_SESSION_ID}}"
        return f"{base}/booking/cancel?{query}"

    def _create_stripe_session(
        self,
        booking: Booking,
        student: User,
        amount: Decimal,
        description: str,
        metadata: Dict[str, str],
        expires_at: datetime,
    ) -> tuple[str, str]:
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.config.checkout_currency,
                            "product_data": {"name": description},
                            "unit_amount": to_minor_units(amount),
                        },
                        "quantity": 1,
                    }
                ],
                customer_email=student.email or None,
                client_reference_id=booking.id,
                metadata=metadata,
                success_url=self._return_url("success", booking),
                cancel_url=self._return_url("cancel", booking),
                expires_at=int(expires_at.timestamp()),
            )
        except stripe.StripeError as exc:
            prometheus_metrics.record_checkout_session("failed")
            self.logger.error(
                f"Stripe checkout session failed for booking {booking.id}: {exc}",
                extra={"booking_id": booking.id},
            )
            raise PaymentSessionException(
                "Could not start payment. Please try again.",
                details={"booking_id": booking.id},
            ) from exc
        return session.id, session.url

    def _mock_session(self, booking: Booking) -> tuple[str, str]:
        """
        Local stand-in for a Checkout Session.

        The returned URL goes straight to the success page but the booking
        stays ``pending``: the confirmation poller reports ``timeout`` until a
        ``checkout.session.completed`` event for this session id is posted to
        the webhook endpoint.
        """
        session_id = f"cs_mock_{booking.id}"
        base = self.config.frontend_url.rstrip("/")
        query = urlencode({"booking_id": booking.id, "session_id": session_id})
        return session_id, f"{base}/booking/success?{query}"

    # ------------------------------------------------------------------
    # Status and release
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_payment_status")
    def get_payment_status(self, booking_id: str, user: User) -> Booking:
        booking = self._get_booking(booking_id)
        if not booking.is_participant(user.id, self.tutor_service.tutor_user_id(booking.tutor_id)):
            raise ForbiddenException("You do not have access to this booking")
        return booking

    @BaseService.measure_operation("cancel_checkout")
    def cancel_checkout(self, booking_id: str, student: User) -> int:
        """
        Release an abandoned unpaid booking, or its whole series, so the slots reopen.

        Returns the number of bookings released.
        """
        booking = self._get_booking(booking_id)
        if booking.student_id != student.id:
            raise ForbiddenException("You can only release your own bookings")

        rows = (
            self.booking_repository.get_series(booking.recurring_id)
            if booking.recurring_id
            else [booking]
        )
        if any(row.payment_status == PaymentStatus.PAID.value for row in rows):
            raise ConflictException(
                "Paid bookings cannot be released; cancel the lesson instead",
                code="ALREADY_PAID",
            )

        # the session must be closed before the rows go, or a late payment has no booking
        if not close_open_session(rows, self.now(), self.config):
            raise self._payment_in_progress(booking.id)

        with self.transaction():
            for row in rows:
                self.booking_repository.delete_entity(row)

        self.log_operation(
            "cancel_checkout",
            booking_id=booking_id,
            recurring_id=booking.recurring_id,
            released=len(rows),
        )
        return len(rows)

    @staticmethod
    def _payment_in_progress(booking_id: str) -> ConflictException:
        return ConflictException(
            "A payment for this booking is already in progress",
            code="PAYMENT_IN_PROGRESS",
            details={"booking_id": booking_id},
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and parse a Stripe webhook payload.

        Signature verification is mandatory when a webhook secret is
        configured and in production; other environments accept unsigned
        JSON so the flow can be exercised locally.
        """
        secret = self.config.stripe_webhook_secret
        if secret and secret.get_secret_value():
            if not signature:
                raise ValidationException("Missing Stripe signature", code="INVALID_SIGNATURE")
            body = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
            try:
                stripe.WebhookSignature.verify_header(
                    body, signature, secret.get_secret_value(), stripe.Webhook.DEFAULT_TOLERANCE
                )
            except stripe.SignatureVerificationError as exc:
                self.logger.warning("Invalid webhook signature")
                raise ValidationException(
                    "Invalid Stripe signature", code="INVALID_SIGNATURE"
                ) from exc
        elif self.config.is_production:
            raise ServiceException("Webhook secret not configured", code="WEBHOOK_NOT_CONFIGURED")
        else:
            self.logger.warning("Accepting unsigned webhook; STRIPE_WEBHOOK_SECRET is not set")

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD") from exc
        if not isinstance(event, dict):
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD")
        return event

    @BaseService.measure_operation("handle_webhook_event")
    def handle_webhook_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a verified Stripe event to the bookings it references.

        Repeated deliveries are harmless: rows already paid stay paid and
        rows already failed stay failed. A payment for rows whose hold was
        released in the meantime is refunded and counted in ``refunded``.
        """
        event_type = str(event.get("type", ""))
        session = (event.get("data") or {}).get("object") or {}
        self.logger.info(f"Processing webhook event: {event_type}")

        if event_type in SESSION_PAID_EVENTS:
            if event_type == "checkout.session.completed" and session.get(
                "payment_status"
            ) not in (None, "paid", "no_payment_required"):
                result = {"event_type": event_type, "handled": True, "updated": 0, "refunded": 0}
            else:
                updated, refunded = self._mark_session_paid(session)
                result = {
                    "event_type": event_type,
                    "handled": True,
                    "updated": updated,
                    "refunded": refunded,
                }
        elif event_type in SESSION_FAILED_EVENTS:
            result = {
                "event_type": event_type,
                "handled": True,
                "updated": self._mark_session_failed(session),
                "refunded": 0,
            }
        else:
            self.logger.info(f"Unhandled webhook event type: {event_type}")
            result = {"event_type": event_type, "handled": False, "updated": 0, "refunded": 0}

        prometheus_metrics.record_webhook_event(
            event_type or "unknown", "handled" if result["handled"] else "ignored"
        )
        return result

    def _bookings_for_session(self, session: Dict[str, Any]) -> List[Booking]:
        metadata = session.get("metadata") or {}
        recurring_id = metadata.get("recurring_id")
        if recurring_id:
            return self.booking_repository.get_series(recurring_id)

        booking_id = metadata.get("booking_id") or session.get("client_reference_id")
        if booking_id:
            booking = self.booking_repository.get_by_id(booking_id)
            return [booking] if booking else []

        session_id = session.get("id")
        return self.booking_repository.get_by_session_id(session_id) if session_id else []

    def _mark_session_paid(self, session: Dict[str, Any]) -> tuple[int, int]:
        """Returns ``(updated, refunded)`` row counts."""
        bookings = self._bookings_for_session(session)
        if not bookings:
            self.logger.warning(f"No bookings found for paid session {session.get('id')}")
            return 0, 0

        now = self.now()
        payment_intent = session.get("payment_intent")
        settled = (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value)
        updated = 0
        released: List[Booking] = []
        with self.transaction():
            for booking in bookings:
                if booking.payment_status in settled:
                    continue
                if booking.status == BookingStatus.CANCELLED.value:
                    released.append(booking)
                    continue
                booking.mark_paid(payment_intent, now)
                booking.stripe_session_id = session.get("id") or booking.stripe_session_id
                updated += 1
                if booking.is_trial:
                    self.trial_service.mark_trial_used(booking.student_id)
            if released:
                self._refund_released(session, released)
                for booking in released:
                    booking.mark_refunded(payment_intent, now)

        self.log_operation(
            "payment_confirmed",
            session_id=session.get("id"),
            updated=updated,
            refunded=len(released),
        )
        return updated, len(released)

    def _refund_released(self, session: Dict[str, Any], released: List[Booking]) -> None:
        """
        Return the share of a payment that belongs to released holds.

        A Stripe failure propagates so the webhook is answered with an error
        and Stripe delivers the event again.
        """
        session_id = session.get("id")
        payment_intent = session.get("payment_intent")
        amount = sum((Decimal(b.payment_amount) for b in released), Decimal("0"))
        self.logger.warning(
            f"Payment for session {session_id} arrived after {len(released)} booking(s) "
            f"were released; refunding {amount}",
            extra={"session_id": session_id, "booking_ids": [b.id for b in released]},
        )
        if not self.stripe_configured or not payment_intent or is_mock_session(session_id):
            return
        try:
            stripe.Refund.create(
                payment_intent=payment_intent,
                amount=to_minor_units(amount),
                metadata={"booking_ids": ",".join(b.id for b in released)},
                idempotency_key=f"refund-{session_id}",
            )
        except stripe.StripeError as exc:
            prometheus_metrics.record_checkout_session("refund_failed")
            self.logger.error(f"Refund failed for session {session_id}: {exc}")
            raise ServiceException(
                "Could not refund payment for released booking", code="REFUND_FAILED"
            ) from exc
        prometheus_metrics.record_checkout_session("refunded")

    def _mark_session_failed(self, session: Dict[str, Any]) -> int:
        now = self.now()
        updated = 0
        with self.transaction():
            for booking in self._bookings_for_session(session):
                if booking.payment_status != PaymentStatus.PENDING.value:
                    continue
                # a newer session may have replaced the one that failed
                if session.get("id") and booking.stripe_session_id not in (None, session["id"]):
                    continue
                booking.mark_payment_failed(now)
                updated += 1

        self.log_operation("payment_failed", session_id=session.get("id"), updated=updated)
        return updated

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking
