"""HTTP client for the Tutorbook API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from tutorbook.core.request_context import REQUEST_ID_HEADER
from tutorbook.core.ulid_helper import generate_ulid
from tutorbook.principal import ClientPrincipal

from .config import Settings
from .errors import (
    ClientAuthError,
    ClientConnectionError,
    ClientError,
    ClientNotFoundError,
    ClientRequestError,
)

logger = logging.getLogger(__name__)


def _error_from_response(response: httpx.Response) -> ClientError:
    """Build the matching client error from a ``{"detail": ...}`` error body."""
    message = f"Request failed with status {response.status_code}"
    code: str | None = None
    details: dict[str, Any] = {}
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None

    if isinstance(detail, dict):
        message = str(detail.get("message") or message)
        code = detail.get("code")
        details = detail.get("details") or {}
    elif isinstance(detail, str):
        message = detail
    elif isinstance(detail, list) and detail:
        # request validation errors
        message = str(detail[0].get("msg") or message)
        code = "REQUEST_VALIDATION_ERROR"
        details = {"errors": detail}

    status_code = response.status_code
    if status_code in {401, 403}:
        error_cls: type[ClientError] = ClientAuthError
    elif status_code == 404:
        error_cls = ClientNotFoundError
    else:
        error_cls = ClientRequestError
    return error_cls(message, status_code=status_code, code=code, details=details)


class TutorbookClient:
    """HTTP client for the Tutorbook booking, pricing and checkout API."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.http = http or httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=httpx.Timeout(
                settings.request_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "TutorbookClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _identity_headers(self) -> dict[str, str]:
        if not self.settings.user_id:
            return {}
        principal = ClientPrincipal(
            user_id=self.settings.user_id,
            email=self.settings.email,
            roles=tuple(self.settings.roles),
        )
        return {self.settings.principal_header: principal.to_header()}

    async def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict:
        request_headers = {REQUEST_ID_HEADER: generate_ulid(), **self._identity_headers()}
        if headers:
            request_headers.update(headers)
        try:
            response = await self.http.request(
                method, path, params=params, json=json, headers=request_headers
            )
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} failed: {exc}")
            raise ClientConnectionError() from exc

        if response.status_code >= 400:
            raise _error_from_response(response)

        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code, "text": response.text}

    # Availability

    async def get_tutor_availability(self, tutor_id: str) -> dict:
        return await self.call("GET", f"/api/tutors/{quote(tutor_id, safe='')}/availability")

    async def get_bookable_slots(
        self, tutor_id: str, date: str, timezone: str | None = None
    ) -> dict:
        params = {"date": date}
        if timezone:
            params["timezone"] = timezone
        return await self.call(
            "GET", f"/api/tutors/{quote(tutor_id, safe='')}/slots", params=params
        )

    async def get_own_availability(self) -> dict:
        return await self.call("GET", "/api/tutor/availability")

    async def replace_availability(
        self, availability: dict[str, list[str]], timezone: str | None = None
    ) -> dict:
        body: dict[str, Any] = {"availability": availability}
        if timezone:
            body["timezone"] = timezone
        return await self.call("PUT", "/api/tutor/availability", json=body)

    # Trial and pricing

    async def get_trial_status(self) -> dict:
        return await self.call("GET", "/api/users/trial-status")

    async def quote_price(
        self,
        tutor_id: str,
        *,
        is_recurring: bool = False,
        recurring_weeks: int = 1,
        use_trial: bool = False,
    ) -> dict:
        return await self.call(
            "POST",
            "/api/pricing/quote",
            json={
                "tutorId": tutor_id,
                "isRecurring": is_recurring,
                "recurringWeeks": recurring_weeks,
                "useTrial": use_trial,
            },
        )

    # Bookings

    async def create_booking(
        self,
        tutor_id: str,
        date: str,
        time: str,
        *,
        duration: int = 60,
        use_trial: bool = False,
    ) -> dict:
        return await self.call(
            "POST",
            "/api/bookings",
            json={
                "tutorId": tutor_id,
                "date": date,
                "time": time,
                "duration": duration,
                "useTrial": use_trial,
            },
        )

    async def create_recurring_booking(
        self, tutor_id: str, start_date: str, time: str, weeks: int, *, duration: int = 60
    ) -> dict:
        return await self.call(
            "POST",
            "/api/bookings/recurring",
            json={
                "tutorId": tutor_id,
                "startDate": start_date,
                "time": time,
                "weeks": weeks,
                "duration": duration,
            },
        )

    async def list_student_bookings(self) -> dict:
        return await self.call("GET", "/api/bookings/student")

    async def list_teacher_bookings(self) -> dict:
        return await self.call("GET", "/api/bookings/teacher")

    async def cancel_booking(self, booking_id: str) -> dict:
        return await self.call("DELETE", f"/api/bookings/{quote(booking_id, safe='')}")

    # Checkout

    async def create_checkout_session(
        self,
        booking_id: str,
        *,
        recurring_id: str | None = None,
        is_recurring: bool = False,
        recurring_weeks: int | None = None,
        use_trial: bool = False,
    ) -> dict:
        body: dict[str, Any] = {
            "bookingId": booking_id,
            "isRecurring": is_recurring,
            "useTrial": use_trial,
        }
        if recurring_id:
            body["recurringId"] = recurring_id
        if recurring_weeks is not None:
            body["recurringWeeks"] = recurring_weeks
        return await self.call("POST", "/api/checkout/create-session", json=body)

    async def get_checkout_status(self, booking_id: str) -> dict:
        return await self.call("GET", f"/api/checkout/status/{quote(booking_id, safe='')}")

    async def cancel_checkout(self, booking_id: str) -> dict:
        return await self.call("POST", "/api/checkout/cancel", json={"bookingId": booking_id})
