# backend/tutorbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.checkout_service import CheckoutService
from ...services.pricing_service import PricingService
from ...services.trial_service import TrialService
from .database import get_db


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Get booking service instance with all dependencies."""
    return BookingService(db)


def get_checkout_service(db: Session = Depends(get_db)) -> CheckoutService:
    return CheckoutService(db)


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    """Provide pricing service instance for dependency injection."""
    return PricingService(db)


def get_trial_service(db: Session = Depends(get_db)) -> TrialService:
    return TrialService(db)
