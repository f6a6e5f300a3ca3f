from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .tutor_repository import TutorRepository
from .user_repository import UserRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "BookingRepository",
    "RepositoryFactory",
    "TutorRepository",
    "UserRepository",
]
