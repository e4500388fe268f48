from reconciler.models.tour import Tour
from reconciler.models.customer import Customer
from reconciler.models.booking import Booking, BookingStatus

__all__ = ["Tour", "Customer", "Booking", "BookingStatus"]
