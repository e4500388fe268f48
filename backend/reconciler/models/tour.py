"""
Tour catalog entry referenced by bookings.

The catalog itself is managed elsewhere; the reconciliation engine only
reads tours to validate cart lines and to fill notification details.
Tour ids are opaque strings because that is what the cart snapshot carries.
"""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from reconciler.db.base import Base, TimestampMixin


class Tour(Base, TimestampMixin):
    __tablename__ = "tours"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    image = Column(String(500), nullable=True)
    meeting_point = Column(String(500), nullable=True)

    bookings = relationship("Booking", back_populates="tour")

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title={self.title})>"
