"""
Customer account looked up by email.

Key design decisions:
- Unique index on email is what lets concurrent creators converge:
  the loser of an insert race re-reads the winner's row
- Accounts created by reconciliation are flagged as guests
"""

from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship

from reconciler.db.base import Base, TimestampMixin


class Customer(Base, TimestampMixin):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    is_guest = Column(Boolean, default=False, nullable=False)

    bookings = relationship("Booking", back_populates="customer")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, email={self.email})>"
