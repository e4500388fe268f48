"""
Pytest fixtures for test database, client, catalog data and payment events.

Each test gets its own database (a temporary SQLite file by default, or
TEST_DATABASE_URL) with tables created up front and dropped afterwards.
Outbound email goes to a recording sender instead of the email service.
"""

import datetime as dt
import json
import os
from decimal import Decimal
from typing import AsyncGenerator, Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("EMAIL_BACKEND", "logging")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from reconciler.main import app
from reconciler.db.base import Base
from reconciler.db.session import get_db
from reconciler.models import Booking, BookingStatus, Customer, Tour
from reconciler.schemas.notification import OutboundEmail
from reconciler.schemas.payment_event import PaymentEvent
from reconciler.services.booking_reference import generate_booking_reference
from reconciler.services.interfaces.email_sender import EmailSender
from reconciler.services.notification_service import NotificationDispatcher
from reconciler.services.reconciliation_service import get_dispatcher

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


class RecordingEmailSender(EmailSender):
    """Keeps every outbound message for assertions."""

    def __init__(self):
        self.messages: list[OutboundEmail] = []

    async def send(self, message: OutboundEmail) -> None:
        self.messages.append(message)

    def of_kind(self, kind: str) -> list[OutboundEmail]:
        return [m for m in self.messages if m.kind.value == kind]


class FailingEmailSender(EmailSender):
    def __init__(self):
        self.attempts = 0

    async def send(self, message: OutboundEmail) -> None:
        self.attempts += 1
        raise ConnectionError("email service unreachable")


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables, yield a session factory, then drop tables for isolation."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'reconciler_test.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def dispatcher(email_sender) -> NotificationDispatcher:
    return NotificationDispatcher(email_sender)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, dispatcher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB and dispatcher dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def tours(db_session: AsyncSession) -> dict[str, Tour]:
    """Three catalog tours the carts below refer to."""
    catalog = [
        Tour(id="tour_pyramids", title="Giza Pyramids Half Day", image="https://img.example.com/giza.jpg",
             meeting_point="Mena House entrance"),
        Tour(id="tour_nile", title="Nile Dinner Cruise", image="https://img.example.com/nile.jpg"),
        Tour(id="tour_desert", title="Desert Safari", image=None, meeting_point="Hotel lobby"),
    ]
    db_session.add_all(catalog)
    await db_session.commit()
    return {tour.id: tour for tour in catalog}


@pytest_asyncio.fixture
async def existing_customer(db_session: AsyncSession) -> Customer:
    customer = Customer(
        email="layla@example.com",
        first_name="Layla",
        last_name="Hassan",
        phone="+20 100 000 0000",
        is_guest=False,
    )
    db_session.add(customer)
    await db_session.commit()
    return customer


def cart_line(
    tour_id: str,
    *,
    index: Optional[int] = None,
    day: str = "2026-11-02",
    time: str = "09:00",
    adults: int = 2,
    children: int = 0,
    infants: int = 0,
    base_price: str = "50.00",
    option: Optional[tuple[str, str]] = None,
    add_ons: Optional[list[dict]] = None,
) -> dict:
    line = {"t": tour_id, "d": day, "tm": time, "a": adults, "c": children, "n": infants,
            "bp": float(Decimal(base_price))}
    if index is not None:
        line["i"] = index
    if option:
        line["bo"], line["bot"] = option
    if add_ons:
        line["ao"] = add_ons
    return line


def booking_metadata(cart: list[dict], **overrides) -> dict[str, str]:
    """Checkout-style metadata with the cart JSON split across two fields."""
    payload = json.dumps(cart, separators=(",", ":"))
    middle = len(payload) // 2
    metadata = {
        "has_booking_data": "true",
        "customer_email": "layla@example.com",
        "customer_first_name": "Layla",
        "customer_last_name": "Hassan",
        "customer_phone": "+20 100 000 0000",
        "discount_code": "none",
        "pricing_discount": "0",
        "pricing_currency": "usd",
        "cart_data": payload[:middle],
        "cart_data_2": payload[middle:],
    }
    metadata.update(overrides)
    return metadata


def payment_event(payment_id: str, cart: list[dict], amount: int = 0, **overrides) -> PaymentEvent:
    return PaymentEvent(
        payment_id=payment_id,
        metadata=booking_metadata(cart, **overrides),
        amount=amount,
        currency="usd",
    )


async def checkout_writes_pending(
    db: AsyncSession,
    payment_id: str,
    item_index: int,
    tour_id: str,
    customer_id: int,
    total: str = "108.00",
    status: BookingStatus = BookingStatus.PENDING,
    **fields,
) -> Booking:
    """What the synchronous checkout writer leaves behind (a Pending booking unless told otherwise)."""
    booking = Booking(
        booking_reference=generate_booking_reference(payment_id, item_index),
        payment_id=payment_id,
        item_index=item_index,
        tour_id=tour_id,
        customer_id=customer_id,
        date=dt.date(2026, 11, 2),
        time="09:00",
        adult_guests=2,
        total_price=Decimal(total),
        currency="USD",
        status=status.value,
        **fields,
    )
    db.add(booking)
    await db.commit()
    return booking


async def count_bookings(db: AsyncSession, payment_id: Optional[str] = None) -> int:
    query = select(func.count()).select_from(Booking)
    if payment_id:
        query = query.where(Booking.payment_id == payment_id)
    return (await db.execute(query)).scalar()
