"""
Notification boundary.

Turns an aggregated booking summary into two outbound requests - the
customer confirmation and the internal booking alert - and hands them to
the configured EmailSender. Bookings are authoritative and already
committed by the time anything here runs: a failed send is logged and
counted, never retried, and never propagated to the caller.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from reconciler.core.config import Settings, get_settings
from reconciler.core.logging import get_logger
from reconciler.core.metrics import record_notification
from reconciler.models.booking import Booking
from reconciler.schemas.notification import (
    BookingNotification,
    CustomerContact,
    NotificationKind,
    NotificationLine,
    OutboundEmail,
    PricingSummary,
)
from reconciler.schemas.payment_event import PaymentMetadata, PickupLocation, parse_pickup_location
from reconciler.services.interfaces.email_sender import EmailSender
from reconciler.services.pricing import ZERO, breakdown_from_total, round2

logger = get_logger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "EGP": "E£"}


def format_money(value: Decimal, currency: str = "USD") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    return f"{symbol}{round2(Decimal(value)):.2f}"


def format_booking_date(value: dt.date) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def google_maps_link(location: PickupLocation) -> str:
    return "https://www.google.com/maps/search/?" + urlencode(
        {"api": 1, "query": f"{location.lat},{location.lng}"}
    )


def static_map_image(location: PickupLocation, api_key: Optional[str]) -> Optional[str]:
    if not api_key:
        return None
    point = f"{location.lat},{location.lng}"
    return "https://maps.googleapis.com/maps/api/staticmap?" + urlencode({
        "center": point,
        "zoom": 15,
        "size": "600x300",
        "markers": f"color:red|{point}",
        "key": api_key,
    })


def notification_line(booking: Booking, settings: Optional[Settings] = None) -> NotificationLine:
    """Summary line for one booking. Requires booking.tour to be loaded."""
    settings = settings or get_settings()
    tour = booking.tour
    option = booking.selected_option or {}
    add_ons = booking.add_on_selections or {}
    return NotificationLine(
        booking_reference=booking.booking_reference,
        tour_title=tour.title if tour else "Tour",
        tour_image=tour.image if tour else None,
        meeting_point=(tour.meeting_point if tour else None) or settings.DEFAULT_MEETING_POINT,
        date=booking.date,
        time=booking.time,
        adults=booking.adult_guests,
        children=booking.child_guests,
        infants=booking.infant_guests,
        option_title=option.get("title") or None,
        option_price=Decimal(str(option.get("price", 0))),
        add_on_titles=[detail.get("title", "Add-on") for detail in add_ons.values()],
        total_price=booking.total_price,
    )


def pricing_from_bookings(bookings: list[Booking], currency: str) -> PricingSummary:
    """
    Sum the pinned breakdowns. Bookings written without a pinned breakdown
    get one derived from their total.
    """
    subtotal = service_fee = tax = discount = total = ZERO
    for booking in bookings:
        if booking.subtotal is not None:
            line = (booking.subtotal, booking.service_fee or ZERO, booking.tax or ZERO)
        else:
            line = breakdown_from_total(booking.total_price)
        subtotal += line[0]
        service_fee += line[1]
        tax += line[2]
        discount += booking.discount_amount or ZERO
        total += booking.total_price
    return PricingSummary(
        subtotal=subtotal,
        service_fee=service_fee,
        tax=tax,
        discount=discount,
        total=total,
        currency=currency,
    )


def build_notification(
    *,
    payment_id: str,
    order_reference: str,
    customer: CustomerContact,
    bookings: list[Booking],
    metadata: Optional[PaymentMetadata] = None,
    pricing: Optional[PricingSummary] = None,
) -> BookingNotification:
    """Aggregate materialized or reused bookings into one summary."""
    settings = get_settings()
    first = bookings[0]
    pricing = pricing or pricing_from_bookings(bookings, first.currency)
    pickup_location = metadata.hotel_pickup_location if metadata else None
    if pickup_location is None:
        pickup_location = parse_pickup_location(first.hotel_pickup_location)
    return BookingNotification(
        order_reference=order_reference,
        payment_id=payment_id,
        customer=customer,
        lines=[notification_line(booking, settings) for booking in bookings],
        pricing=pricing,
        discount_code=(metadata.discount_code if metadata else None) or first.discount_code,
        hotel_pickup_details=(metadata.hotel_pickup_details if metadata else None) or first.hotel_pickup_details,
        hotel_pickup_location=pickup_location,
        special_requests=(metadata.special_requests if metadata else None) or first.special_requests,
    )


class NotificationDispatcher:
    """Builds and sends the outbound messages for one booking summary."""

    def __init__(self, sender: EmailSender, settings: Optional[Settings] = None):
        self.sender = sender
        self.settings = settings or get_settings()

    def _title(self, summary: BookingNotification) -> str:
        if len(summary.lines) == 1:
            return summary.lines[0].tour_title
        return f"{len(summary.lines)} Tours"

    def _pickup_context(self, summary: BookingNotification) -> dict:
        location = summary.hotel_pickup_location
        return {
            "hotel_pickup_details": summary.hotel_pickup_details,
            "hotel_pickup_location": location.model_dump() if location else None,
            "hotel_pickup_map_link": google_maps_link(location) if location else None,
            "hotel_pickup_map_image": static_map_image(location, self.settings.GOOGLE_MAPS_API_KEY) if location else None,
        }

    def customer_confirmation(self, summary: BookingNotification) -> OutboundEmail:
        currency = summary.pricing.currency
        first = summary.lines[0]
        pricing = summary.pricing
        context = {
            "customer_name": summary.customer.name,
            "customer_email": summary.customer.email,
            "customer_phone": summary.customer.phone,
            "booking_id": summary.order_reference,
            "booking_references": summary.booking_references,
            "tour_title": self._title(summary),
            "tour_image": first.tour_image,
            "booking_date": format_booking_date(first.date),
            "booking_time": first.time,
            "participants": f"{first.participants} participant{'s' if first.participants != 1 else ''}",
            "booking_option": first.option_title,
            "meeting_point": first.meeting_point,
            "contact_number": self.settings.SUPPORT_CONTACT_NUMBER,
            "base_url": self.settings.PUBLIC_BASE_URL,
            "special_requests": summary.special_requests,
            "discount_code": summary.discount_code,
            "ordered_items": [
                {
                    "booking_reference": line.booking_reference,
                    "title": line.tour_title,
                    "image": line.tour_image,
                    "adults": line.adults,
                    "children": line.children,
                    "infants": line.infants,
                    "booking_option": line.option_title,
                    "price": str(line.option_price),
                    "total_price": format_money(line.total_price, currency),
                }
                for line in summary.lines
            ],
            "pricing": {
                "subtotal": format_money(pricing.subtotal, currency),
                "service_fee": format_money(pricing.service_fee, currency),
                "tax": format_money(pricing.tax, currency),
                "discount": format_money(pricing.discount, currency) if pricing.discount > 0 else None,
                "total": format_money(pricing.total, currency),
                "currency": currency,
            },
            "total_price": format_money(pricing.total, currency),
            **self._pickup_context(summary),
        }
        return OutboundEmail(
            kind=NotificationKind.CUSTOMER_CONFIRMATION,
            to=summary.customer.email,
            subject=f"Booking confirmed: {self._title(summary)} ({summary.order_reference})",
            template="booking_confirmation",
            context=context,
        )

    def admin_alert(self, summary: BookingNotification) -> OutboundEmail:
        currency = summary.pricing.currency
        base_url = self.settings.PUBLIC_BASE_URL
        context = {
            "customer_name": summary.customer.name,
            "customer_email": summary.customer.email,
            "customer_phone": summary.customer.phone,
            "booking_id": summary.order_reference,
            "payment_id": summary.payment_id,
            "tour_title": self._title(summary),
            "booking_date": format_booking_date(summary.lines[0].date),
            "total_price": format_money(summary.pricing.total, currency),
            "payment_method": "card",
            "admin_dashboard_link": f"{base_url}/admin/bookings/{summary.order_reference}" if base_url else None,
            "special_requests": summary.special_requests,
            "discount_code": summary.discount_code,
            "discount_amount": (
                format_money(summary.pricing.discount, currency) if summary.pricing.discount > 0 else None
            ),
            "tours": [
                {
                    "booking_reference": line.booking_reference,
                    "title": line.tour_title,
                    "date": format_booking_date(line.date),
                    "time": line.time,
                    "adults": line.adults,
                    "children": line.children,
                    "infants": line.infants,
                    "booking_option": line.option_title,
                    "add_ons": line.add_on_titles or None,
                    "price": format_money(line.total_price, currency),
                }
                for line in summary.lines
            ],
            **self._pickup_context(summary),
        }
        return OutboundEmail(
            kind=NotificationKind.ADMIN_ALERT,
            to=self.settings.ADMIN_ALERT_EMAIL,
            subject=f"New booking {summary.order_reference} from {summary.customer.name}",
            template="admin_booking_alert",
            context=context,
        )

    async def _deliver(self, message: OutboundEmail, summary: BookingNotification) -> bool:
        try:
            await self.sender.send(message)
        except Exception as e:
            logger.error(
                "notification_failed",
                kind=message.kind.value,
                order_reference=summary.order_reference,
                payment_id=summary.payment_id,
                error=str(e),
            )
            record_notification(message.kind.value, sent=False)
            return False
        record_notification(message.kind.value, sent=True)
        logger.info(
            "notification_sent",
            kind=message.kind.value,
            order_reference=summary.order_reference,
        )
        return True

    async def send_customer_confirmation(self, summary: BookingNotification) -> bool:
        try:
            message = self.customer_confirmation(summary)
        except Exception as e:
            logger.error("notification_build_failed", kind="customer_confirmation", error=str(e))
            record_notification(NotificationKind.CUSTOMER_CONFIRMATION.value, sent=False)
            return False
        return await self._deliver(message, summary)

    async def send_admin_alert(self, summary: BookingNotification) -> bool:
        try:
            message = self.admin_alert(summary)
        except Exception as e:
            logger.error("notification_build_failed", kind="admin_alert", error=str(e))
            record_notification(NotificationKind.ADMIN_ALERT.value, sent=False)
            return False
        return await self._deliver(message, summary)

    async def dispatch(self, summary: BookingNotification) -> bool:
        """Customer confirmation plus internal alert. True when the customer one went out."""
        customer_sent = await self.send_customer_confirmation(summary)
        await self.send_admin_alert(summary)
        return customer_sent
