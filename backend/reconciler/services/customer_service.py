"""
Customer account resolution for reconciliation.

Customers are found by email; a guest account is created when none
exists. The unique email index arbitrates concurrent creators: the loser
of the insert race re-reads the account the winner created.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.core.exceptions import CustomerResolutionError
from reconciler.core.logging import get_logger
from reconciler.models.customer import Customer

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_customer_by_email(db: AsyncSession, email: str) -> Optional[Customer]:
    result = await db.execute(select(Customer).where(Customer.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def find_or_create_customer(
    db: AsyncSession,
    email: str,
    first_name: str,
    last_name: str,
    phone: str = "",
) -> Customer:
    customer = await get_customer_by_email(db, email)
    if customer:
        return customer

    customer = Customer(
        email=normalize_email(email),
        first_name=first_name,
        last_name=last_name,
        phone=phone or None,
        is_guest=True,
    )
    db.add(customer)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("customer_create_conflict", email=normalize_email(email))
        customer = await get_customer_by_email(db, email)
        if customer is None:
            raise CustomerResolutionError(f"could not find or create customer {email}")
        return customer

    logger.info("guest_customer_created", customer_id=customer.id, email=customer.email)
    return customer
