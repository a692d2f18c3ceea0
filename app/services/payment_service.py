import logging
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import (
    AlreadyPaid,
    InvalidSessionState,
    InvalidSignature,
    OrderMismatch,
    SessionExpired,
    SlotNotSelected,
    SlotUnavailable,
)
from app.models.booking_session import CONFIRMED_STATUSES, BookingSession, SessionStatus
from app.models.user import Identity
from app.services.booking_record_service import upsert_record
from app.services.booking_service import get_owned_session, transition_status
from app.services.notification_service import Notifier, dispatch_notifications
from app.services.payment_gateway import PaymentGateway
from app.services.reminder_service import TaskScheduler, arm_session_reminder
from app.services.session_rules import utc_naive_now
from app.services.slot_service import get_slot

logger = logging.getLogger(__name__)


class CreatedOrder(BaseModel):
    order_id: str
    amount: int
    currency: str
    key_id: str


class PaymentVerification(BaseModel):
    session_id: int
    success: bool = True
    already_paid: bool = False
    student_id: int
    counselor_id: int | None = None


async def create_order(
    session: AsyncSession,
    identity: Identity,
    session_id: int,
    gateway: PaymentGateway,
    now: datetime | None = None,
) -> CreatedOrder:
    now = now or utc_naive_now()
    bs = await get_owned_session(session, identity, session_id)
    if bs.status in CONFIRMED_STATUSES:
        raise AlreadyPaid()
    if bs.status not in (SessionStatus.SLOT_SELECTED, SessionStatus.PAYMENT_PENDING) or bs.slot_id is None:
        raise SlotNotSelected()
    if bs.session_timestamp is None or bs.session_timestamp <= now:
        raise SessionExpired()
    slot = await get_slot(session, bs.slot_id)
    if slot is None or slot.booked_by_session_id != bs.id:
        # The reservation made at slot selection is gone; never charge for it
        logger.warning("Session %s lost its slot %s before payment", bs.id, bs.slot_id)
        raise SlotUnavailable()

    amount = settings.session_fee_amount
    currency = settings.session_fee_currency
    order_id = await gateway.create_order(amount, currency, f"receipt_{bs.id}")

    await transition_status(
        session,
        bs,
        {SessionStatus.SLOT_SELECTED, SessionStatus.PAYMENT_PENDING},
        status=SessionStatus.PAYMENT_PENDING,
        razorpay_order_id=order_id,
        razorpay_order_amount=amount,
        razorpay_order_created_by=identity.user_id,
        razorpay_order_status="created",
    )
    logger.info("Created order %s for session %s (%d %s)", order_id, bs.id, amount, currency)
    return CreatedOrder(order_id=order_id, amount=amount, currency=currency, key_id=gateway.key_id)


def _verification(bs: BookingSession, already_paid: bool) -> PaymentVerification:
    return PaymentVerification(
        session_id=bs.id,
        already_paid=already_paid,
        student_id=bs.student_id,
        counselor_id=bs.counselor_id,
    )


async def verify_payment(
    session: AsyncSession,
    identity: Identity,
    session_id: int,
    order_id: str,
    payment_id: str,
    signature: str,
    gateway: PaymentGateway,
    now: datetime | None = None,
) -> PaymentVerification:
    """Confirm a client-reported payment against the server-side signature.

    A session that is already paid returns ``already_paid=True`` and changes
    nothing, so callers must only run post-payment effects when it is False.
    """
    bs = await get_owned_session(session, identity, session_id)
    if bs.status in CONFIRMED_STATUSES:
        return _verification(bs, already_paid=True)
    if bs.status != SessionStatus.PAYMENT_PENDING:
        raise InvalidSessionState("Session is not awaiting payment")

    if bs.razorpay_order_id != order_id or bs.razorpay_order_created_by != identity.user_id:
        logger.warning(
            "Order mismatch on session %s: stored=%s/%s supplied=%s/%s",
            bs.id,
            bs.razorpay_order_id,
            bs.razorpay_order_created_by,
            order_id,
            identity.user_id,
        )
        raise OrderMismatch()
    if not gateway.verify_signature(order_id, payment_id, signature):
        logger.warning(
            "Invalid payment signature on session %s order=%s payment=%s user=%s",
            bs.id,
            order_id,
            payment_id,
            identity.user_id,
        )
        raise InvalidSignature()

    try:
        await transition_status(
            session,
            bs,
            {SessionStatus.PAYMENT_PENDING},
            status=SessionStatus.PAID,
            razorpay_payment_id=payment_id,
            razorpay_order_status="paid",
            payment_verified_at=now or utc_naive_now(),
        )
    except InvalidSessionState:
        # A concurrent verification got there first
        await session.refresh(bs)
        if bs.status in CONFIRMED_STATUSES:
            return _verification(bs, already_paid=True)
        raise
    await upsert_record(session, bs)
    logger.info("Payment %s verified for session %s", payment_id, bs.id)
    return _verification(bs, already_paid=False)


async def run_post_payment_effects(
    session_maker: async_sessionmaker[AsyncSession],
    verification: PaymentVerification,
    notifier: Notifier,
    scheduler: TaskScheduler,
) -> None:
    """Notifications and reminder for a freshly paid session (after commit).

    Never raises: a failure here must not undo or fail a confirmed payment.
    """
    if verification.already_paid:
        return
    messages = [
        (verification.student_id, "Session confirmed ✅", "Your payment was received and your session is booked."),
    ]
    if verification.counselor_id is not None:
        messages.append(
            (verification.counselor_id, "New session booked 📅", "A student has booked a paid session with you.")
        )
    await dispatch_notifications(notifier, messages)
    try:
        await arm_session_reminder(session_maker, verification.session_id, scheduler)
    except Exception as e:
        logger.exception("Arming reminder for session %s failed: %s", verification.session_id, e)
