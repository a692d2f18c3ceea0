from datetime import timedelta

import pytest
from sqlalchemy import select, update

from app.core.errors import (
    AlreadyPaid,
    InvalidSessionState,
    InvalidSignature,
    NotSessionOwner,
    OrderMismatch,
    SessionExpired,
    SlotNotSelected,
    SlotUnavailable,
)
from app.models.booking_record import BookingRecord
from app.models.booking_session import BookingSession, SessionStatus
from app.models.slot import Slot
from app.services.booking_service import start_session
from app.services.payment_service import create_order, run_post_payment_effects
from tests.conftest import (
    RecordingNotifier,
    RecordingScheduler,
    book_session,
    create_user,
    identity_for,
    order_session,
    verify_order,
)


@pytest.mark.asyncio
async def test_create_order_uses_fixed_fee(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)

    assert order.order_id == "order_1"
    assert order.amount == 4900
    assert order.currency == "INR"
    assert order.key_id == "rzp_test_key"
    assert gateway.orders == [("order_1", 4900, "INR", f"receipt_{bs.id}")]

    async with session_maker() as session:
        stored = await session.get(BookingSession, bs.id)
    assert stored.status == SessionStatus.PAYMENT_PENDING
    assert stored.razorpay_order_id == "order_1"
    assert stored.razorpay_order_created_by == student.id
    assert stored.razorpay_order_status == "created"


@pytest.mark.asyncio
async def test_create_order_can_be_repeated_before_payment(session_maker, gateway, student, counselor, future_day):
    bs, _ = await order_session(session_maker, gateway, student, counselor, future_day)
    async with session_maker() as session:
        again = await create_order(session, identity_for(student), bs.id, gateway)
        await session.commit()
    assert again.order_id == "order_2"


@pytest.mark.asyncio
async def test_create_order_preconditions(session_maker, gateway, student, counselor, future_day):
    async with session_maker() as session:
        fresh = await start_session(session, identity_for(student), ["sad"])
        await session.commit()
    async with session_maker() as session:
        with pytest.raises(SlotNotSelected):
            await create_order(session, identity_for(student), fresh.id, gateway)

    bs = await book_session(session_maker, student, counselor, future_day)
    async with session_maker() as session:
        with pytest.raises(SessionExpired):
            await create_order(
                session,
                identity_for(student),
                bs.id,
                gateway,
                now=bs.session_timestamp + timedelta(seconds=1),
            )
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_create_order_refuses_released_slot(session_maker, gateway, student, counselor, future_day):
    bs = await book_session(session_maker, student, counselor, future_day)
    async with session_maker() as session:
        await session.execute(
            update(Slot).where(Slot.id == bs.slot_id).values(is_booked=False, booked_by_session_id=None)
        )
        await session.commit()
    async with session_maker() as session:
        with pytest.raises(SlotUnavailable):
            await create_order(session, identity_for(student), bs.id, gateway)


@pytest.mark.asyncio
async def test_verify_marks_paid_and_writes_record(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    result = await verify_order(session_maker, gateway, student, bs.id, order.order_id)

    assert result.success
    assert not result.already_paid
    assert result.counselor_id == counselor.id
    async with session_maker() as session:
        stored = await session.get(BookingSession, bs.id)
        record = (
            await session.execute(select(BookingRecord).where(BookingRecord.session_id == bs.id))
        ).scalar_one()
    assert stored.status == SessionStatus.PAID
    assert stored.razorpay_payment_id == "pay_1"
    assert stored.razorpay_order_status == "paid"
    assert stored.payment_verified_at is not None
    assert record.status == "upcoming"
    assert record.counselor_name == "calm_counselor"
    assert record.meeting_link == stored.meeting_link


@pytest.mark.asyncio
async def test_verify_is_idempotent(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    first = await verify_order(session_maker, gateway, student, bs.id, order.order_id)
    second = await verify_order(session_maker, gateway, student, bs.id, order.order_id, payment_id="pay_2")

    assert not first.already_paid
    assert second.already_paid
    async with session_maker() as session:
        stored = await session.get(BookingSession, bs.id)
        records = (
            await session.execute(select(BookingRecord).where(BookingRecord.session_id == bs.id))
        ).scalars().all()
    assert stored.razorpay_payment_id == "pay_1"
    assert len(records) == 1

    async with session_maker() as session:
        with pytest.raises(AlreadyPaid):
            await create_order(session, identity_for(student), bs.id, gateway)


@pytest.mark.asyncio
async def test_tampered_signature_keeps_session_pending(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    with pytest.raises(InvalidSignature):
        await verify_order(session_maker, gateway, student, bs.id, order.order_id, signature="deadbeef")

    forged = gateway.sign(order.order_id, "pay_other")
    with pytest.raises(InvalidSignature):
        await verify_order(session_maker, gateway, student, bs.id, order.order_id, payment_id="pay_1", signature=forged)

    async with session_maker() as session:
        stored = await session.get(BookingSession, bs.id)
    assert stored.status == SessionStatus.PAYMENT_PENDING
    assert stored.razorpay_payment_id is None


@pytest.mark.asyncio
async def test_non_ascii_signature_is_rejected(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    with pytest.raises(InvalidSignature):
        await verify_order(session_maker, gateway, student, bs.id, order.order_id, signature="\u00e9" * 64)

    async with session_maker() as session:
        stored = await session.get(BookingSession, bs.id)
    assert stored.status == SessionStatus.PAYMENT_PENDING


@pytest.mark.asyncio
async def test_verify_rejects_foreign_order(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    with pytest.raises(OrderMismatch):
        await verify_order(session_maker, gateway, student, bs.id, "order_someone_else")


@pytest.mark.asyncio
async def test_verify_requires_pending_order(session_maker, gateway, student, counselor, future_day):
    bs = await book_session(session_maker, student, counselor, future_day)
    with pytest.raises(InvalidSessionState):
        await verify_order(session_maker, gateway, student, bs.id, "order_1")


@pytest.mark.asyncio
async def test_post_payment_effects_notify_and_arm_reminder(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    result = await verify_order(session_maker, gateway, student, bs.id, order.order_id)
    notifier = RecordingNotifier()
    scheduler = RecordingScheduler()

    await run_post_payment_effects(session_maker, result, notifier, scheduler)

    assert [(uid, title) for uid, title, _ in notifier.sent] == [
        (student.id, "Session confirmed ✅"),
        (counselor.id, "New session booked 📅"),
    ]
    assert scheduler.calls == [(bs.session_timestamp - timedelta(minutes=5), {"session_id": bs.id})]

    # A replayed verification carries already_paid and triggers nothing
    replay = await verify_order(session_maker, gateway, student, bs.id, order.order_id)
    await run_post_payment_effects(session_maker, replay, notifier, scheduler)
    assert len(notifier.sent) == 2
    assert len(scheduler.calls) == 1


@pytest.mark.asyncio
async def test_notification_failure_does_not_block_reminder(session_maker, gateway, student, counselor, future_day):
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    result = await verify_order(session_maker, gateway, student, bs.id, order.order_id)
    notifier = RecordingNotifier(fail_for={counselor.id})
    scheduler = RecordingScheduler()

    await run_post_payment_effects(session_maker, result, notifier, scheduler)

    assert [uid for uid, _, _ in notifier.sent] == [student.id]
    assert len(scheduler.calls) == 1


@pytest.mark.asyncio
async def test_other_student_cannot_pay(session_maker, gateway, student, counselor, future_day):
    other = await create_user(session_maker, "other@example.com", username="other")
    bs, order = await order_session(session_maker, gateway, student, counselor, future_day)
    with pytest.raises(NotSessionOwner):
        await verify_order(session_maker, gateway, other, bs.id, order.order_id)
