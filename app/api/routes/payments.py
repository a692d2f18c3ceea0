from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import (
    get_identity,
    get_notifier,
    get_payment_gateway,
    get_session,
    get_session_maker,
    get_task_scheduler,
)
from app.api.schemas.booking import (
    CreateOrderRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from app.models.user import Identity
from app.services.notification_service import Notifier
from app.services.payment_gateway import PaymentGateway
from app.services.payment_service import (
    CreatedOrder,
    create_order,
    run_post_payment_effects,
    verify_payment,
)
from app.services.reminder_service import TaskScheduler

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/order", response_model=CreatedOrder)
async def order(
    body: CreateOrderRequest,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CreatedOrder:
    return await create_order(session, identity, body.session_id, gateway)


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify(
    body: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    identity: Identity = Depends(get_identity),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> VerifyPaymentResponse:
    """Confirm a checkout. Notifications and the reminder run after the response is sent."""
    result = await verify_payment(
        session,
        identity,
        body.session_id,
        body.razorpay_order_id,
        body.razorpay_payment_id,
        body.razorpay_signature,
        gateway,
    )
    if not result.already_paid:
        # Post-payment effects read the paid state through their own sessions
        await session.commit()
        background_tasks.add_task(run_post_payment_effects, session_maker, result, notifier, scheduler)
    return VerifyPaymentResponse(success=result.success, already_paid=result.already_paid)
