import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header

from sanatan_store.domain.shipping import shipping_zone_for
from sanatan_store.interfaces.dependencies import current_user_id, get_container
from sanatan_store.interfaces.schemas import (
    CompleteCheckoutRequest,
    GatewayOrderRequest,
    OnlinePaymentIn,
    QuoteRequest,
    VerifyPaymentRequest,
)

router = APIRouter(tags=["Checkout"])
logger = logging.getLogger(__name__)


def _notifier(container, background_tasks: BackgroundTasks):
    """Notifications run after the response is sent."""
    def notify(order_id: str):
        background_tasks.add_task(container.notifier.dispatch, order_id)
    return notify


@router.get("/shipping/quote")
def shipping_quote(pincode: str = ""):
    return shipping_zone_for(pincode).to_dict()


@router.post("/checkout/quote")
def checkout_quote(payload: QuoteRequest, container=Depends(get_container)):
    lines = [item.to_line() for item in payload.items]
    return container.checkout.quote(lines, payload.pincode).to_dict()


@router.post("/checkout/gateway-order")
def create_gateway_order(payload: GatewayOrderRequest, container=Depends(get_container),
                         user_id: str = Depends(current_user_id)):
    logger.info("Creating gateway order for user %s", user_id)
    return container.checkout.create_gateway_order(user_id, payload.order_data.to_payload(), payload.receipt)


@router.post("/checkout/complete")
def complete_checkout(payload: CompleteCheckoutRequest, background_tasks: BackgroundTasks,
                      container=Depends(get_container), user_id: str = Depends(current_user_id),
                      idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key")):
    payment = payload.payment.to_domain((idempotency_key or "").strip() or None)
    result = container.checkout.complete_checkout(
        user_id, payload.order_data.to_payload(), payment, _notifier(container, background_tasks)
    )
    return result.to_dict()


@router.post("/payments/verify")
def verify_payment(payload: VerifyPaymentRequest, background_tasks: BackgroundTasks,
                   container=Depends(get_container), user_id: str = Depends(current_user_id)):
    logger.info("Verifying payment: order=%s payment=%s", payload.razorpay_order_id, payload.razorpay_payment_id)
    payment = OnlinePaymentIn(
        method="online",
        razorpay_order_id=payload.razorpay_order_id,
        razorpay_payment_id=payload.razorpay_payment_id,
        razorpay_signature=payload.razorpay_signature,
    ).to_domain()
    result = container.checkout.complete_checkout(
        user_id, payload.order_data.to_payload(), payment, _notifier(container, background_tasks)
    )
    return result.to_dict()


@router.get("/orders")
def my_orders(container=Depends(get_container), user_id: str = Depends(current_user_id)):
    return {"orders": [order.to_dict() for order in container.checkout.list_orders(user_id)]}
