from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from sanatan_store.domain.checkout import CartLine, OrderPayload
from sanatan_store.domain.payments import CashOnDelivery, OnlinePayment


# --- Auth ---

class RequestOTPRequest(BaseModel):
    phone: str


class VerifyOTPRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str
    otp: str
    full_name: Optional[str] = Field(default=None, alias="fullName", max_length=200)


# --- Checkout ---

class CartItemIn(BaseModel):
    id: Union[str, int]
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None

    def to_line(self) -> CartLine:
        return CartLine(
            product_id=str(self.id),
            name=self.name,
            unit_price=self.price,
            quantity=self.quantity,
            image_ref=self.image,
        )


class QuoteRequest(BaseModel):
    items: List[CartItemIn]
    pincode: str = ""


class OrderDataIn(BaseModel):
    user_id: str
    phone: str
    email: Optional[str] = None
    shipping_address: str = ""
    pincode: str
    items: List[CartItemIn]
    total_amount: Decimal

    def to_payload(self) -> OrderPayload:
        return OrderPayload(
            user_id=self.user_id,
            phone=self.phone.strip(),
            email=(self.email or "").strip() or None,
            shipping_address=self.shipping_address,
            pincode=self.pincode.strip(),
            items=[item.to_line() for item in self.items],
            total_amount=self.total_amount,
        )


class GatewayOrderRequest(BaseModel):
    order_data: OrderDataIn
    receipt: Optional[str] = None


class OnlinePaymentIn(BaseModel):
    method: Literal["online"]
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str

    def to_domain(self, idempotency_key: Optional[str] = None) -> OnlinePayment:
        return OnlinePayment(self.razorpay_order_id, self.razorpay_payment_id, self.razorpay_signature)


class CashOnDeliveryIn(BaseModel):
    method: Literal["cod"]

    def to_domain(self, idempotency_key: Optional[str] = None) -> CashOnDelivery:
        return CashOnDelivery(client_key=idempotency_key)


PaymentIn = Annotated[Union[OnlinePaymentIn, CashOnDeliveryIn], Field(discriminator="method")]


class CompleteCheckoutRequest(BaseModel):
    order_data: OrderDataIn
    payment: PaymentIn


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = ""
    razorpay_payment_id: str = ""
    razorpay_signature: str = ""
    order_data: OrderDataIn


# --- Admin ---

class ManageRoleRequest(BaseModel):
    target_user_id: str
    role: str
    action: str


class OrderStatusRequest(BaseModel):
    status: str
