# vitrine/core/checkout.py
"""
Orquestração do checkout: ENTREGA -> PAGAMENTO -> CONFIRMAÇÃO.

O cliente calcula os totais apenas para exibição; o pedido criado no servidor é a
fonte da verdade. Qualquer falha deixa a etapa atual inalterada.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from vitrine import settings
from vitrine.core.entities import (
    Coupon, Order, PaymentResult, PricingSummary, SavedAddress, ShippingAddress,
)
from vitrine.core.exceptions import (
    EmptyCartError, InvalidAddressError, InvalidTransitionError, PaymentFailedError,
)
from vitrine.core.ports import ICartStore, INavigator, IPaymentProvider
from vitrine.core.pricing import ZERO, compute_pricing
from vitrine.core.schemas import ShippingAddressSchema, validate

logger = logging.getLogger(__name__)


class CheckoutStep(Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class CheckoutOrchestrator:
    """
    Conduz uma compra do carrinho até o pagamento confirmado.

    Dependências:
    - cart: store do carrinho (itens e total)
    - orders_use_case: criação do pedido, intent de pagamento e "marcar como pago"
    - coupons_use_case: validação de cupons no servidor
    - payment_provider: widget/API que confirma o pagamento com o client secret
    - navigator: redirecionamento quando o carrinho está vazio
    """

    def __init__(self, cart: ICartStore, orders_use_case, coupons_use_case, payment_provider: IPaymentProvider,
                 navigator: INavigator, user_email: Optional[str] = None):
        self.cart = cart
        self.orders_use_case = orders_use_case
        self.coupons_use_case = coupons_use_case
        self.payment_provider = payment_provider
        self.navigator = navigator
        self.user_email = user_email

        self.step = CheckoutStep.SHIPPING
        self.shipping_address: Optional[ShippingAddress] = None
        self.coupon: Optional[Coupon] = None
        self.discount: Decimal = ZERO
        self.order: Optional[Order] = None
        self.payment_result: Optional[PaymentResult] = None
        # Pagamento já confirmado pelo provedor, aguardando o "marcar como pago".
        self._confirmed_payment: Optional[PaymentResult] = None

    # --- Guarda de entrada ---

    def begin(self) -> "CheckoutOrchestrator":
        """Carrinho vazio não entra no checkout: redireciona para o carrinho."""
        if self.cart.is_empty:
            self.navigator.redirect(settings.CART_URL)
            raise EmptyCartError()
        return self

    # --- Etapa de entrega ---

    def select_address(self, saved_address: SavedAddress) -> ShippingAddress:
        self._require_step(CheckoutStep.SHIPPING, "O endereço só pode ser alterado na etapa de entrega.")
        if saved_address is None:
            raise InvalidAddressError()
        self.shipping_address = saved_address.to_shipping_address()
        return self.shipping_address

    def enter_address(self, data: Dict[str, Any]) -> ShippingAddress:
        self._require_step(CheckoutStep.SHIPPING, "O endereço só pode ser alterado na etapa de entrega.")
        dados = validate(ShippingAddressSchema, data)
        self.shipping_address = ShippingAddress(
            address=dados.address,
            city=dados.city,
            postal_code=dados.postal_code,
            country=dados.country,
        )
        return self.shipping_address

    def apply_coupon(self, code: str) -> PricingSummary:
        """Valida o cupom no servidor com o total atual; em caso de erro o estado não muda."""
        self._require_step(CheckoutStep.SHIPPING, "Cupons só podem ser aplicados na etapa de entrega.")
        resultado = self.coupons_use_case.validate_coupon(code, self.cart.total)
        self.coupon = resultado.coupon
        self.discount = resultado.discount_amount or ZERO
        return self.pricing

    def remove_coupon(self) -> PricingSummary:
        self._require_step(CheckoutStep.SHIPPING, "Cupons só podem ser removidos na etapa de entrega.")
        self.coupon = None
        self.discount = ZERO
        return self.pricing

    @property
    def pricing(self) -> PricingSummary:
        return compute_pricing(self.cart.total, self.discount)

    def submit_shipping(self, payment_method: str = "stripe") -> Order:
        """Cria o pedido no servidor e avança para o pagamento."""
        self._require_step(CheckoutStep.SHIPPING, "O pedido já foi criado.")
        if self.cart.is_empty:
            raise EmptyCartError()
        if self.shipping_address is None:
            raise InvalidAddressError()

        pricing = self.pricing
        order = self.orders_use_case.create_order(
            order_items=self.cart.get_order_items(),
            shipping_address=self.shipping_address,
            payment_method=payment_method,
            tax_price=pricing.tax,
            shipping_price=pricing.shipping,
            total_price=pricing.total,
        )
        if order.total_price != pricing.total:
            logger.warning(
                "Total do pedido %s difere da estimativa do cliente (servidor=%s, cliente=%s); usando o do servidor.",
                order.id, order.total_price, pricing.total,
            )

        self.order = order
        self.step = CheckoutStep.PAYMENT
        return order

    # --- Etapa de pagamento ---

    def pay(self, payment_details: Optional[Dict[str, Any]] = None) -> Order:
        """
        1. Cria o PaymentIntent no servidor (client secret)
        2. Confirma com o provedor
        3. Reporta o resultado ao servidor ("marcar como pago")
        4. Limpa o carrinho

        Se o provedor já confirmou e só o passo 3 falhou, uma nova chamada apenas
        repete o passo 3, sem criar outro intent nem cobrar de novo.
        """
        self._require_step(CheckoutStep.PAYMENT, "O pagamento só pode ser feito depois de criar o pedido.")
        if self._confirmed_payment is None:
            self._confirmed_payment = self._confirm_with_provider(payment_details or {})
        payment_result = self._confirmed_payment

        order = self.orders_use_case.mark_paid(self.order.id, payment_result)
        self._confirmed_payment = None

        self.order = order or self.order
        self.payment_result = payment_result
        self.cart.clear_cart()
        self.step = CheckoutStep.CONFIRMATION
        logger.info("Pedido %s pago (intent %s).", self.order.id, payment_result.id)
        return self.order

    def _confirm_with_provider(self, payment_details: Dict[str, Any]) -> PaymentResult:
        client_secret = self.orders_use_case.create_payment_intent(self.order.id)
        confirmation = self.payment_provider.confirm_payment(client_secret, payment_details)
        if not confirmation.succeeded:
            raise PaymentFailedError(confirmation.error_message or "O pagamento não foi confirmado.")

        return PaymentResult(
            id=confirmation.payment_intent_id or "",
            status=confirmation.status or "succeeded",
            update_time=datetime.now(timezone.utc).isoformat(),
            email_address=self.user_email or "",
        )

    def _require_step(self, step: CheckoutStep, message: str):
        if self.step is not step:
            raise InvalidTransitionError(message)
