# vitrine/core/pricing.py
"""
Cálculo de preços exibido no checkout.

Os valores aqui são apenas uma estimativa para exibição: o servidor recalcula
imposto, frete e total na criação do pedido.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from vitrine import settings
from vitrine.core.entities import CartItem, Coupon, PricingSummary

CENTS = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value) -> Decimal:
    """Converte int/float/str para Decimal sem herdar o erro binário do float."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == '':
        return ZERO
    return Decimal(str(value))


def round_cents(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def cart_total(items: Iterable[CartItem]) -> Decimal:
    """Σ(preço × quantidade) sobre os itens do carrinho."""
    return sum((item.subtotal for item in items), ZERO)


def shipping_for(subtotal: Decimal) -> Decimal:
    """Frete grátis acima do limite; o limite é comparado ao total do carrinho, antes do desconto."""
    if to_decimal(subtotal) > settings.FREE_SHIPPING_THRESHOLD:
        return ZERO
    return settings.SHIPPING_COST


def compute_pricing(subtotal, discount=ZERO) -> PricingSummary:
    """
    taxable = max(0, subtotal - discount)
    tax = taxable * 8%, arredondado em centavos
    shipping = 0 se subtotal > 100, senão 10
    total = taxable + tax + shipping, arredondado em centavos
    """
    subtotal = to_decimal(subtotal)
    discount = to_decimal(discount)

    taxable = max(ZERO, subtotal - discount)
    tax = round_cents(taxable * settings.TAX_RATE)
    shipping = shipping_for(subtotal)
    total = round_cents(taxable + tax + shipping)

    return PricingSummary(
        subtotal=subtotal,
        discount=discount,
        taxable=taxable,
        tax=tax,
        shipping=shipping,
        total=total,
    )


def compute_coupon_discount(coupon: Optional[Coupon], subtotal) -> Decimal:
    """
    Estimativa local do desconto de um cupom. Usada apenas quando o servidor
    não informa o valor do desconto na validação.
    """
    if coupon is None or not coupon.is_active:
        return ZERO

    subtotal = to_decimal(subtotal)
    if subtotal < to_decimal(coupon.min_purchase):
        return ZERO

    value = to_decimal(coupon.discount_value)
    if coupon.discount_type == 'percentage':
        return round_cents(subtotal * value / Decimal('100'))
    return min(value, subtotal)
