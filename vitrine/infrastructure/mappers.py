"""
Mapeadores (Mappers) para converter entre:
1. JSON da API remota (camelCase, `_id`/`id`) e do estado persistido
2. Entidades de Domínio (vitrine.core.entities)
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from vitrine.core.entities import (
    User, Product, CartItem, WishlistItem, OrderItem, ShippingAddress, SavedAddress,
    SavedPaymentMethod, PaymentResult, Order, Coupon, CouponValidation, Review,
    ProductReviews, ReviewEligibility, RefundItem, RefundRequest, ProductPage,
)
from vitrine.core.pricing import to_decimal

logger = logging.getLogger(__name__)


def _id_of(data: Dict[str, Any]) -> str:
    """A API usa `_id` (Mongo) e às vezes o alias `id`."""
    return str(data.get('_id') or data.get('id') or '')


def _money(value) -> Decimal:
    try:
        return to_decimal(value)
    except (ArithmeticError, ValueError):
        return Decimal('0')


def _int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _money_str(value) -> Optional[str]:
    return None if value is None else str(value)


class BaseMapper:

    @classmethod
    def to_entity_list(cls, items: Optional[List[Dict[str, Any]]]) -> list:
        return [cls.to_entity(item) for item in (items or []) if item]


# ====================================================================
# USUÁRIO
# ====================================================================

class UserMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[User]:
        if not data:
            return None
        return User(
            id=_id_of(data),
            email=data.get('email', ''),
            name=data.get('name', ''),
            role=data.get('role', 'user'),
            created_at=data.get('createdAt'),
        )


# ====================================================================
# CATÁLOGO
# ====================================================================

class ProductMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[Product]:
        if not data:
            return None
        return Product(
            id=_id_of(data),
            name=data.get('name') or '',
            price=_money(data.get('price')),
            category=data.get('category') or '',
            description=data.get('description'),
            images=list(data.get('images') or []),
            image=data.get('image'),
            stock=_int(data.get('stock')),
            is_active=data.get('isActive', True),
            created_at=data.get('createdAt'),
        )

    @staticmethod
    def to_dict(product: Product) -> Dict[str, Any]:
        """Formato usado tanto no snapshot local quanto nos formulários do admin."""
        return {
            '_id': product.id,
            'name': product.name,
            'description': product.description,
            'price': _money_str(product.price),
            'category': product.category,
            'images': list(product.images),
            'image': product.image,
            'stock': product.stock,
            'isActive': product.is_active,
            'createdAt': product.created_at,
        }


class ProductPageMapper:
    """
    A listagem chega em dois formatos:
    `data: [produtos]` com o cursor em `meta`, ou `data: {data: [...], pagination: {...}}`.
    """

    @staticmethod
    def to_entity(data: Any, meta: Optional[Dict[str, Any]] = None) -> ProductPage:
        meta = meta or {}
        if isinstance(data, dict):
            items = data.get('data') or data.get('products') or []
            pagination = data.get('pagination') or {}
        else:
            items = data or []
            pagination = {}

        next_cursor = pagination.get('nextCursor') or meta.get('nextCursor')
        has_more = pagination.get('hasMore', meta.get('hasMore', bool(next_cursor)))
        limit = pagination.get('limit') or meta.get('limit')

        return ProductPage(
            items=ProductMapper.to_entity_list(items),
            next_cursor=next_cursor,
            has_more=bool(has_more),
            limit=limit,
        )


class ReviewMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[Review]:
        if not data:
            return None
        user = data.get('user') or {}
        if not isinstance(user, dict):
            user = {'_id': user}
        return Review(
            id=_id_of(data),
            product=str(data.get('product') or ''),
            rating=_int(data.get('rating')),
            comment=data.get('comment') or '',
            user_id=_id_of(user) or None,
            user_name=user.get('name'),
            created_at=data.get('createdAt'),
        )

    @staticmethod
    def to_product_reviews(data: Optional[Dict[str, Any]]) -> ProductReviews:
        data = data or {}
        return ProductReviews(
            reviews=ReviewMapper.to_entity_list(data.get('reviews')),
            average_rating=float(data.get('averageRating') or 0),
            total_reviews=_int(data.get('totalReviews')),
        )

    @staticmethod
    def to_eligibility(data: Optional[Dict[str, Any]]) -> ReviewEligibility:
        data = data or {}
        return ReviewEligibility(
            can_review=bool(data.get('canReview')),
            has_purchased=bool(data.get('hasPurchased')),
            has_reviewed=bool(data.get('hasReviewed')),
        )


# ====================================================================
# PEDIDOS
# ====================================================================

class ShippingAddressMapper:

    @staticmethod
    def to_entity(data: Optional[Dict[str, Any]]) -> Optional[ShippingAddress]:
        if not data:
            return None
        return ShippingAddress(
            address=data.get('address', ''),
            city=data.get('city', ''),
            postal_code=data.get('postalCode', ''),
            country=data.get('country', ''),
        )

    @staticmethod
    def to_dict(address: ShippingAddress) -> Dict[str, Any]:
        return {
            'address': address.address,
            'city': address.city,
            'postalCode': address.postal_code,
            'country': address.country,
        }


class OrderItemMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> OrderItem:
        product = data.get('product') or ''
        if isinstance(product, dict):
            product = _id_of(product)
        return OrderItem(
            product=str(product),
            name=data.get('name') or '',
            qty=_int(data.get('qty')),
            price=_money(data.get('price')),
            image=data.get('image') or '',
        )

    @staticmethod
    def to_dict(item: OrderItem) -> Dict[str, Any]:
        return {
            'product': item.product,
            'name': item.name,
            'qty': item.qty,
            'price': float(item.price),
            'image': item.image,
        }


class PaymentResultMapper:

    @staticmethod
    def to_entity(data: Optional[Dict[str, Any]]) -> Optional[PaymentResult]:
        if not data:
            return None
        return PaymentResult(
            id=str(data.get('id') or ''),
            status=data.get('status') or '',
            update_time=data.get('update_time') or '',
            email_address=data.get('email_address') or '',
        )

    @staticmethod
    def to_dict(result: PaymentResult) -> Dict[str, Any]:
        return {
            'id': result.id,
            'status': result.status,
            'update_time': result.update_time,
            'email_address': result.email_address,
        }


class OrderMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[Order]:
        if not data:
            return None
        user = data.get('user')
        return Order(
            id=_id_of(data),
            order_items=OrderItemMapper.to_entity_list(data.get('orderItems')),
            shipping_address=ShippingAddressMapper.to_entity(data.get('shippingAddress')),
            payment_method=data.get('paymentMethod') or '',
            tax_price=_money(data.get('taxPrice')),
            shipping_price=_money(data.get('shippingPrice')),
            total_price=_money(data.get('totalPrice')),
            user=UserMapper.to_entity(user) if isinstance(user, dict) else user,
            is_paid=bool(data.get('isPaid')),
            paid_at=data.get('paidAt'),
            is_delivered=bool(data.get('isDelivered')),
            delivered_at=data.get('deliveredAt'),
            payment_result=PaymentResultMapper.to_entity(data.get('paymentResult')),
            status=data.get('status'),
            created_at=data.get('createdAt'),
        )

    @staticmethod
    def to_create_payload(order_items: List[OrderItem], shipping_address: ShippingAddress,
                          payment_method: str, tax_price: Decimal, shipping_price: Decimal,
                          total_price: Decimal) -> Dict[str, Any]:
        return {
            'orderItems': [OrderItemMapper.to_dict(item) for item in order_items],
            'shippingAddress': ShippingAddressMapper.to_dict(shipping_address),
            'paymentMethod': payment_method,
            'taxPrice': float(tax_price),
            'shippingPrice': float(shipping_price),
            'totalPrice': float(total_price),
        }


# ====================================================================
# CUPONS
# ====================================================================

class CouponMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[Coupon]:
        if not data:
            return None
        return Coupon(
            id=_id_of(data),
            code=data.get('code') or '',
            discount_type=data.get('discountType') or 'fixed',
            discount_value=_money(data.get('discountValue')),
            min_purchase=_money(data.get('minPurchase')),
            max_uses=_int(data.get('maxUses')),
            used_count=_int(data.get('usedCount')),
            is_active=data.get('isActive', True),
            expires_at=data.get('expiresAt'),
            created_at=data.get('createdAt'),
        )

    @staticmethod
    def to_validation(data: Optional[Dict[str, Any]]) -> CouponValidation:
        data = data or {}
        return CouponValidation(
            valid=bool(data.get('valid')),
            coupon=CouponMapper.to_entity(data.get('coupon')),
            discount_amount=None if data.get('discountAmount') is None else _money(data['discountAmount']),
            message=data.get('message'),
        )


# ====================================================================
# CONTA DO USUÁRIO
# ====================================================================

class SavedAddressMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[SavedAddress]:
        if not data:
            return None
        return SavedAddress(
            id=_id_of(data),
            label=data.get('label') or '',
            address=data.get('address') or '',
            city=data.get('city') or '',
            postal_code=data.get('postalCode') or '',
            country=data.get('country') or '',
            is_default=bool(data.get('isDefault')),
            created_at=data.get('createdAt'),
        )


class SavedPaymentMethodMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[SavedPaymentMethod]:
        if not data:
            return None
        return SavedPaymentMethod(
            id=_id_of(data),
            stripe_payment_method_id=data.get('stripePaymentMethodId') or '',
            last4=data.get('last4') or '',
            brand=data.get('brand') or '',
            expiry_month=_int(data.get('expiryMonth')),
            expiry_year=_int(data.get('expiryYear')),
            is_default=bool(data.get('isDefault')),
            created_at=data.get('createdAt'),
        )


# ====================================================================
# REEMBOLSOS
# ====================================================================

class RefundMapper(BaseMapper):

    @staticmethod
    def to_entity(data: Dict[str, Any]) -> Optional[RefundRequest]:
        if not data:
            return None
        order = data.get('order')
        user = data.get('user')
        return RefundRequest(
            id=_id_of(data),
            order=OrderMapper.to_entity(order) if isinstance(order, dict) else order,
            reason=data.get('reason') or 'other',
            status=data.get('status') or 'pending',
            total_refund_amount=_money(data.get('totalRefundAmount')),
            user=UserMapper.to_entity(user) if isinstance(user, dict) else user,
            description=data.get('description'),
            items=[
                RefundItem(
                    product=str(item.get('product') or ''),
                    qty=_int(item.get('qty')),
                    refund_amount=_money(item['refundAmount']) if item.get('refundAmount') is not None else None,
                )
                for item in (data.get('items') or [])
            ],
            admin_notes=data.get('adminNotes'),
            processed_at=data.get('processedAt'),
            created_at=data.get('createdAt'),
        )


# ====================================================================
# ESTADO PERSISTIDO (snapshot das stores)
# ====================================================================

class CartSnapshotMapper:
    """
    Snapshot do carrinho: {"items": [{...produto, "quantity": n}], "total": "..."}.
    O total gravado serve apenas para inspeção; na reidratação ele é recalculado.
    """

    @staticmethod
    def to_dict(items: List[CartItem], total: Decimal) -> Dict[str, Any]:
        return {
            'items': [
                dict(ProductMapper.to_dict(item.product), quantity=item.quantity)
                for item in items
            ],
            'total': _money_str(total),
        }

    @staticmethod
    def to_items(state: Optional[Dict[str, Any]]) -> List[CartItem]:
        """
        Reidrata o carrinho gravado. Entradas com valores inválidos são descartadas
        e entradas repetidas do mesmo produto são somadas em um único item.
        """
        items: Dict[str, CartItem] = {}
        for raw in (state or {}).get('items') or []:
            if not isinstance(raw, dict):
                continue
            try:
                quantity = int(raw.get('quantity', 1) or 0)
                product = ProductMapper.to_entity(raw) or Product(id='', name='', price=Decimal('0'))
            except (TypeError, ValueError, ArithmeticError):
                logger.warning("Item inválido no carrinho gravado descartado: %r", raw)
                continue
            if quantity < 1:
                continue

            existing_item = items.get(product.id)
            if existing_item:
                existing_item.product = product
                existing_item.quantity += quantity
            else:
                items[product.id] = CartItem(product=product, quantity=quantity)
        return list(items.values())


class WishlistSnapshotMapper:

    @staticmethod
    def to_dict(items: List[WishlistItem]) -> Dict[str, Any]:
        return {'items': [ProductMapper.to_dict(item.product) for item in items]}

    @staticmethod
    def to_items(state: Optional[Dict[str, Any]]) -> List[WishlistItem]:
        items: Dict[str, WishlistItem] = {}
        for raw in (state or {}).get('items') or []:
            if not isinstance(raw, dict) or not raw:
                continue
            try:
                product = ProductMapper.to_entity(raw)
            except (TypeError, ValueError, ArithmeticError):
                logger.warning("Item inválido na lista de desejos gravada descartado: %r", raw)
                continue
            items.setdefault(product.id, WishlistItem(product=product))
        return list(items.values())
