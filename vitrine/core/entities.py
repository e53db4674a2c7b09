from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Dict, Any

# ====================================================================
# ENTIDADES CORE
# Projeções locais dos recursos da API remota. O servidor é a fonte da verdade.
# ====================================================================

REFUND_REASONS = ("damaged", "wrong_item", "not_as_described", "changed_mind", "other")
REFUND_STATUSES = ("pending", "approved", "rejected", "processed")
ADMIN_REFUND_STATUSES = ("approved", "rejected", "processed")
USER_ROLES = ("user", "admin")
DISCOUNT_TYPES = ("percentage", "fixed")


@dataclass
class User:
    """Usuário autenticado (ou listado no painel administrativo)."""
    id: str
    email: str
    name: str
    role: str = "user"
    created_at: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class Product:
    """Produto do catálogo. Imutável do ponto de vista do cliente."""
    id: str
    name: str
    price: Decimal
    category: str = ""
    description: Optional[str] = None
    images: List[str] = field(default_factory=list)
    image: Optional[str] = None
    stock: int = 0
    is_active: bool = True
    created_at: Optional[str] = None

    @property
    def primary_image(self) -> Optional[str]:
        if self.images:
            return self.images[0]
        return self.image

    @property
    def in_stock(self) -> bool:
        return self.stock > 0


@dataclass
class CartItem:
    """Item do carrinho: produto + quantidade (sempre >= 1)."""
    product: Product
    quantity: int = 1

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def subtotal(self) -> Decimal:
        """Calcula o subtotal do item."""
        return self.product.price * self.quantity


@dataclass
class WishlistItem:
    """Produto salvo na lista de desejos (sem quantidade)."""
    product: Product

    @property
    def product_id(self) -> str:
        return self.product.id


@dataclass
class OrderItem:
    """Snapshot de um item no formato de criação de pedido."""
    product: str
    name: str
    qty: int
    price: Decimal
    image: str

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.qty


@dataclass
class ShippingAddress:
    """Endereço de entrega enviado junto com o pedido."""
    address: str
    city: str
    postal_code: str
    country: str


@dataclass
class SavedAddress:
    """Endereço salvo na conta do usuário."""
    id: str
    label: str
    address: str
    city: str
    postal_code: str
    country: str
    is_default: bool = False
    created_at: Optional[str] = None

    def to_shipping_address(self) -> ShippingAddress:
        return ShippingAddress(
            address=self.address,
            city=self.city,
            postal_code=self.postal_code,
            country=self.country,
        )


@dataclass
class SavedPaymentMethod:
    """Cartão salvo (referência a um PaymentMethod do Stripe)."""
    id: str
    stripe_payment_method_id: str
    last4: str
    brand: str
    expiry_month: int
    expiry_year: int
    is_default: bool = False
    created_at: Optional[str] = None


@dataclass
class PaymentResult:
    """Resultado do provedor de pagamento reportado ao endpoint 'marcar como pago'."""
    id: str
    status: str
    update_time: str
    email_address: str


@dataclass
class Order:
    """Projeção somente-leitura de um pedido criado no servidor."""
    id: str
    order_items: List[OrderItem]
    shipping_address: Optional[ShippingAddress]
    payment_method: str
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal
    user: Any = None
    is_paid: bool = False
    paid_at: Optional[str] = None
    is_delivered: bool = False
    delivered_at: Optional[str] = None
    payment_result: Optional[PaymentResult] = None
    status: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def items_price(self) -> Decimal:
        return sum((item.subtotal for item in self.order_items), Decimal('0'))

    @property
    def order_number(self) -> str:
        """Número curto exibido ao cliente (últimos 8 caracteres do ID)."""
        return self.id[-8:].upper()


@dataclass
class Coupon:
    """Cupom de desconto (validado sempre no servidor)."""
    id: str
    code: str
    discount_type: str
    discount_value: Decimal
    min_purchase: Decimal = Decimal('0')
    max_uses: int = 0
    used_count: int = 0
    is_active: bool = True
    expires_at: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class CouponValidation:
    """Último resultado de validação de cupom retornado pelo servidor."""
    valid: bool
    coupon: Optional[Coupon] = None
    discount_amount: Optional[Decimal] = None
    message: Optional[str] = None


@dataclass
class Review:
    id: str
    product: str
    rating: int
    comment: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class ProductReviews:
    reviews: List[Review] = field(default_factory=list)
    average_rating: float = 0.0
    total_reviews: int = 0


@dataclass
class ReviewEligibility:
    can_review: bool = False
    has_purchased: bool = False
    has_reviewed: bool = False


@dataclass
class RefundItem:
    product: str
    qty: int
    refund_amount: Optional[Decimal] = None


@dataclass
class RefundRequest:
    """Pedido de reembolso e seu status administrativo."""
    id: str
    order: Any
    reason: str
    status: str
    total_refund_amount: Decimal = Decimal('0')
    user: Any = None
    description: Optional[str] = None
    items: List[RefundItem] = field(default_factory=list)
    admin_notes: Optional[str] = None
    processed_at: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class ProductQuery:
    """Filtros da listagem de produtos (busca, categorias, ordenação, cursor)."""
    search: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    sort: Optional[str] = None
    limit: Optional[int] = None
    cursor: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.search:
            params['search'] = self.search
        if self.categories:
            params['category'] = list(self.categories)
        if self.sort:
            params['sort'] = self.sort
        if self.limit:
            params['limit'] = self.limit
        if self.cursor:
            params['cursor'] = self.cursor
        return params


@dataclass
class ProductPage:
    """Uma página da listagem paginada por cursor."""
    items: List[Product]
    next_cursor: Optional[str] = None
    has_more: bool = False
    limit: Optional[int] = None


@dataclass
class PricingSummary:
    """Totais exibidos no checkout (recalculados e validados pelo servidor)."""
    subtotal: Decimal
    discount: Decimal
    taxable: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    @property
    def free_shipping(self) -> bool:
        return self.shipping == 0


@dataclass
class PaymentConfirmation:
    """Resposta do provedor de pagamento para um client secret."""
    succeeded: bool
    payment_intent_id: Optional[str] = None
    status: Optional[str] = None
    error_message: Optional[str] = None
