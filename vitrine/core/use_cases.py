# vitrine/core/use_cases.py
"""
Implementação dos Casos de Uso da aplicação.
Esta camada depende apenas das Entidades, Schemas e Portas (Interfaces) do Core.
Leituras passam pelo QueryCache; mutações invalidam as chaves afetadas.
"""
import logging
from decimal import Decimal
from typing import Iterator, List, Optional, Sequence

from vitrine.core.entities import (
    User, Product, ProductPage, ProductQuery, Order, PaymentResult, Coupon, CouponValidation,
    SavedAddress, SavedPaymentMethod, RefundRequest, Review, ProductReviews, ReviewEligibility,
    OrderItem, ShippingAddress, REFUND_REASONS, ADMIN_REFUND_STATUSES, USER_ROLES,
)
from vitrine.core.exceptions import (
    ApiError, AuthenticationError, BusinessRuleError, EmptyCartError, InvalidCouponError, ItemNotFoundError,
    PaymentFailedError, ValidationError,
)
from vitrine.core.ports import (
    IAuthRepository, IProductRepository, IReviewRepository, IOrderRepository, ICouponRepository,
    IAddressRepository, IPaymentMethodRepository, IRefundRepository, IUserRepository, IPaymentGateway,
)
from vitrine.core.pricing import compute_coupon_discount, to_decimal
from vitrine.core.query_cache import QueryCache
from vitrine.core.schemas import (
    CouponSchema, LoginSchema, ProductSchema, RefundRequestSchema, RegisterSchema, ReviewSchema,
    SavedAddressSchema, to_payload, validate,
)

logger = logging.getLogger(__name__)


# ====================================================================
# 1. AUTENTICAÇÃO
# ====================================================================

class AuthUseCase:
    """Login, cadastro, logout e a sonda de sessão."""
    def __init__(self, auth_repo: IAuthRepository, cache: QueryCache):
        self.auth_repo = auth_repo
        self.cache = cache

    def login(self, email: str, password: str) -> User:
        dados = validate(LoginSchema, {'email': email, 'password': password})
        user = self.auth_repo.login(dados.email, dados.password)
        self.cache.invalidate()
        return user

    def register(self, name: str, email: str, password: str) -> User:
        dados = validate(RegisterSchema, {'name': name, 'email': email, 'password': password})
        user = self.auth_repo.register(dados.name, dados.email, dados.password)
        self.cache.invalidate()
        return user

    def logout(self):
        try:
            self.auth_repo.logout()
        finally:
            # Dados de outro usuário não podem sobreviver ao logout.
            self.cache.invalidate()

    def current_user(self) -> Optional[User]:
        return self.auth_repo.me()

    def refresh(self):
        self.auth_repo.refresh()


# ====================================================================
# 2. CATÁLOGO E AVALIAÇÕES
# ====================================================================

class CatalogUseCase:
    """Listagem paginada por cursor, detalhe de produto e avaliações."""
    def __init__(self, product_repo: IProductRepository, review_repo: IReviewRepository, cache: QueryCache):
        self.product_repo = product_repo
        self.review_repo = review_repo
        self.cache = cache

    def list_products(
        self,
        search: Optional[str] = None,
        categories: Sequence[str] = (),
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ProductPage:
        query = ProductQuery(search=search, categories=list(categories), sort=sort, limit=limit, cursor=cursor)
        key = ('products', search, tuple(categories), sort, limit, cursor)
        return self.cache.fetch(key, lambda: self.product_repo.listar(query))

    def iter_products(self, search: Optional[str] = None, categories: Sequence[str] = (),
                      sort: Optional[str] = None, limit: Optional[int] = None) -> Iterator[Product]:
        """Percorre todas as páginas seguindo `next_cursor`."""
        cursor = None
        seen_cursors = set()
        while True:
            page = self.list_products(search=search, categories=categories, sort=sort, limit=limit, cursor=cursor)
            yield from page.items
            if not page.has_more or not page.next_cursor or page.next_cursor in seen_cursors:
                return
            seen_cursors.add(page.next_cursor)
            cursor = page.next_cursor

    def get_product(self, product_id: str) -> Product:
        return self.cache.fetch(('product', product_id), lambda: self.product_repo.buscar_por_id(product_id))

    def product_reviews(self, product_id: str) -> ProductReviews:
        return self.cache.fetch(('reviews', product_id), lambda: self.review_repo.listar_por_produto(product_id))

    def can_review(self, product_id: Optional[str]) -> ReviewEligibility:
        if not product_id:
            return ReviewEligibility()
        return self.cache.fetch(('canReview', product_id), lambda: self.review_repo.elegibilidade(product_id))

    def create_review(self, product_id: str, rating: int, comment: str) -> Review:
        dados = validate(ReviewSchema, {'rating': rating, 'comment': comment})
        review = self.review_repo.criar(product_id, dados.rating, dados.comment)
        self.cache.invalidate('reviews', product_id)
        self.cache.invalidate('product', product_id)
        self.cache.invalidate('canReview', product_id)
        return review


# ====================================================================
# 3. PEDIDOS, PAGAMENTO E CUPONS
# ====================================================================

class OrdersUseCase:
    """Criação de pedido, consulta, pagamento e configuração do provedor."""
    def __init__(self, order_repo: IOrderRepository, payment_gateway: IPaymentGateway, cache: QueryCache):
        self.order_repo = order_repo
        self.payment_gateway = payment_gateway
        self.cache = cache

    def create_order(self, order_items: List[OrderItem], shipping_address: ShippingAddress, payment_method: str,
                     tax_price: Decimal, shipping_price: Decimal, total_price: Decimal) -> Order:
        if not order_items:
            raise EmptyCartError()
        order = self.order_repo.criar(
            order_items, shipping_address, payment_method, tax_price, shipping_price, total_price
        )
        self.cache.invalidate('orders')
        return order

    def get_order(self, order_id: str) -> Order:
        return self.cache.fetch(('orders', order_id), lambda: self.order_repo.buscar_por_id(order_id))

    def my_orders(self) -> List[Order]:
        return self.cache.fetch(('orders', 'my'), self.order_repo.listar_meus)

    def mark_paid(self, order_id: str, payment_result: PaymentResult) -> Order:
        order = self.order_repo.marcar_como_pago(order_id, payment_result)
        self.cache.invalidate('orders', order_id)
        self.cache.invalidate('orders', 'my')
        return order

    def create_payment_intent(self, order_id: str) -> str:
        client_secret = self.payment_gateway.criar_intent(order_id)
        if not client_secret:
            raise PaymentFailedError("Não foi possível obter o segredo de pagamento.")
        return client_secret

    def publishable_key(self) -> str:
        # A chave pública não muda durante a sessão.
        return self.cache.fetch(('stripe', 'config'), self.payment_gateway.chave_publica, stale_time=None)


class CouponsUseCase:
    def __init__(self, coupon_repo: ICouponRepository):
        self.coupon_repo = coupon_repo

    def validate_coupon(self, code: str, cart_total) -> CouponValidation:
        """Valida o cupom no servidor; o cliente guarda apenas o último resultado."""
        code = (code or '').strip()
        if not code:
            raise InvalidCouponError("Informe o código do cupom.")

        cart_total = to_decimal(cart_total)
        try:
            resultado = self.coupon_repo.validar(code, cart_total)
        except AuthenticationError:
            raise
        except ApiError as e:
            logger.info("Cupom %s recusado pelo servidor: %s", code, e.message)
            raise InvalidCouponError(e.message) from e
        if not resultado.valid or resultado.coupon is None:
            raise InvalidCouponError(resultado.message or "Cupom inválido.")

        if resultado.discount_amount is None:
            resultado.discount_amount = compute_coupon_discount(resultado.coupon, cart_total)
        return resultado


# ====================================================================
# 4. CONTA DO USUÁRIO
# ====================================================================

class AccountUseCase:
    """Endereços e métodos de pagamento salvos."""
    def __init__(self, address_repo: IAddressRepository, payment_method_repo: IPaymentMethodRepository,
                 cache: QueryCache):
        self.address_repo = address_repo
        self.payment_method_repo = payment_method_repo
        self.cache = cache

    # --- Endereços ---

    def addresses(self) -> List[SavedAddress]:
        return self.cache.fetch(('user', 'addresses'), self.address_repo.listar)

    def default_address(self) -> Optional[SavedAddress]:
        addresses = self.addresses()
        return next((a for a in addresses if a.is_default), addresses[0] if addresses else None)

    def create_address(self, data: dict) -> SavedAddress:
        payload = to_payload(validate(SavedAddressSchema, data))
        address = self.address_repo.criar(payload)
        self.cache.invalidate('user', 'addresses')
        return address

    def update_address(self, address_id: str, data: dict) -> SavedAddress:
        payload = to_payload(validate(SavedAddressSchema, data))
        address = self.address_repo.atualizar(address_id, payload)
        self.cache.invalidate('user', 'addresses')
        return address

    def delete_address(self, address_id: str):
        self.address_repo.deletar(address_id)
        self.cache.invalidate('user', 'addresses')

    def set_default_address(self, address_id: str) -> SavedAddress:
        address = self.address_repo.definir_padrao(address_id)
        self.cache.invalidate('user', 'addresses')
        return address

    # --- Métodos de pagamento ---

    def payment_methods(self) -> List[SavedPaymentMethod]:
        return self.cache.fetch(('user', 'paymentMethods'), self.payment_method_repo.listar)

    def add_payment_method(self, stripe_payment_method_id: str) -> SavedPaymentMethod:
        if not stripe_payment_method_id:
            raise ValidationError("Método de pagamento inválido.",
                                  field_errors={'stripePaymentMethodId': "Obrigatório."})
        method = self.payment_method_repo.adicionar(stripe_payment_method_id)
        self.cache.invalidate('user', 'paymentMethods')
        return method

    def delete_payment_method(self, payment_method_id: str):
        self.payment_method_repo.deletar(payment_method_id)
        self.cache.invalidate('user', 'paymentMethods')

    def set_default_payment_method(self, payment_method_id: str) -> SavedPaymentMethod:
        method = self.payment_method_repo.definir_padrao(payment_method_id)
        self.cache.invalidate('user', 'paymentMethods')
        return method


# ====================================================================
# 5. REEMBOLSOS
# ====================================================================

class RefundsUseCase:
    """Solicitação e acompanhamento de reembolsos pelo cliente."""
    def __init__(self, refund_repo: IRefundRepository, cache: QueryCache):
        self.refund_repo = refund_repo
        self.cache = cache

    @staticmethod
    def selected_refund_total(order: Order, item_indexes: Sequence[int]) -> Decimal:
        """Valor estimado dos itens selecionados (o valor final é definido pelo servidor)."""
        total = Decimal('0')
        for index in set(item_indexes):
            if 0 <= index < len(order.order_items):
                total += order.order_items[index].subtotal
        return total

    def request_refund(self, order: Order, reason: str, item_indexes: Sequence[int],
                       description: Optional[str] = None) -> RefundRequest:
        if reason not in REFUND_REASONS:
            raise ValidationError("Selecione um motivo para o reembolso.", field_errors={'reason': "Motivo inválido."})
        if not item_indexes:
            raise ValidationError("Selecione pelo menos um item para reembolsar.",
                                  field_errors={'items': "Nenhum item selecionado."})
        if not order.is_paid:
            raise BusinessRuleError("Apenas pedidos pagos podem ser reembolsados.")

        items = []
        for index in sorted(set(item_indexes)):
            if not 0 <= index < len(order.order_items):
                raise ItemNotFoundError(f"Item {index} não existe no pedido {order.id}.")
            item = order.order_items[index]
            items.append({'product': item.product, 'qty': item.qty})

        dados = validate(RefundRequestSchema, {'reason': reason, 'description': description or None, 'items': items})
        refund = self.refund_repo.solicitar(
            order.id, dados.reason, dados.description, [to_payload(item) for item in dados.items]
        )
        self.cache.invalidate('orders', order.id)
        self.cache.invalidate('user', 'refunds')
        return refund

    def order_refund(self, order_id: str) -> Optional[RefundRequest]:
        return self.cache.fetch(('orders', order_id, 'refund'), lambda: self.refund_repo.buscar_por_pedido(order_id))

    def my_refunds(self) -> List[RefundRequest]:
        return self.cache.fetch(('user', 'refunds'), self.refund_repo.listar_meus)


# ====================================================================
# 6. CASOS DE USO ADMINISTRATIVOS
# ====================================================================

class AdminProductsUseCase:
    """CRUD de produtos no painel administrativo."""

    ADMIN_LIST_LIMIT = 100

    def __init__(self, product_repo: IProductRepository, cache: QueryCache):
        self.product_repo = product_repo
        self.cache = cache

    def list_products(self) -> List[Product]:
        query = ProductQuery(limit=self.ADMIN_LIST_LIMIT)
        return self.cache.fetch(('admin', 'products'), lambda: self.product_repo.listar(query).items)

    def create_product(self, data: dict) -> Product:
        payload = to_payload(validate(ProductSchema, data))
        product = self.product_repo.criar(payload)
        self._invalidate()
        return product

    def update_product(self, product_id: str, data: dict) -> Product:
        payload = to_payload(validate(ProductSchema, data))
        product = self.product_repo.atualizar(product_id, payload)
        self._invalidate()
        self.cache.invalidate('product', product_id)
        return product

    def delete_product(self, product_id: str):
        self.product_repo.deletar(product_id)
        self._invalidate()
        self.cache.invalidate('product', product_id)

    def _invalidate(self):
        self.cache.invalidate('admin', 'products')
        self.cache.invalidate('products')


class AdminOrdersUseCase:
    """Listagem de todos os pedidos e marcação de entrega."""
    def __init__(self, order_repo: IOrderRepository, cache: QueryCache):
        self.order_repo = order_repo
        self.cache = cache

    def list_orders(self) -> List[Order]:
        return self.cache.fetch(('admin', 'orders'), self.order_repo.listar_todos)

    def get_order(self, order_id: str) -> Order:
        return self.cache.fetch(('orders', order_id), lambda: self.order_repo.buscar_por_id(order_id))

    def mark_delivered(self, order_id: str) -> Optional[Order]:
        order = self.order_repo.marcar_como_entregue(order_id)
        self.cache.invalidate('admin', 'orders')
        self.cache.invalidate('orders', order_id)
        return order


class AdminCouponsUseCase:
    def __init__(self, coupon_repo: ICouponRepository, cache: QueryCache):
        self.coupon_repo = coupon_repo
        self.cache = cache

    def list_coupons(self) -> List[Coupon]:
        return self.cache.fetch(('admin', 'coupons'), self.coupon_repo.listar_todos)

    def create_coupon(self, data: dict) -> Coupon:
        payload = to_payload(validate(CouponSchema, data))
        coupon = self.coupon_repo.criar(payload)
        self.cache.invalidate('admin', 'coupons')
        return coupon

    def update_coupon(self, coupon_id: str, data: dict) -> Coupon:
        payload = to_payload(validate(CouponSchema, data))
        coupon = self.coupon_repo.atualizar(coupon_id, payload)
        self.cache.invalidate('admin', 'coupons')
        return coupon

    def delete_coupon(self, coupon_id: str):
        self.coupon_repo.deletar(coupon_id)
        self.cache.invalidate('admin', 'coupons')


class AdminUsersUseCase:
    """Listagem de usuários, alteração de papel e exclusão."""
    def __init__(self, user_repo: IUserRepository, cache: QueryCache):
        self.user_repo = user_repo
        self.cache = cache

    def list_users(self) -> List[User]:
        return self.cache.fetch(('admin', 'users'), self.user_repo.listar_todos)

    def get_user(self, user_id: str) -> User:
        return self.cache.fetch(('admin', 'users', user_id), lambda: self.user_repo.buscar_por_id(user_id))

    def update_role(self, user_id: str, role: str) -> User:
        if role not in USER_ROLES:
            raise ValidationError(f"Papel '{role}' inválido.", field_errors={'role': "Use 'user' ou 'admin'."})
        user = self.user_repo.atualizar_papel(user_id, role)
        self.cache.invalidate('admin', 'users')
        return user

    def delete_user(self, user_id: str):
        self.user_repo.deletar(user_id)
        self.cache.invalidate('admin', 'users')


class AdminRefundsUseCase:
    """Análise dos pedidos de reembolso (aprovar, rejeitar, processar)."""
    def __init__(self, refund_repo: IRefundRepository, cache: QueryCache):
        self.refund_repo = refund_repo
        self.cache = cache

    def list_refunds(self) -> List[RefundRequest]:
        return self.cache.fetch(('admin', 'refunds'), self.refund_repo.listar_todos)

    def update_status(self, refund_id: str, status: str, admin_notes: Optional[str] = None) -> RefundRequest:
        status = (status or '').lower()
        if status not in ADMIN_REFUND_STATUSES:
            raise ValidationError(f"O status '{status}' não é válido para um reembolso.",
                                  field_errors={'status': "Use approved, rejected ou processed."})
        refund = self.refund_repo.atualizar_status(refund_id, status, admin_notes)
        self.cache.invalidate('admin', 'refunds')
        self.cache.invalidate('user', 'refunds')
        return refund
