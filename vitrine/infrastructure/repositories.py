# vitrine/infrastructure/repositories.py
"""
Repositórios concretos: implementam as portas do Core conversando com a API REST
através do ApiClient. Toda resposta passa pelos Mappers antes de chegar ao Core.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from vitrine import settings
from vitrine.core.entities import (
    User, Product, ProductPage, ProductQuery, Order, PaymentResult, Coupon, CouponValidation,
    SavedAddress, SavedPaymentMethod, RefundRequest, Review, ProductReviews, ReviewEligibility,
    OrderItem, ShippingAddress,
)
from vitrine.core.exceptions import NotFoundError
from vitrine.core.ports import (
    IAuthRepository, IProductRepository, IReviewRepository, IOrderRepository, ICouponRepository,
    IAddressRepository, IPaymentMethodRepository, IRefundRepository, IUserRepository, IPaymentGateway,
)
from vitrine.infrastructure.api_client import ApiClient, Envelope
from vitrine.infrastructure.mappers import (
    UserMapper, ProductMapper, ProductPageMapper, ReviewMapper, OrderMapper, PaymentResultMapper,
    CouponMapper, SavedAddressMapper, SavedPaymentMethodMapper, RefundMapper,
)


class ApiRepository:
    """Base comum: guarda o cliente e extrai o recurso aninhado do envelope."""

    def __init__(self, client: ApiClient):
        self.client = client

    @staticmethod
    def _resource(envelope: Envelope, key: str, default_message: str):
        envelope.require(default_message)
        resource = envelope.get(key)
        if resource is None:
            raise NotFoundError(default_message)
        return resource


# ====================================================================
# AUTENTICAÇÃO
# ====================================================================

class AuthRepositoryApi(ApiRepository, IAuthRepository):

    def login(self, email: str, password: str) -> User:
        envelope = self.client.post('/auth/login', json={'email': email, 'password': password})
        return UserMapper.to_entity(self._resource(envelope, 'user', "Falha no login."))

    def register(self, name: str, email: str, password: str) -> User:
        envelope = self.client.post('/auth/register', json={'name': name, 'email': email, 'password': password})
        return UserMapper.to_entity(self._resource(envelope, 'user', "Falha no cadastro."))

    def logout(self):
        self.client.post('/auth/logout')

    def refresh(self):
        self.client.refresh()

    def me(self) -> Optional[User]:
        envelope = self.client.get(settings.SESSION_PROBE_PATH)
        if not envelope.success:
            return None
        return UserMapper.to_entity(envelope.get('user'))


# ====================================================================
# CATÁLOGO
# ====================================================================

class ProductRepositoryApi(ApiRepository, IProductRepository):

    def listar(self, query: ProductQuery) -> ProductPage:
        envelope = self.client.get('/products', params=query.to_params())
        envelope.require("Falha ao carregar os produtos.")
        return ProductPageMapper.to_entity(envelope.data, envelope.meta)

    def buscar_por_id(self, product_id: str) -> Product:
        envelope = self.client.get(f'/products/{product_id}')
        envelope.require("Produto não encontrado.")
        # Detalhe chega como `data` direto ou aninhado em `data.product`.
        data = envelope.get('product') or envelope.data
        if not data:
            raise NotFoundError(f"Produto {product_id} não encontrado.")
        return ProductMapper.to_entity(data)

    def criar(self, payload: Dict[str, Any]) -> Product:
        envelope = self.client.post('/products', json=payload)
        return ProductMapper.to_entity(self._resource(envelope, 'product', "Falha ao criar o produto."))

    def atualizar(self, product_id: str, payload: Dict[str, Any]) -> Product:
        envelope = self.client.put(f'/products/{product_id}', json=payload)
        return ProductMapper.to_entity(self._resource(envelope, 'product', "Falha ao atualizar o produto."))

    def deletar(self, product_id: str):
        self.client.delete(f'/products/{product_id}').require("Falha ao excluir o produto.")


class ReviewRepositoryApi(ApiRepository, IReviewRepository):

    def listar_por_produto(self, product_id: str) -> ProductReviews:
        envelope = self.client.get(f'/products/{product_id}/reviews')
        return ReviewMapper.to_product_reviews(envelope.data if isinstance(envelope.data, dict) else None)

    def criar(self, product_id: str, rating: int, comment: str) -> Review:
        envelope = self.client.post(f'/products/{product_id}/reviews', json={'rating': rating, 'comment': comment})
        return ReviewMapper.to_entity(self._resource(envelope, 'review', "Falha ao enviar a avaliação."))

    def elegibilidade(self, product_id: str) -> ReviewEligibility:
        envelope = self.client.get(f'/products/{product_id}/can-review')
        return ReviewMapper.to_eligibility(envelope.data if isinstance(envelope.data, dict) else None)


# ====================================================================
# PEDIDOS E PAGAMENTO
# ====================================================================

class OrderRepositoryApi(ApiRepository, IOrderRepository):

    def criar(self, order_items: List[OrderItem], shipping_address: ShippingAddress, payment_method: str,
              tax_price: Decimal, shipping_price: Decimal, total_price: Decimal) -> Order:
        payload = OrderMapper.to_create_payload(
            order_items, shipping_address, payment_method, tax_price, shipping_price, total_price
        )
        envelope = self.client.post('/orders', json=payload)
        return OrderMapper.to_entity(self._resource(envelope, 'order', "Falha ao criar o pedido."))

    def buscar_por_id(self, order_id: str) -> Order:
        envelope = self.client.get(f'/orders/{order_id}')
        return OrderMapper.to_entity(self._resource(envelope, 'order', f"Pedido {order_id} não encontrado."))

    def marcar_como_pago(self, order_id: str, payment_result: PaymentResult) -> Order:
        envelope = self.client.put(f'/orders/{order_id}/pay', json=PaymentResultMapper.to_dict(payment_result))
        return OrderMapper.to_entity(self._resource(envelope, 'order', "Falha ao atualizar o status de pagamento."))

    def marcar_como_entregue(self, order_id: str) -> Order:
        envelope = self.client.put(f'/orders/{order_id}/deliver')
        envelope.require("Falha ao atualizar o status de entrega.")
        data = envelope.get('order') or envelope.data
        return OrderMapper.to_entity(data) if isinstance(data, dict) else None

    def listar_meus(self) -> List[Order]:
        envelope = self.client.get('/orders/myorders')
        return OrderMapper.to_entity_list(envelope.get('orders', []))

    def listar_todos(self) -> List[Order]:
        envelope = self.client.get('/orders')
        return OrderMapper.to_entity_list(envelope.get('orders', []))


class PaymentGatewayApi(ApiRepository, IPaymentGateway):
    """Configuração do Stripe e criação do PaymentIntent, ambos emitidos pelo nosso servidor."""

    def chave_publica(self) -> str:
        envelope = self.client.get('/config/stripe')
        return envelope.get('publishableKey')

    def criar_intent(self, order_id: str) -> Optional[str]:
        envelope = self.client.post('/payment/create-payment-intent', json={'orderId': order_id})
        envelope.require("Falha ao criar a intenção de pagamento.")
        return envelope.get('clientSecret')


# ====================================================================
# CUPONS
# ====================================================================

class CouponRepositoryApi(ApiRepository, ICouponRepository):

    def listar_todos(self) -> List[Coupon]:
        envelope = self.client.get('/coupons')
        return CouponMapper.to_entity_list(envelope.get('coupons', []))

    def criar(self, payload: Dict[str, Any]) -> Coupon:
        envelope = self.client.post('/coupons', json=payload)
        return CouponMapper.to_entity(self._resource(envelope, 'coupon', "Falha ao criar o cupom."))

    def atualizar(self, coupon_id: str, payload: Dict[str, Any]) -> Coupon:
        envelope = self.client.put(f'/coupons/{coupon_id}', json=payload)
        return CouponMapper.to_entity(self._resource(envelope, 'coupon', "Falha ao atualizar o cupom."))

    def deletar(self, coupon_id: str):
        self.client.delete(f'/coupons/{coupon_id}').require("Falha ao excluir o cupom.")

    def validar(self, code: str, cart_total: Decimal) -> CouponValidation:
        envelope = self.client.post('/coupons/validate', json={'code': code, 'cartTotal': float(cart_total)})
        envelope.require("Cupom inválido.")
        return CouponMapper.to_validation(envelope.data if isinstance(envelope.data, dict) else None)


# ====================================================================
# CONTA: ENDEREÇOS E MÉTODOS DE PAGAMENTO
# ====================================================================

class AddressRepositoryApi(ApiRepository, IAddressRepository):

    def listar(self) -> List[SavedAddress]:
        envelope = self.client.get('/users/addresses')
        return SavedAddressMapper.to_entity_list(envelope.get('addresses', []))

    def criar(self, payload: Dict[str, Any]) -> SavedAddress:
        envelope = self.client.post('/users/addresses', json=payload)
        return SavedAddressMapper.to_entity(self._resource(envelope, 'address', "Falha ao salvar o endereço."))

    def atualizar(self, address_id: str, payload: Dict[str, Any]) -> SavedAddress:
        envelope = self.client.put(f'/users/addresses/{address_id}', json=payload)
        return SavedAddressMapper.to_entity(self._resource(envelope, 'address', "Falha ao atualizar o endereço."))

    def deletar(self, address_id: str):
        self.client.delete(f'/users/addresses/{address_id}').require("Falha ao excluir o endereço.")

    def definir_padrao(self, address_id: str) -> SavedAddress:
        envelope = self.client.put(f'/users/addresses/{address_id}/default')
        return SavedAddressMapper.to_entity(self._resource(envelope, 'address', "Falha ao definir o endereço padrão."))


class PaymentMethodRepositoryApi(ApiRepository, IPaymentMethodRepository):

    def listar(self) -> List[SavedPaymentMethod]:
        envelope = self.client.get('/users/payment-methods')
        return SavedPaymentMethodMapper.to_entity_list(envelope.get('paymentMethods', []))

    def adicionar(self, stripe_payment_method_id: str) -> SavedPaymentMethod:
        envelope = self.client.post('/users/payment-methods', json={'stripePaymentMethodId': stripe_payment_method_id})
        return SavedPaymentMethodMapper.to_entity(
            self._resource(envelope, 'paymentMethod', "Falha ao adicionar o método de pagamento.")
        )

    def deletar(self, payment_method_id: str):
        self.client.delete(f'/users/payment-methods/{payment_method_id}').require(
            "Falha ao excluir o método de pagamento."
        )

    def definir_padrao(self, payment_method_id: str) -> SavedPaymentMethod:
        envelope = self.client.put(f'/users/payment-methods/{payment_method_id}/default')
        return SavedPaymentMethodMapper.to_entity(
            self._resource(envelope, 'paymentMethod', "Falha ao definir o método de pagamento padrão.")
        )


# ====================================================================
# REEMBOLSOS
# ====================================================================

class RefundRepositoryApi(ApiRepository, IRefundRepository):

    def solicitar(self, order_id: str, reason: str, description: Optional[str],
                  items: List[Dict[str, Any]]) -> RefundRequest:
        payload = {'reason': reason, 'items': items}
        if description:
            payload['description'] = description
        envelope = self.client.post(f'/orders/{order_id}/refund', json=payload)
        return RefundMapper.to_entity(self._resource(envelope, 'refund', "Falha ao solicitar o reembolso."))

    def buscar_por_pedido(self, order_id: str) -> Optional[RefundRequest]:
        envelope = self.client.get(f'/orders/{order_id}/refund')
        return RefundMapper.to_entity(envelope.get('refund'))

    def listar_meus(self) -> List[RefundRequest]:
        envelope = self.client.get('/users/refunds')
        return RefundMapper.to_entity_list(envelope.get('refunds', []))

    def listar_todos(self) -> List[RefundRequest]:
        envelope = self.client.get('/admin/refunds')
        return RefundMapper.to_entity_list(envelope.get('refunds', []))

    def atualizar_status(self, refund_id: str, status: str, admin_notes: Optional[str] = None) -> RefundRequest:
        payload = {'status': status}
        if admin_notes is not None:
            payload['adminNotes'] = admin_notes
        envelope = self.client.put(f'/admin/refunds/{refund_id}', json=payload)
        return RefundMapper.to_entity(self._resource(envelope, 'refund', "Falha ao atualizar o reembolso."))


# ====================================================================
# USUÁRIOS (ADMIN)
# ====================================================================

class UserRepositoryApi(ApiRepository, IUserRepository):

    def listar_todos(self) -> List[User]:
        envelope = self.client.get('/users')
        return UserMapper.to_entity_list(envelope.get('users', []))

    def buscar_por_id(self, user_id: str) -> User:
        envelope = self.client.get(f'/users/{user_id}')
        return UserMapper.to_entity(self._resource(envelope, 'user', f"Usuário {user_id} não encontrado."))

    def atualizar_papel(self, user_id: str, role: str) -> User:
        envelope = self.client.put(f'/users/{user_id}/role', json={'role': role})
        return UserMapper.to_entity(self._resource(envelope, 'user', "Falha ao atualizar o papel do usuário."))

    def deletar(self, user_id: str):
        self.client.delete(f'/users/{user_id}').require("Falha ao excluir o usuário.")
