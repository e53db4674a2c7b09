# vitrine/core/ports.py
"""
Definição das Portas (Interfaces/Protocolos) da Arquitetura Limpa.

Estes protocolos definem o contrato que a camada de Infraestrutura (API remota,
armazenamento local, provedor de pagamento) DEVE seguir para se conectar à camada
Core (Stores, Casos de Uso e Checkout).
"""

from typing import Protocol, List, Optional, Dict, Any
from abc import abstractmethod
from decimal import Decimal

from vitrine.core.entities import (
    User, Product, ProductPage, ProductQuery, Order, PaymentResult, Coupon, CouponValidation,
    SavedAddress, SavedPaymentMethod, RefundRequest, Review, ProductReviews, ReviewEligibility,
    PaymentConfirmation, OrderItem, ShippingAddress,
)


# ====================================================================
# 1. ESTADO PERSISTIDO (carrinho / lista de desejos)
# ====================================================================

class IStateRepository(Protocol):
    """Snapshot JSON-serializável de uma store, lido na carga e gravado a cada mutação."""

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def save(self, state: Dict[str, Any]): ...

    @abstractmethod
    def clear(self): ...


class IStateStorage(Protocol):
    """Meio de armazenamento (disco, sessão Django, memória) que fornece repositórios por chave."""

    @abstractmethod
    def repository(self, key: str) -> IStateRepository: ...


# ====================================================================
# 2. REPOSITÓRIOS REMOTOS (Portas da API REST)
# ====================================================================

class IAuthRepository(Protocol):

    @abstractmethod
    def login(self, email: str, password: str) -> User: ...

    @abstractmethod
    def register(self, name: str, email: str, password: str) -> User: ...

    @abstractmethod
    def logout(self): ...

    @abstractmethod
    def refresh(self): ...

    @abstractmethod
    def me(self) -> Optional[User]:
        """Sonda de sessão ("quem sou eu")."""
        ...


class IProductRepository(Protocol):

    @abstractmethod
    def listar(self, query: ProductQuery) -> ProductPage: ...

    @abstractmethod
    def buscar_por_id(self, product_id: str) -> Product: ...

    @abstractmethod
    def criar(self, payload: Dict[str, Any]) -> Product: ...

    @abstractmethod
    def atualizar(self, product_id: str, payload: Dict[str, Any]) -> Product: ...

    @abstractmethod
    def deletar(self, product_id: str): ...


class IReviewRepository(Protocol):

    @abstractmethod
    def listar_por_produto(self, product_id: str) -> ProductReviews: ...

    @abstractmethod
    def criar(self, product_id: str, rating: int, comment: str) -> Review: ...

    @abstractmethod
    def elegibilidade(self, product_id: str) -> ReviewEligibility: ...


class IOrderRepository(Protocol):

    @abstractmethod
    def criar(self, order_items: List[OrderItem], shipping_address: ShippingAddress, payment_method: str,
              tax_price: Decimal, shipping_price: Decimal, total_price: Decimal) -> Order: ...

    @abstractmethod
    def buscar_por_id(self, order_id: str) -> Order: ...

    @abstractmethod
    def marcar_como_pago(self, order_id: str, payment_result: PaymentResult) -> Order: ...

    @abstractmethod
    def marcar_como_entregue(self, order_id: str) -> Order: ...

    @abstractmethod
    def listar_meus(self) -> List[Order]: ...

    @abstractmethod
    def listar_todos(self) -> List[Order]: ...


class ICouponRepository(Protocol):

    @abstractmethod
    def listar_todos(self) -> List[Coupon]: ...

    @abstractmethod
    def criar(self, payload: Dict[str, Any]) -> Coupon: ...

    @abstractmethod
    def atualizar(self, coupon_id: str, payload: Dict[str, Any]) -> Coupon: ...

    @abstractmethod
    def deletar(self, coupon_id: str): ...

    @abstractmethod
    def validar(self, code: str, cart_total: Decimal) -> CouponValidation: ...


class IAddressRepository(Protocol):

    @abstractmethod
    def listar(self) -> List[SavedAddress]: ...

    @abstractmethod
    def criar(self, payload: Dict[str, Any]) -> SavedAddress: ...

    @abstractmethod
    def atualizar(self, address_id: str, payload: Dict[str, Any]) -> SavedAddress: ...

    @abstractmethod
    def deletar(self, address_id: str): ...

    @abstractmethod
    def definir_padrao(self, address_id: str) -> SavedAddress: ...


class IPaymentMethodRepository(Protocol):

    @abstractmethod
    def listar(self) -> List[SavedPaymentMethod]: ...

    @abstractmethod
    def adicionar(self, stripe_payment_method_id: str) -> SavedPaymentMethod: ...

    @abstractmethod
    def deletar(self, payment_method_id: str): ...

    @abstractmethod
    def definir_padrao(self, payment_method_id: str) -> SavedPaymentMethod: ...


class IRefundRepository(Protocol):

    @abstractmethod
    def solicitar(self, order_id: str, reason: str, description: Optional[str],
                  items: List[Dict[str, Any]]) -> RefundRequest: ...

    @abstractmethod
    def buscar_por_pedido(self, order_id: str) -> Optional[RefundRequest]: ...

    @abstractmethod
    def listar_meus(self) -> List[RefundRequest]: ...

    @abstractmethod
    def listar_todos(self) -> List[RefundRequest]: ...

    @abstractmethod
    def atualizar_status(self, refund_id: str, status: str, admin_notes: Optional[str] = None) -> RefundRequest: ...


class IUserRepository(Protocol):

    @abstractmethod
    def listar_todos(self) -> List[User]: ...

    @abstractmethod
    def buscar_por_id(self, user_id: str) -> User: ...

    @abstractmethod
    def atualizar_papel(self, user_id: str, role: str) -> User: ...

    @abstractmethod
    def deletar(self, user_id: str): ...


# ====================================================================
# 3. GATEWAYS (Portas de Serviços Externos)
# ====================================================================

class IPaymentGateway(Protocol):
    """Par configuração/criação de intent exposto pelo nosso servidor."""

    @abstractmethod
    def chave_publica(self) -> str: ...

    @abstractmethod
    def criar_intent(self, order_id: str) -> Optional[str]:
        """Retorna o client secret emitido pelo servidor para o pedido."""
        ...


class IPaymentProvider(Protocol):
    """Provedor externo (widget de tokenização): recebe o client secret e confirma o pagamento."""

    @abstractmethod
    def confirm_payment(self, client_secret: str, payment_details: Dict[str, Any]) -> PaymentConfirmation: ...


class INavigator(Protocol):
    """Navegação "dura" (ex.: redirecionar para o login quando a sessão expira)."""

    @abstractmethod
    def redirect(self, path: str): ...


class INotifier(Protocol):
    """Notificações transitórias exibidas ao usuário."""

    @abstractmethod
    def success(self, message: str, description: Optional[str] = None): ...

    @abstractmethod
    def error(self, message: str, description: Optional[str] = None): ...

    @abstractmethod
    def info(self, message: str, description: Optional[str] = None): ...

    @abstractmethod
    def warning(self, message: str, description: Optional[str] = None): ...


# ====================================================================
# 4. ESTADO DO CLIENTE (consumido pelo Checkout)
# ====================================================================

class ICartStore(Protocol):

    @property
    @abstractmethod
    def total(self) -> Decimal: ...

    @property
    @abstractmethod
    def is_empty(self) -> bool: ...

    @abstractmethod
    def get_order_items(self) -> List[OrderItem]: ...

    @abstractmethod
    def clear_cart(self): ...
