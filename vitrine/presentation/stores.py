# vitrine/presentation/stores.py
# Estado do cliente (carrinho, lista de desejos e sessão) com persistência e observadores.

import logging
from decimal import Decimal
from typing import Callable, List, Optional

from vitrine import settings
from vitrine.core.entities import CartItem, OrderItem, Product, User, WishlistItem
from vitrine.core.exceptions import VitrineError
from vitrine.core.ports import IStateRepository
from vitrine.core.pricing import cart_total
from vitrine.infrastructure.mappers import CartSnapshotMapper, WishlistSnapshotMapper

logger = logging.getLogger(__name__)


class Observable:
    """Base mínima: notifica os inscritos depois de cada mudança de estado."""

    def __init__(self):
        self._subscribers: List[Callable] = []

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """Inscreve `callback(store)` e retorna a função que cancela a inscrição."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            callback(self)


# ====================================================================
# CARRINHO
# ====================================================================

class CartStore(Observable):
    """
    Gerencia o carrinho de compras local.
    O estado é gravado no repositório a cada mutação e reidratado na construção.
    """

    UNKNOWN_PRODUCT_NAME = "Unknown Product"

    def __init__(self, repository: IStateRepository):
        super().__init__()
        self.repository = repository
        self._items: List[CartItem] = []
        self._total = Decimal('0')
        self._load()

    # --- Métodos de Persistência ---

    def _load(self):
        """O total gravado nunca é usado: é sempre recalculado a partir dos itens."""
        self._items = CartSnapshotMapper.to_items(self.repository.load())
        self._total = cart_total(self._items)

    def _save(self):
        self._total = cart_total(self._items)
        self.repository.save(CartSnapshotMapper.to_dict(self._items, self._total))
        self._notify()

    def switch_repository(self, repository: IStateRepository):
        """Troca o carrinho persistido (ex.: visitante -> usuário logado) e recarrega."""
        self.repository = repository
        self._load()
        self._notify()

    # --- Métodos de Manipulação ---

    def _find(self, product_id: str) -> Optional[CartItem]:
        return next((item for item in self._items if item.product_id == product_id), None)

    def add_item(self, product: Product):
        """Adiciona o produto com quantidade 1, ou incrementa se já estiver no carrinho."""
        existing_item = self._find(product.id)
        if existing_item:
            existing_item.quantity += 1
        else:
            self._items.append(CartItem(product=product, quantity=1))
        self._save()

    def remove_item(self, product_id: str):
        self._items = [item for item in self._items if item.product_id != product_id]
        self._save()

    def update_quantity(self, product_id: str, quantity: int):
        if quantity <= 0:
            self.remove_item(product_id)
            return

        existing_item = self._find(product_id)
        if existing_item:
            existing_item.quantity = quantity
            self._save()

    def clear_cart(self):
        self._items = []
        self._save()

    # --- Métodos de Consulta ---

    @property
    def items(self) -> List[CartItem]:
        return list(self._items)

    @property
    def total(self) -> Decimal:
        return self._total

    @property
    def item_count(self) -> int:
        """Contagem total de unidades no carrinho."""
        return sum(item.quantity for item in self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def get_order_items(self) -> List[OrderItem]:
        """Projeta os itens no formato de criação de pedido."""
        order_items = []
        for item in self._items:
            product = item.product
            if not product.id:
                logger.warning("Item do carrinho sem ID de produto descartado do pedido: %r", product)
                continue
            order_items.append(OrderItem(
                product=product.id,
                name=product.name or self.UNKNOWN_PRODUCT_NAME,
                qty=item.quantity,
                price=product.price,
                image=product.primary_image or settings.PLACEHOLDER_IMAGE,
            ))
        return order_items


# ====================================================================
# LISTA DE DESEJOS
# ====================================================================

class WishlistStore(Observable):
    """Conjunto de produtos salvos (sem quantidade), persistido em `wishlist-storage`."""

    def __init__(self, repository: IStateRepository):
        super().__init__()
        self.repository = repository
        self._items: List[WishlistItem] = WishlistSnapshotMapper.to_items(repository.load())

    def _save(self):
        self.repository.save(WishlistSnapshotMapper.to_dict(self._items))
        self._notify()

    def add_item(self, product: Product):
        if self.is_in_wishlist(product.id):
            return
        self._items.append(WishlistItem(product=product))
        self._save()

    def remove_item(self, product_id: str):
        self._items = [item for item in self._items if item.product_id != product_id]
        self._save()

    def is_in_wishlist(self, product_id: str) -> bool:
        return any(item.product_id == product_id for item in self._items)

    def toggle(self, product: Product) -> bool:
        """Adiciona ou remove; retorna True se o produto ficou na lista."""
        if self.is_in_wishlist(product.id):
            self.remove_item(product.id)
            return False
        self.add_item(product)
        return True

    def clear_wishlist(self):
        self._items = []
        self._save()

    @property
    def items(self) -> List[WishlistItem]:
        return list(self._items)

    @property
    def count(self) -> int:
        return len(self._items)


# ====================================================================
# SESSÃO
# ====================================================================

class SessionStore(Observable):
    """
    Usuário autenticado. A sessão é um cookie gerenciado pelo servidor;
    aqui guardamos apenas a projeção do usuário.
    """

    def __init__(self, auth_use_case):
        super().__init__()
        self.auth_use_case = auth_use_case
        self._user: Optional[User] = None
        self._is_loading = True

    def load(self) -> Optional[User]:
        """Sonda de sessão: qualquer falha deixa o usuário deslogado."""
        self._is_loading = True
        try:
            self._user = self.auth_use_case.current_user()
        except VitrineError:
            logger.info("Sonda de sessão falhou; seguindo como visitante.", exc_info=True)
            self._user = None
        finally:
            self._is_loading = False
        self._notify()
        return self._user

    def login(self, email: str, password: str) -> User:
        self._set_user(self.auth_use_case.login(email, password))
        return self._user

    def register(self, name: str, email: str, password: str) -> User:
        self._set_user(self.auth_use_case.register(name, email, password))
        return self._user

    def logout(self):
        """Encerra a sessão no servidor; o usuário local é limpo mesmo se a chamada falhar."""
        try:
            self.auth_use_case.logout()
        finally:
            self.clear()

    def clear(self):
        self._set_user(None)

    def _set_user(self, user: Optional[User]):
        self._user = user
        self._is_loading = False
        self._notify()

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def is_admin(self) -> bool:
        return self._user is not None and self._user.is_admin

    @property
    def is_loading(self) -> bool:
        return self._is_loading
