# vitrine/core/dependency_injection.py
"""
Módulo de Injeção de Dependência (DI).
Responsável por instanciar o ApiClient, os Repositórios, as Stores e os Use Cases
e ligar tudo num único objeto Storefront (sem singletons globais).
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import requests

from vitrine import settings
from vitrine.core.checkout import CheckoutOrchestrator
from vitrine.core.ports import INavigator, INotifier, IPaymentProvider, IStateStorage
from vitrine.core.query_cache import QueryCache
from vitrine.core.use_cases import (
    AuthUseCase, CatalogUseCase, OrdersUseCase, CouponsUseCase, AccountUseCase, RefundsUseCase,
    AdminProductsUseCase, AdminOrdersUseCase, AdminCouponsUseCase, AdminUsersUseCase, AdminRefundsUseCase,
)
from vitrine.infrastructure.api_client import ApiClient
from vitrine.infrastructure.gateways import StripePaymentProvider
from vitrine.infrastructure.repositories import (
    AuthRepositoryApi, ProductRepositoryApi, ReviewRepositoryApi, OrderRepositoryApi, PaymentGatewayApi,
    CouponRepositoryApi, AddressRepositoryApi, PaymentMethodRepositoryApi, RefundRepositoryApi, UserRepositoryApi,
)
from vitrine.infrastructure.storage import JsonFileStorage
from vitrine.presentation.navigation import Navigator
from vitrine.presentation.notifications import Notifier
from vitrine.presentation.stores import CartStore, SessionStore, WishlistStore

logger = logging.getLogger(__name__)


@dataclass
class Storefront:
    client: ApiClient
    cache: QueryCache
    storage: IStateStorage
    navigator: INavigator
    notifier: INotifier

    session: SessionStore
    cart: CartStore
    wishlist: WishlistStore

    auth: AuthUseCase
    catalog: CatalogUseCase
    orders: OrdersUseCase
    coupons: CouponsUseCase
    account: AccountUseCase
    refunds: RefundsUseCase

    admin_products: AdminProductsUseCase
    admin_orders: AdminOrdersUseCase
    admin_coupons: AdminCouponsUseCase
    admin_users: AdminUsersUseCase
    admin_refunds: AdminRefundsUseCase

    payment_provider: Optional[IPaymentProvider] = None
    _cart_owner: Optional[str] = field(default=None, repr=False)

    def start(self):
        """Executa a sonda de sessão; o carrinho troca de chave se houver usuário logado."""
        return self.session.load()

    def new_checkout(self, user_email: Optional[str] = None) -> CheckoutOrchestrator:
        if user_email is None and self.session.user is not None:
            user_email = self.session.user.email
        return CheckoutOrchestrator(
            cart=self.cart,
            orders_use_case=self.orders,
            coupons_use_case=self.coupons,
            payment_provider=self._payment_provider(),
            navigator=self.navigator,
            user_email=user_email,
        )

    def _payment_provider(self) -> IPaymentProvider:
        # Sem provedor injetado, usa o Stripe com a chave pública servida pela API.
        if self.payment_provider is None:
            self.payment_provider = StripePaymentProvider(self.orders.publishable_key())
        return self.payment_provider

    # --- Ligações entre stores ---

    def _on_session_changed(self, session: SessionStore):
        user_id = session.user.id if session.user is not None else None
        if user_id == self._cart_owner:
            return
        logger.info("Usuário da sessão mudou; carregando o carrinho '%s'.", settings.cart_storage_key(user_id))
        self._cart_owner = user_id
        self.cart.switch_repository(self.storage.repository(settings.cart_storage_key(user_id)))

    def _on_session_expired(self):
        logger.warning("Sessão expirada e refresh recusado; redirecionando para %s.", settings.LOGIN_URL)
        self.session.clear()
        self.navigator.redirect(settings.LOGIN_URL)


def build_storefront(
    api_url: str = None,
    storage: IStateStorage = None,
    payment_provider: IPaymentProvider = None,
    navigator: INavigator = None,
    notifier: INotifier = None,
    session: requests.Session = None,
    timeout: int = None,
    cache: QueryCache = None,
    configure_logging: bool = False,
) -> Storefront:
    """Monta a aplicação cliente. Cada dependência pode ser substituída (testes, Django, CLI)."""
    if configure_logging:
        settings.configure_logging()

    storage = storage if storage is not None else JsonFileStorage(settings.STATE_DIR)
    navigator = navigator if navigator is not None else Navigator()
    notifier = notifier if notifier is not None else Notifier()
    cache = cache if cache is not None else QueryCache()

    client = ApiClient(base_url=api_url, session=session, timeout=timeout)

    # Repositórios e Gateways Concretos
    auth_repo = AuthRepositoryApi(client)
    product_repo = ProductRepositoryApi(client)
    review_repo = ReviewRepositoryApi(client)
    order_repo = OrderRepositoryApi(client)
    payment_gateway = PaymentGatewayApi(client)
    coupon_repo = CouponRepositoryApi(client)
    address_repo = AddressRepositoryApi(client)
    payment_method_repo = PaymentMethodRepositoryApi(client)
    refund_repo = RefundRepositoryApi(client)
    user_repo = UserRepositoryApi(client)

    auth = AuthUseCase(auth_repo, cache)

    storefront = Storefront(
        client=client,
        cache=cache,
        storage=storage,
        navigator=navigator,
        notifier=notifier,
        session=SessionStore(auth),
        cart=CartStore(storage.repository(settings.cart_storage_key())),
        wishlist=WishlistStore(storage.repository(settings.WISHLIST_STORAGE_KEY)),
        auth=auth,
        catalog=CatalogUseCase(product_repo, review_repo, cache),
        orders=OrdersUseCase(order_repo, payment_gateway, cache),
        coupons=CouponsUseCase(coupon_repo),
        account=AccountUseCase(address_repo, payment_method_repo, cache),
        refunds=RefundsUseCase(refund_repo, cache),
        admin_products=AdminProductsUseCase(product_repo, cache),
        admin_orders=AdminOrdersUseCase(order_repo, cache),
        admin_coupons=AdminCouponsUseCase(coupon_repo, cache),
        admin_users=AdminUsersUseCase(user_repo, cache),
        admin_refunds=AdminRefundsUseCase(refund_repo, cache),
        payment_provider=payment_provider,
    )

    client.on_session_expired = storefront._on_session_expired
    storefront.session.subscribe(storefront._on_session_changed)
    return storefront
