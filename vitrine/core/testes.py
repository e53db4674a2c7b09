# vitrine/core/testes.py

import unittest
from unittest.mock import Mock
from decimal import Decimal

from vitrine import settings
from vitrine.core.checkout import CheckoutOrchestrator, CheckoutStep
from vitrine.core.dependency_injection import build_storefront
from vitrine.core.entities import (
    Coupon, CouponValidation, Order, OrderItem, PaymentConfirmation, PaymentResult, Product, ProductPage,
    SavedAddress, ShippingAddress, User,
)
from vitrine.core.exceptions import (
    AuthenticationError, BusinessRuleError, EmptyCartError, InvalidAddressError, InvalidCouponError,
    InvalidTransitionError, PaymentFailedError, TransportError, ValidationError,
)
from vitrine.core.pricing import compute_coupon_discount, compute_pricing
from vitrine.core.query_cache import QueryCache
from vitrine.core.schemas import CouponSchema, RegisterSchema, ShippingAddressSchema, to_payload, validate
from vitrine.core.use_cases import (
    AdminRefundsUseCase, AdminUsersUseCase, AuthUseCase, CatalogUseCase, CouponsUseCase, OrdersUseCase,
    RefundsUseCase,
)
from vitrine.infrastructure.gateways import PaymentProviderMock
from vitrine.infrastructure.storage import InMemoryStorage
from vitrine.presentation.navigation import Navigator


class FakeClock:
    """Relógio controlado pelos testes."""
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def _response(status_code, body=None):
    response = Mock()
    response.status_code = status_code
    response.content = b'{}' if body is not None else b''
    response.json.return_value = body
    return response


# ====================================================================
# PREÇOS
# ====================================================================

class TestComputePricing(unittest.TestCase):

    def test_subtotal_acima_do_limite_com_desconto(self):
        """
        Cenário: subtotal 120 com desconto de 20.
        Tributável 100, imposto 8, frete grátis (o limite usa o subtotal antes do desconto).
        """
        resumo = compute_pricing(Decimal('120'), Decimal('20'))

        self.assertEqual(resumo.taxable, Decimal('100'))
        self.assertEqual(resumo.tax, Decimal('8.00'))
        self.assertEqual(resumo.shipping, Decimal('0'))
        self.assertEqual(resumo.total, Decimal('108.00'))
        self.assertTrue(resumo.free_shipping)

    def test_subtotal_abaixo_do_limite_paga_frete(self):
        resumo = compute_pricing(Decimal('50'))

        self.assertEqual(resumo.tax, Decimal('4.00'))
        self.assertEqual(resumo.shipping, Decimal('10'))
        self.assertEqual(resumo.total, Decimal('64.00'))

    def test_exatamente_100_ainda_paga_frete(self):
        self.assertEqual(compute_pricing(Decimal('100')).shipping, Decimal('10'))

    def test_desconto_maior_que_subtotal_nao_fica_negativo(self):
        resumo = compute_pricing(Decimal('30'), Decimal('50'))

        self.assertEqual(resumo.taxable, Decimal('0'))
        self.assertEqual(resumo.tax, Decimal('0.00'))
        self.assertEqual(resumo.total, Decimal('10.00'))

    def test_imposto_arredondado_em_centavos(self):
        # 19.99 * 0.08 = 1.5992
        self.assertEqual(compute_pricing(Decimal('19.99')).tax, Decimal('1.60'))

    def test_desconto_de_cupom(self):
        percentual = Coupon(id='c1', code='OFF10', discount_type='percentage', discount_value=Decimal('10'))
        fixo = Coupon(id='c2', code='MENOS50', discount_type='fixed', discount_value=Decimal('50'),
                      min_purchase=Decimal('20'))

        self.assertEqual(compute_coupon_discount(percentual, Decimal('120')), Decimal('12.00'))
        self.assertEqual(compute_coupon_discount(fixo, Decimal('30')), Decimal('30'))
        self.assertEqual(compute_coupon_discount(fixo, Decimal('10')), Decimal('0'))
        self.assertEqual(compute_coupon_discount(None, Decimal('10')), Decimal('0'))


# ====================================================================
# CACHE DE CONSULTAS
# ====================================================================

class TestQueryCache(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = QueryCache(clock=self.clock)

    def test_valor_fresco_nao_rebusca(self):
        loader = Mock(return_value='a')

        self.cache.fetch(('products',), loader, stale_time=60)
        self.clock.now = 30
        self.cache.fetch(('products',), loader, stale_time=60)

        loader.assert_called_once_with()

    def test_valor_expirado_rebusca(self):
        loader = Mock(side_effect=['a', 'b'])

        self.cache.fetch(('products',), loader, stale_time=60)
        self.clock.now = 61

        self.assertEqual(self.cache.fetch(('products',), loader, stale_time=60), 'b')

    def test_stale_time_none_nunca_expira(self):
        loader = Mock(return_value='pk_test')

        self.cache.fetch(('stripe', 'config'), loader, stale_time=None)
        self.clock.now = 10 ** 6
        self.cache.fetch(('stripe', 'config'), loader, stale_time=None)

        self.assertEqual(loader.call_count, 1)

    def test_invalidacao_por_prefixo(self):
        self.cache.fetch(('orders', 'my'), lambda: [1])
        self.cache.fetch(('orders', 'o1'), lambda: 'o1')
        self.cache.fetch(('admin', 'orders'), lambda: [2])

        self.cache.invalidate('orders')

        self.assertNotIn(('orders', 'my'), self.cache)
        self.assertNotIn(('orders', 'o1'), self.cache)
        self.assertIn(('admin', 'orders'), self.cache)

    def test_resultado_obsoleto_nao_e_guardado(self):
        """
        Cenário: a chave é invalidada enquanto a busca está em andamento.
        Quem pediu recebe o valor, mas ele não entra no cache.
        """
        def loader():
            self.cache.invalidate('orders')
            return 'antigo'

        valor = self.cache.fetch(('orders', 'my'), loader)

        self.assertEqual(valor, 'antigo')
        self.assertIsNone(self.cache.peek(('orders', 'my')))

    def test_geracoes_nao_acumulam_depois_da_invalidacao(self):
        for i in range(20):
            self.cache.fetch(('products', i), lambda: i)
        self.cache.invalidate('products')

        self.assertEqual(self.cache._generations, {})

    def test_geracao_descartada_depois_de_resultado_obsoleto(self):
        def loader():
            self.cache.invalidate('orders')
            return 'antigo'

        self.cache.fetch(('orders', 'my'), loader)

        self.assertNotIn(('orders', 'my'), self.cache._generations)
        self.assertEqual(self.cache._in_flight, {})

    def test_busca_com_falha_nao_deixa_chave_em_andamento(self):
        with self.assertRaises(TransportError):
            self.cache.fetch(('orders', 'my'), Mock(side_effect=TransportError()))

        self.assertEqual(self.cache._in_flight, {})
        self.assertEqual(self.cache._generations, {})


# ====================================================================
# SCHEMAS
# ====================================================================

class TestSchemas(unittest.TestCase):

    def test_endereco_valido_aceita_alias(self):
        dados = validate(ShippingAddressSchema, {
            'address': ' Rua das Flores, 100 ', 'city': 'Recife', 'postalCode': '50000', 'country': 'BR',
        })

        self.assertEqual(dados.address, 'Rua das Flores, 100')
        self.assertEqual(dados.postal_code, '50000')

    def test_endereco_curto_gera_erro_por_campo(self):
        with self.assertRaises(ValidationError) as ctx:
            validate(ShippingAddressSchema, {'address': 'Rua', 'city': 'R', 'postalCode': '1', 'country': 'BR'})

        self.assertIn('address', ctx.exception.field_errors)
        self.assertIn('city', ctx.exception.field_errors)
        self.assertIn('postalCode', ctx.exception.field_errors)
        self.assertNotIn('country', ctx.exception.field_errors)

    def test_senha_curta_no_cadastro(self):
        with self.assertRaises(ValidationError) as ctx:
            validate(RegisterSchema, {'name': 'Ana', 'email': 'ana@example.com', 'password': '123'})

        self.assertEqual(list(ctx.exception.field_errors), ['password'])

    def test_cupom_em_camel_case(self):
        dados = validate(CouponSchema, {'code': 'verao', 'discountType': 'percentage', 'discountValue': '15'})

        payload = to_payload(dados)

        self.assertEqual(payload['code'], 'VERAO')
        self.assertEqual(payload['discountType'], 'percentage')
        self.assertNotIn('expiresAt', payload)

    def test_cupom_percentual_acima_de_100(self):
        with self.assertRaises(ValidationError):
            validate(CouponSchema, {'code': 'TUDO', 'discountType': 'percentage', 'discountValue': 150})


# ====================================================================
# CASOS DE USO
# ====================================================================

class TestAuthUseCase(unittest.TestCase):

    def setUp(self):
        self.auth_repo_mock = Mock()
        self.cache = QueryCache()
        self.use_case = AuthUseCase(self.auth_repo_mock, self.cache)

    def test_login_valida_email_antes_de_chamar_a_api(self):
        with self.assertRaises(ValidationError):
            self.use_case.login('nao-e-email', 'segredo')

        self.auth_repo_mock.login.assert_not_called()

    def test_logout_limpa_o_cache_mesmo_com_falha(self):
        # ARRANGE
        self.cache.fetch(('orders', 'my'), lambda: ['pedido'])
        self.auth_repo_mock.logout.side_effect = AuthenticationError()

        # ACT
        with self.assertRaises(AuthenticationError):
            self.use_case.logout()

        # ASSERT
        self.assertNotIn(('orders', 'my'), self.cache)


class TestCatalogUseCase(unittest.TestCase):

    def setUp(self):
        self.product_repo_mock = Mock()
        self.review_repo_mock = Mock()
        self.use_case = CatalogUseCase(self.product_repo_mock, self.review_repo_mock, QueryCache())

    def test_iter_products_segue_o_cursor(self):
        """
        Cenário: duas páginas; a segunda é pedida com o cursor da primeira.
        """
        p1 = Product(id='p1', name='Caneca', price=Decimal('20'))
        p2 = Product(id='p2', name='Camiseta', price=Decimal('50'))
        self.product_repo_mock.listar.side_effect = [
            ProductPage(items=[p1], next_cursor='c2', has_more=True),
            ProductPage(items=[p2], next_cursor=None, has_more=False),
        ]

        produtos = list(self.use_case.iter_products(categories=['casa'], limit=1))

        self.assertEqual([p.id for p in produtos], ['p1', 'p2'])
        segunda_consulta = self.product_repo_mock.listar.call_args_list[1][0][0]
        self.assertEqual(segunda_consulta.cursor, 'c2')
        self.assertEqual(segunda_consulta.categories, ['casa'])

    def test_can_review_sem_produto_nao_chama_a_api(self):
        elegibilidade = self.use_case.can_review(None)

        self.assertFalse(elegibilidade.can_review)
        self.review_repo_mock.elegibilidade.assert_not_called()

    def test_avaliacao_invalida(self):
        with self.assertRaises(ValidationError):
            self.use_case.create_review('p1', 6, 'Ótimo')
        self.review_repo_mock.criar.assert_not_called()


class TestOrdersUseCase(unittest.TestCase):

    def setUp(self):
        self.order_repo_mock = Mock()
        self.payment_gateway_mock = Mock()
        self.cache = QueryCache()
        self.use_case = OrdersUseCase(self.order_repo_mock, self.payment_gateway_mock, self.cache)

    def test_chave_publica_buscada_uma_vez(self):
        self.payment_gateway_mock.chave_publica.return_value = 'pk_test_123'

        self.use_case.publishable_key()
        chave = self.use_case.publishable_key()

        self.assertEqual(chave, 'pk_test_123')
        self.payment_gateway_mock.chave_publica.assert_called_once_with()

    def test_intent_sem_client_secret_falha(self):
        self.payment_gateway_mock.criar_intent.return_value = None

        with self.assertRaises(PaymentFailedError):
            self.use_case.create_payment_intent('o1')

    def test_pedido_sem_itens(self):
        with self.assertRaises(EmptyCartError):
            self.use_case.create_order([], Mock(), 'stripe', Decimal('0'), Decimal('10'), Decimal('10'))
        self.order_repo_mock.criar.assert_not_called()

    def test_marcar_como_pago_invalida_o_pedido(self):
        self.cache.fetch(('orders', 'o1'), lambda: 'pedido antigo')
        resultado = PaymentResult(id='pi_1', status='succeeded', update_time='2024-01-01T00:00:00Z',
                                  email_address='ana@example.com')

        self.use_case.mark_paid('o1', resultado)

        self.order_repo_mock.marcar_como_pago.assert_called_once_with('o1', resultado)
        self.assertNotIn(('orders', 'o1'), self.cache)


class TestCouponsUseCase(unittest.TestCase):

    def setUp(self):
        self.coupon_repo_mock = Mock()
        self.use_case = CouponsUseCase(self.coupon_repo_mock)
        self.coupon = Coupon(id='c1', code='OFF10', discount_type='percentage', discount_value=Decimal('10'))

    def test_codigo_vazio(self):
        with self.assertRaises(InvalidCouponError):
            self.use_case.validate_coupon('  ', Decimal('50'))
        self.coupon_repo_mock.validar.assert_not_called()

    def test_cupom_recusado_pelo_servidor(self):
        self.coupon_repo_mock.validar.return_value = CouponValidation(valid=False, message='Cupom expirado')

        with self.assertRaises(InvalidCouponError) as ctx:
            self.use_case.validate_coupon('OFF10', Decimal('50'))
        self.assertEqual(ctx.exception.message, 'Cupom expirado')

    def test_erro_de_regra_vira_cupom_invalido(self):
        self.coupon_repo_mock.validar.side_effect = BusinessRuleError('Compra mínima de $50', status_code=400)

        with self.assertRaises(InvalidCouponError):
            self.use_case.validate_coupon('OFF10', Decimal('20'))

    def test_desconto_estimado_quando_o_servidor_nao_informa(self):
        self.coupon_repo_mock.validar.return_value = CouponValidation(valid=True, coupon=self.coupon)

        resultado = self.use_case.validate_coupon(' OFF10 ', 120)

        self.coupon_repo_mock.validar.assert_called_once_with('OFF10', Decimal('120'))
        self.assertEqual(resultado.discount_amount, Decimal('12.00'))

    def test_desconto_zero_do_servidor_prevalece(self):
        meio = Coupon(id='c2', code='METADE', discount_type='percentage', discount_value=Decimal('50'))
        self.coupon_repo_mock.validar.return_value = CouponValidation(
            valid=True, coupon=meio, discount_amount=Decimal('0'),
        )

        resultado = self.use_case.validate_coupon('METADE', Decimal('100'))

        self.assertEqual(resultado.discount_amount, Decimal('0'))


class TestRefundsUseCase(unittest.TestCase):

    def setUp(self):
        self.refund_repo_mock = Mock()
        self.use_case = RefundsUseCase(self.refund_repo_mock, QueryCache())
        self.order = Order(
            id='o1',
            order_items=[
                OrderItem(product='p1', name='Caneca', qty=2, price=Decimal('20'), image='img'),
                OrderItem(product='p2', name='Camiseta', qty=1, price=Decimal('50'), image='img'),
            ],
            shipping_address=None,
            payment_method='stripe',
            tax_price=Decimal('7.20'),
            shipping_price=Decimal('10'),
            total_price=Decimal('107.20'),
            is_paid=True,
        )

    def test_motivo_invalido(self):
        with self.assertRaises(ValidationError):
            self.use_case.request_refund(self.order, 'nao_gostei', [0])
        self.refund_repo_mock.solicitar.assert_not_called()

    def test_sem_itens_selecionados(self):
        with self.assertRaises(ValidationError):
            self.use_case.request_refund(self.order, 'damaged', [])

    def test_pedido_nao_pago(self):
        self.order.is_paid = False
        with self.assertRaises(BusinessRuleError):
            self.use_case.request_refund(self.order, 'damaged', [0])

    def test_solicitacao_com_itens_do_pedido(self):
        self.use_case.request_refund(self.order, 'wrong_item', [1, 0], description='Veio trocado')

        self.refund_repo_mock.solicitar.assert_called_once_with(
            'o1', 'wrong_item', 'Veio trocado', [{'product': 'p1', 'qty': 2}, {'product': 'p2', 'qty': 1}],
        )

    def test_total_selecionado(self):
        self.assertEqual(RefundsUseCase.selected_refund_total(self.order, [0]), Decimal('40'))
        self.assertEqual(RefundsUseCase.selected_refund_total(self.order, [0, 1, 1]), Decimal('90'))


class TestAdminUseCases(unittest.TestCase):

    def test_status_de_reembolso_invalido(self):
        refund_repo_mock = Mock()
        use_case = AdminRefundsUseCase(refund_repo_mock, QueryCache())

        with self.assertRaises(ValidationError):
            use_case.update_status('r1', 'pending')
        refund_repo_mock.atualizar_status.assert_not_called()

    def test_status_de_reembolso_normalizado(self):
        refund_repo_mock = Mock()
        use_case = AdminRefundsUseCase(refund_repo_mock, QueryCache())

        use_case.update_status('r1', 'APPROVED', 'ok')

        refund_repo_mock.atualizar_status.assert_called_once_with('r1', 'approved', 'ok')

    def test_papel_invalido(self):
        user_repo_mock = Mock()
        use_case = AdminUsersUseCase(user_repo_mock, QueryCache())

        with self.assertRaises(ValidationError):
            use_case.update_role('u1', 'root')


# ====================================================================
# CHECKOUT
# ====================================================================

class TestCheckoutOrchestrator(unittest.TestCase):

    def setUp(self):
        self.cart_mock = Mock()
        self.cart_mock.is_empty = False
        self.cart_mock.total = Decimal('120')
        self.cart_mock.get_order_items.return_value = [
            OrderItem(product='p1', name='Caneca', qty=6, price=Decimal('20'), image='img'),
        ]
        self.orders_mock = Mock()
        self.coupons_mock = Mock()
        self.payment_provider_mock = Mock()
        self.navigator_mock = Mock()

        self.checkout = CheckoutOrchestrator(
            cart=self.cart_mock,
            orders_use_case=self.orders_mock,
            coupons_use_case=self.coupons_mock,
            payment_provider=self.payment_provider_mock,
            navigator=self.navigator_mock,
            user_email='ana@example.com',
        )
        self.endereco = {'address': 'Rua das Flores, 100', 'city': 'Recife', 'postalCode': '50000', 'country': 'BR'}

    def _order(self, total=Decimal('108.00')):
        return Order(id='o1', order_items=[], shipping_address=None, payment_method='stripe',
                     tax_price=Decimal('8.00'), shipping_price=Decimal('0'), total_price=total)

    def _ate_o_pagamento(self):
        self.checkout.enter_address(self.endereco)
        self.orders_mock.create_order.return_value = self._order()
        self.checkout.submit_shipping()

    def test_carrinho_vazio_redireciona(self):
        self.cart_mock.is_empty = True

        with self.assertRaises(EmptyCartError):
            self.checkout.begin()

        self.navigator_mock.redirect.assert_called_once_with(settings.CART_URL)

    def test_submit_sem_endereco(self):
        with self.assertRaises(InvalidAddressError):
            self.checkout.submit_shipping()

        self.assertIs(self.checkout.step, CheckoutStep.SHIPPING)
        self.orders_mock.create_order.assert_not_called()

    def test_endereco_salvo(self):
        salvo = SavedAddress(id='a1', label='Casa', address='Rua A, 10', city='Recife',
                             postal_code='50000', country='BR', is_default=True)

        endereco = self.checkout.select_address(salvo)

        self.assertEqual(endereco, ShippingAddress('Rua A, 10', 'Recife', '50000', 'BR'))

    def test_cupom_recalcula_o_total(self):
        """
        Cenário: carrinho de 120 com cupom de 20: total 108 e etapa inalterada.
        """
        self.coupons_mock.validate_coupon.return_value = CouponValidation(
            valid=True, coupon=Mock(), discount_amount=Decimal('20'),
        )

        resumo = self.checkout.apply_coupon('MENOS20')

        self.coupons_mock.validate_coupon.assert_called_once_with('MENOS20', Decimal('120'))
        self.assertEqual(resumo.total, Decimal('108.00'))
        self.assertIs(self.checkout.step, CheckoutStep.SHIPPING)

        self.checkout.remove_coupon()
        self.assertEqual(self.checkout.pricing.total, Decimal('129.60'))

    def test_cupom_invalido_mantem_o_estado(self):
        self.coupons_mock.validate_coupon.side_effect = InvalidCouponError()

        with self.assertRaises(InvalidCouponError):
            self.checkout.apply_coupon('XYZ')

        self.assertEqual(self.checkout.discount, Decimal('0'))
        self.assertIsNone(self.checkout.coupon)

    def test_submit_envia_os_totais_do_cliente(self):
        self.coupons_mock.validate_coupon.return_value = CouponValidation(
            valid=True, coupon=Mock(), discount_amount=Decimal('20'),
        )
        self.checkout.apply_coupon('MENOS20')

        self._ate_o_pagamento()

        kwargs = self.orders_mock.create_order.call_args.kwargs
        self.assertEqual(kwargs['tax_price'], Decimal('8.00'))
        self.assertEqual(kwargs['shipping_price'], Decimal('0'))
        self.assertEqual(kwargs['total_price'], Decimal('108.00'))
        self.assertEqual(kwargs['payment_method'], 'stripe')
        self.assertIs(self.checkout.step, CheckoutStep.PAYMENT)

    def test_total_divergente_usa_o_do_servidor(self):
        self.checkout.enter_address(self.endereco)
        self.orders_mock.create_order.return_value = self._order(total=Decimal('130.00'))

        with self.assertLogs('vitrine.core.checkout', level='WARNING'):
            pedido = self.checkout.submit_shipping()

        self.assertEqual(pedido.total_price, Decimal('130.00'))
        self.assertIs(self.checkout.order, pedido)

    def test_cupom_bloqueado_depois_da_entrega(self):
        self._ate_o_pagamento()

        with self.assertRaises(InvalidTransitionError):
            self.checkout.apply_coupon('MENOS20')
        with self.assertRaises(InvalidTransitionError):
            self.checkout.enter_address(self.endereco)

    def test_pagar_antes_de_criar_o_pedido(self):
        with self.assertRaises(InvalidTransitionError):
            self.checkout.pay({})

    def test_pagamento_recusado_mantem_a_etapa(self):
        # ARRANGE
        self._ate_o_pagamento()
        self.orders_mock.create_payment_intent.return_value = 'pi_123_secret_abc'
        self.payment_provider_mock.confirm_payment.return_value = PaymentConfirmation(
            succeeded=False, payment_intent_id='pi_123', error_message='Cartão recusado.',
        )

        # ACT e ASSERT
        with self.assertRaises(PaymentFailedError):
            self.checkout.pay({'payment_method': 'pm_card'})

        self.assertIs(self.checkout.step, CheckoutStep.PAYMENT)
        self.orders_mock.mark_paid.assert_not_called()
        self.cart_mock.clear_cart.assert_not_called()

    def test_pagamento_confirmado(self):
        # ARRANGE
        self._ate_o_pagamento()
        self.orders_mock.create_payment_intent.return_value = 'pi_123_secret_abc'
        self.payment_provider_mock.confirm_payment.return_value = PaymentConfirmation(
            succeeded=True, payment_intent_id='pi_123', status='succeeded',
        )
        self.orders_mock.mark_paid.return_value = self._order()

        # ACT
        self.checkout.pay({'payment_method': 'pm_card'})

        # ASSERT
        self.payment_provider_mock.confirm_payment.assert_called_once_with(
            'pi_123_secret_abc', {'payment_method': 'pm_card'},
        )
        order_id, resultado = self.orders_mock.mark_paid.call_args[0]
        self.assertEqual(order_id, 'o1')
        self.assertEqual(resultado.id, 'pi_123')
        self.assertEqual(resultado.status, 'succeeded')
        self.assertEqual(resultado.email_address, 'ana@example.com')
        self.cart_mock.clear_cart.assert_called_once_with()
        self.assertIs(self.checkout.step, CheckoutStep.CONFIRMATION)

    def test_falha_ao_criar_pedido_mantem_a_entrega(self):
        self.checkout.enter_address(self.endereco)
        self.orders_mock.create_order.side_effect = TransportError()

        with self.assertRaises(TransportError):
            self.checkout.submit_shipping()

        self.assertIs(self.checkout.step, CheckoutStep.SHIPPING)
        self.assertIsNone(self.checkout.order)

    def test_falha_ao_marcar_como_pago_mantem_a_etapa(self):
        self._ate_o_pagamento()
        self.orders_mock.create_payment_intent.return_value = 'pi_123_secret_abc'
        self.payment_provider_mock.confirm_payment.return_value = PaymentConfirmation(
            succeeded=True, payment_intent_id='pi_123', status='succeeded',
        )
        self.orders_mock.mark_paid.side_effect = TransportError()

        with self.assertRaises(TransportError):
            self.checkout.pay({'payment_method': 'pm_card'})

        self.assertIs(self.checkout.step, CheckoutStep.PAYMENT)
        self.assertIsNone(self.checkout.payment_result)
        self.cart_mock.clear_cart.assert_not_called()

    def test_nova_tentativa_depois_de_confirmado_nao_cobra_de_novo(self):
        """
        Cenário: o provedor confirma, mas "marcar como pago" falha uma vez.
        A segunda chamada só repete o "marcar como pago", com o mesmo resultado.
        """
        # ARRANGE
        provedor = PaymentProviderMock()
        self.checkout.payment_provider = provedor
        self._ate_o_pagamento()
        self.orders_mock.create_payment_intent.side_effect = ['pi_1_secret_a', 'pi_2_secret_b']
        self.orders_mock.mark_paid.side_effect = [TransportError(), self._order()]

        # ACT
        with self.assertRaises(TransportError):
            self.checkout.pay({})
        self.checkout.pay({})

        # ASSERT
        self.assertEqual(provedor.confirmations, ['pi_1_secret_a'])
        self.orders_mock.create_payment_intent.assert_called_once_with('o1')
        primeiro, segundo = [call.args[1] for call in self.orders_mock.mark_paid.call_args_list]
        self.assertEqual(primeiro, segundo)
        self.assertEqual(segundo.id, 'pi_1')
        self.cart_mock.clear_cart.assert_called_once_with()
        self.assertIs(self.checkout.step, CheckoutStep.CONFIRMATION)


# ====================================================================
# COMPOSIÇÃO (Storefront)
# ====================================================================

class TestBuildStorefront(unittest.TestCase):

    def setUp(self):
        self.http_mock = Mock()
        self.http_mock.headers = {}
        self.routes = {}
        self.http_mock.request.side_effect = self._route
        self.storage = InMemoryStorage()
        self.navigator = Navigator()
        self.storefront = build_storefront(
            api_url='http://loja.test/api',
            storage=self.storage,
            payment_provider=PaymentProviderMock(),
            navigator=self.navigator,
            session=self.http_mock,
        )

    def _route(self, method, url, params=None, json=None, timeout=None):
        path = url.split('/api', 1)[1]
        respostas = self.routes[(method, path)]
        status, body = respostas.pop(0) if len(respostas) > 1 else respostas[0]
        return _response(status, body)

    def test_sessao_expirada_limpa_o_usuario_e_redireciona(self):
        # ARRANGE
        self.storefront.session._set_user(User(id='u1', email='ana@example.com', name='Ana'))
        self.routes[('GET', '/orders/myorders')] = [(401, {'success': False, 'message': 'Não autorizado'})]
        self.routes[('POST', '/auth/refresh')] = [(401, {'success': False, 'message': 'Refresh expirado'})]

        # ACT
        with self.assertRaises(AuthenticationError):
            self.storefront.orders.my_orders()

        # ASSERT
        self.assertIsNone(self.storefront.session.user)
        self.assertEqual(self.navigator.history, [settings.LOGIN_URL])

    def test_carrinho_troca_de_chave_no_login(self):
        # ARRANGE
        self.storefront.cart.add_item(Product(id='p9', name='Boné', price=Decimal('15')))
        self.storage.blobs['cart-u1'] = {
            'items': [{'_id': 'p1', 'name': 'Caneca', 'price': '20', 'quantity': 2}], 'total': '999',
        }
        self.routes[('POST', '/auth/login')] = [(200, {
            'success': True, 'data': {'user': {'_id': 'u1', 'email': 'ana@example.com', 'name': 'Ana'}},
        })]

        # ACT
        self.storefront.session.login('ana@example.com', 'segredo')

        # ASSERT
        self.assertEqual(self.storefront.cart.item_count, 2)
        self.assertEqual(self.storefront.cart.total, Decimal('40'))
        self.assertIn(settings.GUEST_CART_KEY, self.storage.blobs)

    def test_start_sem_sessao_segue_como_visitante(self):
        self.routes[('GET', '/auth/me')] = [(401, {'success': False, 'message': 'Não autorizado'})]

        usuario = self.storefront.start()

        self.assertIsNone(usuario)
        self.assertFalse(self.storefront.session.is_loading)
        self.assertEqual(self.navigator.history, [])
        chamadas = [c.args[:2] for c in self.http_mock.request.call_args_list]
        self.assertEqual(chamadas, [('GET', 'http://loja.test/api/auth/me')])

    def test_novo_checkout_usa_o_email_da_sessao(self):
        self.storefront.session._set_user(User(id='u1', email='ana@example.com', name='Ana'))

        checkout = self.storefront.new_checkout()

        self.assertEqual(checkout.user_email, 'ana@example.com')
        self.assertIs(checkout.cart, self.storefront.cart)
        self.assertEqual(self.http_mock.request.call_args_list, [])


if __name__ == '__main__':
    unittest.main()
