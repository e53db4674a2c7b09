# vitrine/infrastructure/testes.py

import json
import os
import tempfile
import unittest
from decimal import Decimal
from unittest.mock import Mock, patch

import requests

from vitrine import settings
from vitrine.core.entities import CartItem, OrderItem, PaymentResult, Product, ProductQuery, ShippingAddress
from vitrine.core.exceptions import (
    ApiError, AuthenticationError, BusinessRuleError, InvalidTransitionError, NotFoundError,
    PaymentFailedError, TransportError, ValidationError,
)
from vitrine.infrastructure.api_client import ApiClient, Envelope, RequestAttempt
from vitrine.infrastructure.gateways import PaymentProviderMock, StripePaymentProvider
from vitrine.infrastructure.mappers import CartSnapshotMapper, CouponMapper, ProductMapper, ProductPageMapper
from vitrine.infrastructure.repositories import (
    AuthRepositoryApi, CouponRepositoryApi, OrderRepositoryApi, ProductRepositoryApi, RefundRepositoryApi,
)
from vitrine.infrastructure.storage import DjangoSessionStorage, InMemoryStorage, JsonFileStorage


def _response(status_code, body=None, raw=None):
    """Resposta HTTP simulada; `raw` simula um corpo que não é JSON."""
    response = Mock()
    response.status_code = status_code
    if raw is not None:
        response.content = raw
        response.json.side_effect = ValueError("not json")
    else:
        response.content = b'{}' if body is not None else b''
        response.json.return_value = body
    return response


OK = {'success': True, 'data': {'orders': []}}
UNAUTHORIZED = {'success': False, 'message': 'Não autorizado'}


# ====================================================================
# CLIENTE HTTP
# ====================================================================

class ApiClientRetryTestCase(unittest.TestCase):
    """Política de retry único em 401."""

    def setUp(self):
        self.session_mock = Mock()
        self.session_mock.headers = {}
        self.on_expired = Mock()
        self.client = ApiClient(
            base_url='http://loja.test/api',
            session=self.session_mock,
            on_session_expired=self.on_expired,
            no_retry_paths=['/auth/refresh', '/auth/me'],
        )

    def _paths(self):
        return [(c.args[0], c.args[1]) for c in self.session_mock.request.call_args_list]

    def test_401_renova_e_repete_uma_vez(self):
        # ARRANGE: 401 na origem, refresh ok, repetição ok
        self.session_mock.request.side_effect = [
            _response(401, UNAUTHORIZED),
            _response(200, {'success': True}),
            _response(200, OK),
        ]

        # ACT
        envelope = self.client.get('/orders/myorders')

        # ASSERT
        self.assertTrue(envelope.success)
        self.assertEqual(self._paths(), [
            ('GET', 'http://loja.test/api/orders/myorders'),
            ('POST', 'http://loja.test/api/auth/refresh'),
            ('GET', 'http://loja.test/api/orders/myorders'),
        ])
        self.on_expired.assert_not_called()

    def test_segundo_401_propaga_sem_novo_refresh(self):
        self.session_mock.request.side_effect = [
            _response(401, UNAUTHORIZED),
            _response(200, {'success': True}),
            _response(401, UNAUTHORIZED),
        ]

        with self.assertRaises(AuthenticationError):
            self.client.get('/orders/myorders')

        self.assertEqual(self.session_mock.request.call_count, 3)
        self.on_expired.assert_not_called()

    def test_refresh_recusado_expira_a_sessao(self):
        self.session_mock.request.side_effect = [
            _response(401, UNAUTHORIZED),
            _response(401, {'success': False, 'message': 'Refresh expirado'}),
        ]

        with self.assertRaises(AuthenticationError) as ctx:
            self.client.put('/orders/o1/pay', json={'id': 'pi_1'})

        self.assertEqual(ctx.exception.message, 'Não autorizado')
        self.assertEqual(self.session_mock.request.call_count, 2)
        self.on_expired.assert_called_once_with()

    def test_sonda_de_sessao_nunca_dispara_refresh(self):
        self.session_mock.request.return_value = _response(401, UNAUTHORIZED)

        with self.assertRaises(AuthenticationError):
            self.client.get(settings.SESSION_PROBE_PATH)

        self.assertEqual(self.session_mock.request.call_count, 1)
        self.on_expired.assert_not_called()

    def test_endpoints_de_autenticacao_comparados_pelo_caminho_inteiro(self):
        self.assertTrue(self.client.is_auth_endpoint('/auth/me'))
        self.assertTrue(self.client.is_auth_endpoint('auth/me/'))
        self.assertTrue(self.client.is_auth_endpoint('/auth/refresh?x=1'))
        self.assertFalse(self.client.is_auth_endpoint('/auth/merge'))
        self.assertFalse(self.client.is_auth_endpoint('/auth/me/orders'))

    def test_caminho_parecido_com_a_sonda_ainda_renova(self):
        self.session_mock.request.side_effect = [
            _response(401, UNAUTHORIZED),
            _response(200, {'success': True}),
            _response(200, OK),
        ]

        self.client.post('/auth/merge', json={})

        self.assertEqual(self.session_mock.request.call_count, 3)

    def test_refresh_com_falha_de_rede_expira_a_sessao(self):
        self.session_mock.request.side_effect = [
            _response(401, UNAUTHORIZED),
            requests.exceptions.ConnectionError("sem rede"),
        ]

        with self.assertRaises(AuthenticationError):
            self.client.get('/users/addresses')

        self.on_expired.assert_called_once_with()

    def test_falha_no_callback_nao_esconde_o_erro_original(self):
        self.on_expired.side_effect = RuntimeError("boom")
        self.session_mock.request.side_effect = [_response(401, UNAUTHORIZED), _response(401, UNAUTHORIZED)]

        with self.assertLogs('vitrine.infrastructure.api_client', level='ERROR'):
            with self.assertRaises(AuthenticationError):
                self.client.get('/orders')

    def test_tentativa_so_pode_ser_repetida_uma_vez(self):
        attempt = RequestAttempt(method='GET', path='/orders')
        attempt.mark_retried()

        self.assertTrue(attempt.retried)
        with self.assertRaises(InvalidTransitionError):
            attempt.mark_retried()


class ApiClientErrorsTestCase(unittest.TestCase):
    """Normalização das respostas de erro."""

    def setUp(self):
        self.session_mock = Mock()
        self.session_mock.headers = {}
        self.client = ApiClient(base_url='http://loja.test/api/', session=self.session_mock)

    def test_content_type_json(self):
        self.assertEqual(self.session_mock.headers['Content-Type'], 'application/json')
        self.assertEqual(self.client.base_url, 'http://loja.test/api')

    def test_erros_de_validacao_por_campo(self):
        self.session_mock.request.return_value = _response(400, {
            'success': False,
            'errors': [
                {'field': 'email', 'message': 'E-mail inválido'},
                {'field': 'password', 'message': 'Senha curta'},
            ],
        })

        with self.assertRaises(ValidationError) as ctx:
            self.client.post('/auth/register', json={})

        self.assertEqual(ctx.exception.message, 'E-mail inválido, Senha curta')
        self.assertEqual(ctx.exception.field_errors, {'email': 'E-mail inválido', 'password': 'Senha curta'})
        self.assertEqual(ctx.exception.status_code, 400)

    def test_404(self):
        self.session_mock.request.return_value = _response(404, {'success': False, 'message': 'Produto não existe'})

        with self.assertRaises(NotFoundError) as ctx:
            self.client.get('/products/x')
        self.assertEqual(ctx.exception.message, 'Produto não existe')

    def test_regra_de_negocio_com_codigo(self):
        self.session_mock.request.return_value = _response(409, {
            'success': False, 'error': {'message': 'Estoque insuficiente', 'code': 'OUT_OF_STOCK'},
        })

        with self.assertRaises(BusinessRuleError) as ctx:
            self.client.post('/orders', json={})
        self.assertEqual(ctx.exception.code, 'OUT_OF_STOCK')
        self.assertEqual(ctx.exception.message, 'Estoque insuficiente')

    def test_500_sem_json(self):
        self.session_mock.request.return_value = _response(500, raw=b'<html>erro</html>')

        with self.assertRaises(ApiError) as ctx:
            self.client.get('/products')
        self.assertEqual(ctx.exception.message, 'HTTP 500')
        self.assertNotIsInstance(ctx.exception, BusinessRuleError)

    def test_falha_de_rede(self):
        erro = requests.exceptions.Timeout("timeout")
        self.session_mock.request.side_effect = erro

        with self.assertRaises(TransportError) as ctx:
            self.client.get('/products')
        self.assertIs(ctx.exception.original, erro)

    def test_envelope_com_success_false(self):
        envelope = Envelope.from_json({'success': False, 'message': 'Falhou'}, status_code=200)

        with self.assertRaises(ApiError) as ctx:
            envelope.require("Padrão")
        self.assertEqual(ctx.exception.message, 'Falhou')

    def test_envelope_cursor(self):
        envelope = Envelope.from_json({'success': True, 'data': [], 'meta': {'nextCursor': 'abc', 'hasMore': True}})

        self.assertEqual(envelope.next_cursor, 'abc')
        self.assertTrue(envelope.has_more)


# ====================================================================
# MAPPERS
# ====================================================================

class MappersTestCase(unittest.TestCase):

    def test_pagina_em_lista_com_meta(self):
        pagina = ProductPageMapper.to_entity(
            [{'_id': 'p1', 'name': 'Caneca', 'price': 19.9}], {'nextCursor': 'c2', 'hasMore': True},
        )

        self.assertEqual(pagina.items[0].price, Decimal('19.9'))
        self.assertEqual(pagina.next_cursor, 'c2')
        self.assertTrue(pagina.has_more)

    def test_pagina_aninhada(self):
        pagina = ProductPageMapper.to_entity({
            'data': [{'id': 'p1', 'name': 'Caneca', 'price': '10'}],
            'pagination': {'nextCursor': None, 'hasMore': False, 'limit': 12},
        })

        self.assertEqual(pagina.items[0].id, 'p1')
        self.assertFalse(pagina.has_more)
        self.assertEqual(pagina.limit, 12)

    def test_snapshot_do_carrinho_ignora_entradas_invalidas(self):
        itens = CartSnapshotMapper.to_items({'items': [
            {'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 3},
            'lixo',
            {'_id': 'p2', 'name': 'Zero', 'price': '5', 'quantity': 0},
        ]})

        self.assertEqual(len(itens), 1)
        self.assertEqual(itens[0].quantity, 3)

    def test_snapshot_grava_o_total(self):
        item = CartItem(product=Product(id='p1', name='Caneca', price=Decimal('10')), quantity=2)

        snapshot = CartSnapshotMapper.to_dict([item], Decimal('20'))

        self.assertEqual(snapshot['total'], '20')
        self.assertEqual(snapshot['items'][0]['quantity'], 2)
        json.dumps(snapshot)

    def test_campos_inteiros_invalidos_viram_zero(self):
        produto = ProductMapper.to_entity({'_id': 'p1', 'name': 'Caneca', 'price': '10', 'stock': 'n/a'})

        self.assertEqual(produto.stock, 0)

    def test_snapshot_soma_entradas_do_mesmo_produto(self):
        itens = CartSnapshotMapper.to_items({'items': [
            {'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 1},
            {'_id': 'p2', 'name': 'Camiseta', 'price': '50', 'quantity': 1},
            {'_id': 'p1', 'name': 'Caneca', 'price': '12', 'quantity': 2},
        ]})

        self.assertEqual([(i.product_id, i.quantity) for i in itens], [('p1', 3), ('p2', 1)])
        self.assertEqual(itens[0].product.price, Decimal('12'))

    def test_desconto_ausente_fica_indefinido(self):
        sem_desconto = CouponMapper.to_validation({'valid': True})
        desconto_zero = CouponMapper.to_validation({'valid': True, 'discountAmount': 0})

        self.assertIsNone(sem_desconto.discount_amount)
        self.assertEqual(desconto_zero.discount_amount, Decimal('0'))


# ====================================================================
# ARMAZENAMENTO
# ====================================================================

class StorageTestCase(unittest.TestCase):

    def test_memoria_isola_copias(self):
        repo = InMemoryStorage().repository('cart-guest')
        estado = {'items': []}

        repo.save(estado)
        estado['items'].append('mutado')

        self.assertEqual(repo.load(), {'items': []})

    def test_arquivo_json(self):
        with tempfile.TemporaryDirectory() as directory:
            repo = JsonFileStorage(directory).repository(settings.WISHLIST_STORAGE_KEY)
            self.assertIsNone(repo.load())

            repo.save({'items': [{'_id': 'p1'}]})

            self.assertTrue(os.path.exists(os.path.join(directory, 'wishlist-storage.json')))
            self.assertEqual(repo.load(), {'items': [{'_id': 'p1'}]})

            repo.clear()
            self.assertIsNone(repo.load())
            repo.clear()

    def test_arquivo_corrompido_e_descartado(self):
        with tempfile.TemporaryDirectory() as directory:
            with open(os.path.join(directory, 'cart-guest.json'), 'w', encoding='utf-8') as fp:
                fp.write('{"items": [')
            repo = JsonFileStorage(directory).repository('cart-guest')

            with self.assertLogs('vitrine.infrastructure.storage', level='WARNING'):
                self.assertIsNone(repo.load())

    def test_sessao_django(self):
        class FakeSession(dict):
            modified = False

        session = FakeSession()
        repo = DjangoSessionStorage(session).repository('cart-u1')

        repo.save({'items': []})
        self.assertTrue(session.modified)
        self.assertEqual(repo.load(), {'items': []})

        session['cart-u1'] = 'corrompido'
        self.assertIsNone(repo.load())

        repo.clear()
        self.assertNotIn('cart-u1', session)


# ====================================================================
# REPOSITÓRIOS
# ====================================================================

class RepositoriesTestCase(unittest.TestCase):

    def setUp(self):
        self.client_mock = Mock()

    def test_listagem_envia_os_filtros(self):
        self.client_mock.get.return_value = Envelope.from_json({
            'success': True, 'data': [{'_id': 'p1', 'name': 'Caneca', 'price': 10}], 'meta': {'hasMore': False},
        })
        repo = ProductRepositoryApi(self.client_mock)

        pagina = repo.listar(ProductQuery(search='caneca', categories=['casa', 'cozinha'], cursor='c1'))

        self.client_mock.get.assert_called_once_with('/products', params={
            'search': 'caneca', 'category': ['casa', 'cozinha'], 'cursor': 'c1',
        })
        self.assertEqual(len(pagina.items), 1)

    def test_produto_inexistente(self):
        self.client_mock.get.return_value = Envelope.from_json({'success': True, 'data': None})

        with self.assertRaises(NotFoundError):
            ProductRepositoryApi(self.client_mock).buscar_por_id('p404')

    def test_criacao_de_pedido(self):
        self.client_mock.post.return_value = Envelope.from_json({
            'success': True, 'data': {'order': {'_id': 'o1', 'orderItems': [], 'totalPrice': 64}},
        })
        repo = OrderRepositoryApi(self.client_mock)

        pedido = repo.criar(
            [OrderItem(product='p1', name='Caneca', qty=2, price=Decimal('25'), image='img')],
            ShippingAddress('Rua A, 10', 'Recife', '50000', 'BR'),
            'stripe', Decimal('4.00'), Decimal('10'), Decimal('64.00'),
        )

        path = self.client_mock.post.call_args.args[0]
        payload = self.client_mock.post.call_args.kwargs['json']
        self.assertEqual(path, '/orders')
        self.assertEqual(payload['orderItems'][0], {
            'product': 'p1', 'name': 'Caneca', 'qty': 2, 'price': 25.0, 'image': 'img',
        })
        self.assertEqual(payload['shippingAddress']['postalCode'], '50000')
        self.assertEqual(payload['totalPrice'], 64.0)
        self.assertEqual(pedido.total_price, Decimal('64'))

    def test_marcar_como_pago(self):
        self.client_mock.put.return_value = Envelope.from_json({
            'success': True, 'data': {'order': {'_id': 'o1', 'isPaid': True}},
        })
        resultado = PaymentResult(id='pi_1', status='succeeded', update_time='2024-01-01T00:00:00+00:00',
                                  email_address='ana@example.com')

        pedido = OrderRepositoryApi(self.client_mock).marcar_como_pago('o1', resultado)

        self.client_mock.put.assert_called_once_with('/orders/o1/pay', json={
            'id': 'pi_1', 'status': 'succeeded', 'update_time': '2024-01-01T00:00:00+00:00',
            'email_address': 'ana@example.com',
        })
        self.assertTrue(pedido.is_paid)

    def test_validacao_de_cupom(self):
        self.client_mock.post.return_value = Envelope.from_json({'success': True, 'data': {
            'valid': True, 'discountAmount': 12,
            'coupon': {'_id': 'c1', 'code': 'OFF10', 'discountType': 'percentage', 'discountValue': 10},
        }})

        resultado = CouponRepositoryApi(self.client_mock).validar('OFF10', Decimal('120'))

        self.client_mock.post.assert_called_once_with('/coupons/validate', json={'code': 'OFF10', 'cartTotal': 120.0})
        self.assertTrue(resultado.valid)
        self.assertEqual(resultado.discount_amount, Decimal('12'))

    def test_sonda_com_success_false(self):
        self.client_mock.get.return_value = Envelope.from_json({'success': False})

        self.assertIsNone(AuthRepositoryApi(self.client_mock).me())

    def test_pedido_sem_reembolso(self):
        self.client_mock.get.return_value = Envelope.from_json({'success': True, 'data': {'refund': None}})

        self.assertIsNone(RefundRepositoryApi(self.client_mock).buscar_por_pedido('o1'))


# ====================================================================
# GATEWAYS
# ====================================================================

class StripePaymentProviderTestCase(unittest.TestCase):

    def setUp(self):
        self.provider = StripePaymentProvider('pk_test_123', api_base_url='https://stripe.test/v1')

    def test_id_do_intent(self):
        self.assertEqual(StripePaymentProvider.intent_id_from_secret('pi_123_secret_abc'), 'pi_123')
        with self.assertRaises(PaymentFailedError):
            StripePaymentProvider.intent_id_from_secret('invalido')

    def test_sem_chave_publica(self):
        with self.assertRaises(PaymentFailedError):
            StripePaymentProvider('')

    @patch('vitrine.infrastructure.gateways.requests.post')
    def test_confirmacao_com_sucesso(self, mock_post):
        mock_post.return_value = _response(200, {'id': 'pi_123', 'status': 'succeeded'})

        confirmacao = self.provider.confirm_payment('pi_123_secret_abc', {'payment_method': 'pm_card_visa'})

        self.assertTrue(confirmacao.succeeded)
        self.assertEqual(confirmacao.payment_intent_id, 'pi_123')
        url = mock_post.call_args.args[0]
        kwargs = mock_post.call_args.kwargs
        self.assertEqual(url, 'https://stripe.test/v1/payment_intents/pi_123/confirm')
        self.assertEqual(kwargs['data'], {'client_secret': 'pi_123_secret_abc', 'payment_method': 'pm_card_visa'})
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer pk_test_123')

    @patch('vitrine.infrastructure.gateways.requests.post')
    def test_cartao_recusado(self, mock_post):
        mock_post.return_value = _response(402, {'error': {
            'message': 'Your card was declined.', 'payment_intent': {'status': 'requires_payment_method'},
        }})

        confirmacao = self.provider.confirm_payment('pi_123_secret_abc', {})

        self.assertFalse(confirmacao.succeeded)
        self.assertEqual(confirmacao.error_message, 'Your card was declined.')
        self.assertEqual(confirmacao.status, 'requires_payment_method')

    @patch('vitrine.infrastructure.gateways.requests.post')
    def test_falha_de_conexao(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("sem rede")

        with self.assertRaises(PaymentFailedError):
            self.provider.confirm_payment('pi_123_secret_abc', {})

    def test_mock_recusa_quando_pedido(self):
        provider = PaymentProviderMock()

        self.assertTrue(provider.confirm_payment('pi_1_secret_x', {}).succeeded)
        self.assertFalse(provider.confirm_payment('pi_2_secret_y', {'fail': True}).succeeded)
        self.assertEqual(provider.confirmations, ['pi_1_secret_x', 'pi_2_secret_y'])


if __name__ == '__main__':
    unittest.main()
