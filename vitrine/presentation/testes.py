# vitrine/presentation/testes.py

import unittest
from decimal import Decimal
from unittest.mock import Mock, patch

from django.contrib import messages

from vitrine import settings
from vitrine.core.entities import Product, User
from vitrine.core.exceptions import AuthenticationError, InvalidCouponError, ValidationError
from vitrine.infrastructure.storage import InMemoryStorage
from vitrine.presentation.boundaries import ActionBoundary, ErrorBoundary, Fallback
from vitrine.presentation.context_processors import cart_context
from vitrine.presentation.navigation import Navigator
from vitrine.presentation.notifications import DjangoMessagesNotifier, Notifier
from vitrine.presentation.stores import CartStore, SessionStore, WishlistStore


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


# ====================================================================
# CARRINHO
# ====================================================================

class TestCartStore(unittest.TestCase):

    def setUp(self):
        self.storage = InMemoryStorage()
        self.repo = self.storage.repository(settings.GUEST_CART_KEY)
        self.store = CartStore(self.repo)
        self.caneca = Product(id='p1', name='Caneca', price=Decimal('19.90'), images=['caneca.png'])
        self.camiseta = Product(id='p2', name='Camiseta', price=Decimal('50'))

    def test_adicionar_o_mesmo_produto_incrementa(self):
        self.store.add_item(self.caneca)
        self.store.add_item(self.caneca)
        self.store.add_item(self.camiseta)

        self.assertEqual(len(self.store.items), 2)
        self.assertEqual(self.store.item_count, 3)
        self.assertEqual(self.store.total, Decimal('89.80'))

    def test_quantidade_zero_remove(self):
        self.store.add_item(self.caneca)

        self.store.update_quantity('p1', 0)

        self.assertTrue(self.store.is_empty)
        self.assertEqual(self.store.total, Decimal('0'))

    def test_atualizar_quantidade_recalcula_o_total(self):
        self.store.add_item(self.camiseta)

        self.store.update_quantity('p2', 3)

        self.assertEqual(self.store.total, Decimal('150'))

    def test_estado_persistido_a_cada_mutacao(self):
        self.store.add_item(self.caneca)

        snapshot = self.repo.load()

        self.assertEqual(snapshot['items'][0]['_id'], 'p1')
        self.assertEqual(snapshot['items'][0]['quantity'], 1)
        self.assertEqual(snapshot['total'], '19.90')

    def test_total_gravado_nunca_e_confiado(self):
        """
        Cenário: o snapshot traz um total adulterado; a reidratação recalcula.
        """
        self.repo.save({'items': [{'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 2}], 'total': '1'})

        store = CartStore(self.repo)

        self.assertEqual(store.total, Decimal('20'))

    def test_itens_do_pedido(self):
        self.store.add_item(self.caneca)
        self.store.add_item(Product(id='p3', name='', price=Decimal('5')))

        itens = self.store.get_order_items()

        self.assertEqual(itens[0].image, 'caneca.png')
        self.assertEqual(itens[1].name, 'Unknown Product')
        self.assertEqual(itens[1].image, settings.PLACEHOLDER_IMAGE)

    def test_item_sem_id_e_descartado_do_pedido(self):
        self.repo.save({'items': [{'name': 'Fantasma', 'price': '5', 'quantity': 1}]})
        store = CartStore(self.repo)

        with self.assertLogs('vitrine.presentation.stores', level='WARNING'):
            itens = store.get_order_items()

        self.assertEqual(itens, [])

    def test_limpar(self):
        self.store.add_item(self.caneca)

        self.store.clear_cart()

        self.assertTrue(self.store.is_empty)
        self.assertEqual(self.repo.load()['items'], [])

    def test_trocar_de_repositorio(self):
        self.store.add_item(self.caneca)
        outro = self.storage.repository('cart-u1')

        self.store.switch_repository(outro)

        self.assertTrue(self.store.is_empty)
        self.store.switch_repository(self.repo)
        self.assertEqual(self.store.item_count, 1)

    def test_observadores(self):
        observador = Mock()
        cancelar = self.store.subscribe(observador)

        self.store.add_item(self.caneca)
        cancelar()
        self.store.add_item(self.caneca)

        observador.assert_called_once_with(self.store)

    def test_total_acompanha_uma_sequencia_de_mutacoes(self):
        passos = [
            lambda: self.store.add_item(self.caneca),
            lambda: self.store.add_item(self.camiseta),
            lambda: self.store.add_item(self.caneca),
            lambda: self.store.update_quantity('p2', 4),
            lambda: self.store.remove_item('p1'),
            lambda: self.store.add_item(self.caneca),
            lambda: self.store.update_quantity('p1', 3),
            lambda: self.store.update_quantity('p2', 0),
        ]

        for passo in passos:
            passo()
            esperado = sum((item.product.price * item.quantity for item in self.store.items), Decimal('0'))
            self.assertEqual(self.store.total, esperado)

        self.assertEqual(self.store.total, Decimal('59.70'))
        self.assertEqual(CartStore(self.repo).total, Decimal('59.70'))

    def test_snapshot_com_valores_invalidos_descarta_a_entrada(self):
        self.repo.save({'items': [
            {'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 'two'},
            {'_id': 'p2', 'name': 'Camiseta', 'price': '5', 'stock': 'n/a', 'quantity': 1},
            {'_id': 'p3', 'name': 'Boné', 'price': '7', 'images': 5, 'quantity': 1},
        ]})

        with self.assertLogs('vitrine.infrastructure.mappers', level='WARNING') as logs:
            store = CartStore(self.repo)

        self.assertEqual(len(logs.records), 2)
        self.assertEqual([item.product_id for item in store.items], ['p2'])
        self.assertEqual(store.items[0].product.stock, 0)
        self.assertEqual(store.total, Decimal('5'))

    def test_itens_repetidos_no_snapshot_viram_um_so(self):
        self.repo.save({'items': [
            {'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 1},
            {'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 2},
        ]})

        store = CartStore(self.repo)

        self.assertEqual(len(store.items), 1)
        self.assertEqual(store.item_count, 3)
        store.add_item(Product(id='p1', name='Caneca', price=Decimal('10')))
        self.assertEqual(store.item_count, 4)
        store.remove_item('p1')
        self.assertTrue(store.is_empty)


# ====================================================================
# LISTA DE DESEJOS
# ====================================================================

class TestWishlistStore(unittest.TestCase):

    def setUp(self):
        self.storage = InMemoryStorage()
        self.store = WishlistStore(self.storage.repository(settings.WISHLIST_STORAGE_KEY))
        self.caneca = Product(id='p1', name='Caneca', price=Decimal('19.90'))

    def test_adicionar_duas_vezes_nao_duplica(self):
        self.store.add_item(self.caneca)
        self.store.add_item(self.caneca)

        self.assertEqual(self.store.count, 1)
        self.assertTrue(self.store.is_in_wishlist('p1'))

    def test_toggle(self):
        self.assertTrue(self.store.toggle(self.caneca))
        self.assertFalse(self.store.toggle(self.caneca))
        self.assertFalse(self.store.is_in_wishlist('p1'))

    def test_persistida_na_chave_da_lista(self):
        self.store.add_item(self.caneca)

        recarregada = WishlistStore(self.storage.repository('wishlist-storage'))

        self.assertTrue(recarregada.is_in_wishlist('p1'))
        recarregada.clear_wishlist()
        self.assertEqual(recarregada.count, 0)

    def test_remover(self):
        self.store.add_item(self.caneca)

        self.store.remove_item('p1')

        self.assertFalse(self.store.is_in_wishlist('p1'))
        self.assertEqual(self.store.count, 0)
        self.assertEqual(self.storage.repository(settings.WISHLIST_STORAGE_KEY).load()['items'], [])

    def test_snapshot_com_repetidos_nao_duplica(self):
        repo = self.storage.repository('wishlist-antiga')
        repo.save({'items': [{'_id': 'p1', 'price': '1'}, {'_id': 'p1', 'price': '1'}]})

        self.assertEqual(WishlistStore(repo).count, 1)


# ====================================================================
# SESSÃO
# ====================================================================

class TestSessionStore(unittest.TestCase):

    def setUp(self):
        self.auth_mock = Mock()
        self.store = SessionStore(self.auth_mock)
        self.admin = User(id='u1', email='admin@example.com', name='Admin', role='admin')

    def test_carregando_ate_a_sonda_terminar(self):
        self.assertTrue(self.store.is_loading)
        self.auth_mock.current_user.return_value = self.admin

        self.store.load()

        self.assertFalse(self.store.is_loading)
        self.assertTrue(self.store.is_authenticated)
        self.assertTrue(self.store.is_admin)

    def test_sonda_com_falha_deixa_deslogado(self):
        self.auth_mock.current_user.side_effect = AuthenticationError()

        self.assertIsNone(self.store.load())
        self.assertFalse(self.store.is_authenticated)
        self.assertFalse(self.store.is_loading)

    def test_logout_limpa_mesmo_com_falha(self):
        self.auth_mock.login.return_value = self.admin
        self.store.login('admin@example.com', 'segredo')
        self.auth_mock.logout.side_effect = AuthenticationError()

        with self.assertRaises(AuthenticationError):
            self.store.logout()

        self.assertIsNone(self.store.user)

    def test_observadores_a_cada_mudanca(self):
        observador = Mock()
        self.store.subscribe(observador)
        self.auth_mock.register.return_value = User(id='u2', email='bia@example.com', name='Bia')

        self.store.register('Bia', 'bia@example.com', 'segredo')
        self.store.clear()

        self.assertEqual(observador.call_count, 2)
        self.assertFalse(self.store.is_admin)


# ====================================================================
# NOTIFICAÇÕES, FRONTEIRAS E NAVEGAÇÃO
# ====================================================================

class TestNotifier(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.sink = Mock()
        self.notifier = Notifier(sink=self.sink, clock=self.clock)

    def test_repeticoes_na_janela_sao_agrupadas(self):
        # A janela recomeça a cada repetição: 0s, 4s e 8s contam como a mesma notificação.
        self.notifier.error("Falha ao salvar")
        self.clock.now = 4
        self.notifier.error("Falha ao salvar")
        self.clock.now = 8
        notificacao = self.notifier.error("Falha ao salvar")

        self.assertEqual(notificacao.text, "Falha ao salvar (×3)")
        self.assertEqual(len(self.notifier.history), 1)
        self.assertEqual(self.sink.call_count, 3)

    def test_tipos_diferentes_nao_sao_agrupados(self):
        self.notifier.error("Salvo")
        self.notifier.success("Salvo")

        self.assertEqual(len(self.notifier.history), 2)

    def test_janela_expirada_reinicia_a_contagem(self):
        self.notifier.info("Carrinho atualizado")
        self.clock.now = settings.TOAST_RESET_DELAY + 1

        notificacao = self.notifier.info("Carrinho atualizado")

        self.assertEqual(notificacao.text, "Carrinho atualizado")
        self.assertEqual(len(self.notifier.history), 2)

    def test_grupos_expirados_sao_descartados(self):
        for i in range(10):
            self.notifier.info(f"Mensagem {i}")
        self.clock.now = settings.TOAST_RESET_DELAY + 1

        self.notifier.info("Nova")

        self.assertEqual(list(self.notifier._active), [('info', 'Nova')])

    def test_historico_limitado(self):
        for i in range(settings.TOAST_HISTORY_LIMIT + 10):
            self.notifier.info(f"Mensagem {i}")

        self.assertEqual(len(self.notifier.history), settings.TOAST_HISTORY_LIMIT)
        self.assertEqual(self.notifier.history[-1].message, f"Mensagem {settings.TOAST_HISTORY_LIMIT + 9}")

    @patch('vitrine.presentation.notifications.messages.add_message')
    def test_django_messages(self, mock_add_message):
        request = Mock()
        notifier = DjangoMessagesNotifier(request, clock=self.clock)

        notifier.success("Pedido criado", "Pedido #A1B2")
        notifier.success("Pedido criado", "Pedido #A1B2")

        mock_add_message.assert_called_once_with(request, messages.SUCCESS, "Pedido criado: Pedido #A1B2")

    @patch('vitrine.presentation.notifications.messages.add_message')
    def test_django_sem_middleware(self, mock_add_message):
        mock_add_message.side_effect = messages.MessageFailure("sem middleware")
        notifier = DjangoMessagesNotifier(Mock(), clock=self.clock)

        with self.assertLogs('vitrine.presentation.notifications', level='WARNING'):
            notifier.warning("Estoque baixo")


class TestActionBoundary(unittest.TestCase):

    def setUp(self):
        self.notifier_mock = Mock()
        self.boundary = ActionBoundary(self.notifier_mock)

    def test_sucesso(self):
        resultado = self.boundary.perform(lambda: 42, success_message="Feito")

        self.assertTrue(resultado.ok)
        self.assertEqual(resultado.value, 42)
        self.notifier_mock.success.assert_called_once_with("Feito")

    def test_erro_conhecido_vira_notificacao(self):
        def aplicar():
            raise InvalidCouponError("Cupom expirado")

        resultado = self.boundary.perform(aplicar, failure_message="Não foi possível aplicar o cupom")

        self.assertFalse(resultado.ok)
        self.assertIsInstance(resultado.error, InvalidCouponError)
        self.notifier_mock.error.assert_called_once_with("Não foi possível aplicar o cupom", "Cupom expirado")

    def test_erros_por_campo(self):
        def salvar():
            raise ValidationError("Dados inválidos", field_errors={'city': 'Muito curto'})

        resultado = self.boundary.perform(salvar)

        self.assertEqual(resultado.field_errors, {'city': 'Muito curto'})
        self.notifier_mock.error.assert_called_once_with("Dados inválidos")

    def test_erro_inesperado_propaga(self):
        def quebrar():
            raise KeyError('x')

        with self.assertRaises(KeyError):
            self.boundary.perform(quebrar)


class TestErrorBoundary(unittest.TestCase):

    def test_fallback_com_retry(self):
        view = Mock(side_effect=[RuntimeError("boom"), "pagina"])
        view.__name__ = 'product_detail'
        boundary = ErrorBoundary()

        with self.assertLogs('vitrine.presentation.boundaries', level='ERROR'):
            resultado = boundary.render(view)

        self.assertIsInstance(resultado, Fallback)
        self.assertEqual(resultado.message, ErrorBoundary.DEFAULT_MESSAGE)
        self.assertEqual(resultado.retry(), "pagina")

    def test_renderizacao_normal(self):
        self.assertEqual(ErrorBoundary(Mock()).render(lambda: "ok"), "ok")


class TestNavigator(unittest.TestCase):

    def test_registra_e_encaminha(self):
        destino = Mock()
        navigator = Navigator(on_redirect=destino)

        navigator.redirect(settings.LOGIN_URL)

        self.assertEqual(navigator.current, settings.LOGIN_URL)
        destino.assert_called_once_with(settings.LOGIN_URL)


class TestCartContext(unittest.TestCase):

    def _request(self, user):
        class FakeSession(dict):
            modified = False

        request = Mock()
        request.session = FakeSession()
        request.user = user
        return request

    def test_visitante(self):
        request = self._request(Mock(is_authenticated=False))
        request.session['cart-guest'] = {'items': [{'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 2}]}

        contexto = cart_context(request)

        self.assertEqual(contexto['cart_item_count'], 2)
        self.assertEqual(contexto['cart_total'], Decimal('20'))

    def test_usuario_logado_usa_o_proprio_carrinho(self):
        request = self._request(Mock(is_authenticated=True, pk=7))
        request.session['cart-guest'] = {'items': [{'_id': 'p1', 'name': 'Caneca', 'price': '10', 'quantity': 2}]}

        contexto = cart_context(request)

        self.assertEqual(contexto['cart_item_count'], 0)
        self.assertTrue(contexto['cart'].is_empty)


if __name__ == '__main__':
    unittest.main()
