"""
Context processors para templates Django.
"""
from vitrine import settings
from vitrine.infrastructure.storage import DjangoSessionStorage
from vitrine.presentation.stores import CartStore


def cart_context(request):
    """
    Adiciona o carrinho guardado na sessão do Django ao contexto global dos templates.
    Usa o carrinho do usuário logado (se houver) ou o de visitante.
    """
    user = getattr(request, 'user', None)
    user_id = getattr(user, 'pk', None) if getattr(user, 'is_authenticated', False) else None

    storage = DjangoSessionStorage(request.session)
    cart = CartStore(storage.repository(settings.cart_storage_key(user_id)))
    return {
        'cart': cart,
        'cart_item_count': cart.item_count,
        'cart_total': cart.total,
    }
