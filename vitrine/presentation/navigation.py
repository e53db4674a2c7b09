# vitrine/presentation/navigation.py
import logging
from typing import Callable, List, Optional

from vitrine.core.ports import INavigator

logger = logging.getLogger(__name__)


class Navigator(INavigator):
    """
    Registra os redirecionamentos "duros" (login quando a sessão expira, carrinho
    quando o checkout começa vazio). `on_redirect` permite ligar a navegação real.
    """

    def __init__(self, on_redirect: Optional[Callable[[str], None]] = None):
        self.on_redirect = on_redirect
        self.history: List[str] = []

    def redirect(self, path: str):
        logger.info("Redirecionando para %s", path)
        self.history.append(path)
        if self.on_redirect is not None:
            self.on_redirect(path)

    @property
    def current(self) -> Optional[str]:
        return self.history[-1] if self.history else None
