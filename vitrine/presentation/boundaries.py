# vitrine/presentation/boundaries.py
"""
Fronteiras de erro da camada de apresentação.

- ActionBoundary: executa uma ação do usuário; erros conhecidos (VitrineError) viram
  uma notificação de erro e um ActionResult com ok=False.
- ErrorBoundary: renderiza uma "view"; qualquer exceção inesperada é registrada no
  log e substituída por um Fallback com a opção "tentar novamente".
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from vitrine.core.exceptions import VitrineError, ValidationError
from vitrine.core.ports import INotifier

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    ok: bool
    value: Any = None
    error: Optional[VitrineError] = None

    @property
    def field_errors(self) -> dict:
        if isinstance(self.error, ValidationError):
            return self.error.field_errors
        return {}


class ActionBoundary:

    def __init__(self, notifier: INotifier):
        self.notifier = notifier

    def perform(self, action: Callable[[], Any], success_message: Optional[str] = None,
                failure_message: Optional[str] = None) -> ActionResult:
        try:
            value = action()
        except VitrineError as e:
            if failure_message:
                self.notifier.error(failure_message, e.message)
            else:
                self.notifier.error(e.message)
            return ActionResult(ok=False, error=e)

        if success_message:
            self.notifier.success(success_message)
        return ActionResult(ok=True, value=value)


@dataclass
class Fallback:
    """Substitui a view que falhou; `retry()` executa a renderização de novo."""
    error: BaseException
    message: str
    retry: Callable[[], Any]


class ErrorBoundary:

    DEFAULT_MESSAGE = "Algo deu errado. Tente novamente."

    def __init__(self, notifier: Optional[INotifier] = None):
        self.notifier = notifier

    def render(self, view: Callable[[], Any]) -> Any:
        try:
            return view()
        except Exception as e:
            logger.exception("Erro inesperado ao renderizar %s", getattr(view, '__name__', view))
            message = e.message if isinstance(e, VitrineError) else self.DEFAULT_MESSAGE
            if self.notifier is not None:
                self.notifier.error(message)
            return Fallback(error=e, message=message, retry=lambda: self.render(view))
