# vitrine/presentation/notifications.py
"""
Notificações transitórias ("toasts").

Mensagens repetidas (mesmo tipo e texto) são agrupadas em uma só, exibida como
"mensagem (×N)". A contagem zera após TOAST_RESET_DELAY segundos sem repetição.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Tuple

from django.contrib import messages

from vitrine import settings
from vitrine.core.ports import INotifier

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    level: str
    message: str
    description: Optional[str] = None
    count: int = 1
    updated_at: float = 0.0

    @property
    def text(self) -> str:
        return f"{self.message} (×{self.count})" if self.count > 1 else self.message


class Notifier(INotifier):
    """
    Notificador em memória com de-duplicação.
    `sink`, se informado, recebe cada notificação exibida ou atualizada.
    """

    _LOG_LEVELS = {
        'success': logging.INFO,
        'info': logging.INFO,
        'warning': logging.WARNING,
        'error': logging.ERROR,
    }

    def __init__(self, sink: Optional[Callable[[Notification], None]] = None,
                 reset_delay: float = None, clock: Callable[[], float] = time.monotonic):
        self.sink = sink
        self.reset_delay = settings.TOAST_RESET_DELAY if reset_delay is None else reset_delay
        self._clock = clock
        self._active: Dict[Tuple[str, str], Notification] = {}
        self.history: Deque[Notification] = deque(maxlen=settings.TOAST_HISTORY_LIMIT)

    def success(self, message: str, description: Optional[str] = None):
        return self._show('success', message, description)

    def error(self, message: str, description: Optional[str] = None):
        return self._show('error', message, description)

    def info(self, message: str, description: Optional[str] = None):
        return self._show('info', message, description)

    def warning(self, message: str, description: Optional[str] = None):
        return self._show('warning', message, description)

    def _show(self, level: str, message: str, description: Optional[str]) -> Notification:
        now = self._clock()
        self._forget_expired(now)
        key = (level, message)
        notification = self._active.get(key)

        if notification is not None:
            notification.count += 1
            notification.description = description
            notification.updated_at = now
        else:
            notification = Notification(level=level, message=message, description=description, updated_at=now)
            self._active[key] = notification
            self.history.append(notification)

        logger.log(self._LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, notification.text)
        if self.sink is not None:
            self.sink(notification)
        return notification

    def _forget_expired(self, now: float):
        expired = [key for key, n in self._active.items() if now - n.updated_at >= self.reset_delay]
        for key in expired:
            del self._active[key]


class DjangoMessagesNotifier(Notifier):
    """Encaminha as notificações para o framework de mensagens do Django."""

    _DJANGO_LEVELS = {
        'success': messages.SUCCESS,
        'info': messages.INFO,
        'warning': messages.WARNING,
        'error': messages.ERROR,
    }

    def __init__(self, request, reset_delay: float = None, clock: Callable[[], float] = time.monotonic):
        super().__init__(sink=self._add_message, reset_delay=reset_delay, clock=clock)
        self.request = request

    def _add_message(self, notification: Notification):
        # Mensagens agrupadas só aparecem uma vez na página; as repetições apenas atualizam o contador.
        if notification.count > 1:
            return
        text = notification.message
        if notification.description:
            text = f"{text}: {notification.description}"
        try:
            messages.add_message(self.request, self._DJANGO_LEVELS[notification.level], text)
        except messages.MessageFailure:
            logger.warning("MessageMiddleware não instalado; notificação apenas registrada no log: %s", text)
