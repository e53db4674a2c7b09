# vitrine/infrastructure/api_client.py
"""
Cliente HTTP da API REST da loja.

- Toda requisição carrega as credenciais (cookies) da sessão `requests.Session`.
- Em um 401, o cliente tenta renovar a sessão UMA vez e repete a requisição original
  UMA vez. Cada requisição tem sua própria máquina de estados (NOT_RETRIED -> RETRIED),
  o que torna a garantia "no máximo uma renovação por requisição" estrutural.
- Respostas de erro são normalizadas para as exceções de `vitrine.core.exceptions`.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests

from vitrine import settings
from vitrine.core.exceptions import (
    ApiError, AuthenticationError, BusinessRuleError, InvalidTransitionError,
    NotFoundError, TransportError, ValidationError,
)

logger = logging.getLogger(__name__)


# ====================================================================
# ENVELOPE PADRÃO DA API
# ====================================================================

@dataclass
class Envelope:
    """{ success, message?, data?, error?, errors?, meta? }"""
    success: bool
    data: Any = None
    message: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    errors: Optional[List[Dict[str, Any]]] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None

    @classmethod
    def from_json(cls, body: Any, status_code: Optional[int] = None) -> 'Envelope':
        if not isinstance(body, dict):
            # Resposta fora do envelope: trata o corpo inteiro como dado.
            return cls(success=True, data=body, status_code=status_code)
        return cls(
            success=bool(body.get('success', True)),
            data=body.get('data'),
            message=body.get('message'),
            error=body.get('error'),
            errors=body.get('errors'),
            meta=body.get('meta') or {},
            status_code=status_code,
        )

    @property
    def error_message(self) -> Optional[str]:
        if self.errors:
            messages = [e.get('message', '') for e in self.errors if isinstance(e, dict)]
            return ', '.join(m for m in messages if m) or None
        if isinstance(self.error, dict) and self.error.get('message'):
            return self.error['message']
        return self.message

    @property
    def next_cursor(self) -> Optional[str]:
        return self.meta.get('nextCursor')

    @property
    def has_more(self) -> bool:
        return bool(self.meta.get('hasMore'))

    def require(self, default_message: str) -> 'Envelope':
        """Levanta ApiError quando o servidor respondeu 2xx mas com success=false."""
        if not self.success:
            raise ApiError(self.error_message or default_message, status_code=self.status_code)
        return self

    def get(self, key: str, default=None):
        """Acessa `data[key]` (a API aninha o recurso: data.order, data.coupons...)."""
        if isinstance(self.data, dict):
            value = self.data.get(key)
            return default if value is None else value
        return default


# ====================================================================
# MÁQUINA DE ESTADOS DO RETRY
# ====================================================================

class RetryState(Enum):
    NOT_RETRIED = 'not-retried'
    RETRIED = 'retried'


@dataclass
class RequestAttempt:
    """Uma requisição de origem e seu estado na política de retry único."""
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    state: RetryState = RetryState.NOT_RETRIED

    @property
    def retried(self) -> bool:
        return self.state is RetryState.RETRIED

    def mark_retried(self):
        if self.state is RetryState.RETRIED:
            raise InvalidTransitionError(f"A requisição {self.method} {self.path} já foi repetida.")
        self.state = RetryState.RETRIED


# ====================================================================
# CLIENTE
# ====================================================================

class ApiClient:
    """Wrapper fino sobre `requests.Session` com a política de retry único em 401."""

    def __init__(
        self,
        base_url: str = None,
        session: requests.Session = None,
        timeout: int = None,
        on_session_expired: Optional[Callable[[], None]] = None,
        no_retry_paths=None,
    ):
        self.base_url = (base_url or settings.API_URL).rstrip('/')
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.on_session_expired = on_session_expired
        self.no_retry_paths = tuple(no_retry_paths or settings.NO_RETRY_PATHS)

        self.session = session if session is not None else requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    # --- Atalhos ---

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Envelope:
        return self.request('GET', path, params=params)

    def post(self, path: str, json: Any = None) -> Envelope:
        return self.request('POST', path, json=json)

    def put(self, path: str, json: Any = None) -> Envelope:
        return self.request('PUT', path, json=json)

    def delete(self, path: str) -> Envelope:
        return self.request('DELETE', path)

    # --- Núcleo ---

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> Envelope:
        attempt = RequestAttempt(method=method.upper(), path=path, params=params, json=json)

        while True:
            response = self._send(attempt)

            if response.status_code != 401:
                return self._handle_response(response)

            error = self._normalize_error(response)

            # O próprio refresh/sonda de sessão nunca dispara outro refresh.
            if self.is_auth_endpoint(attempt.path) or attempt.retried:
                raise error

            attempt.mark_retried()
            try:
                self.refresh()
            except (ApiError, TransportError) as refresh_error:
                logger.warning("Renovação de sessão falhou para %s %s: %s", attempt.method, attempt.path, refresh_error)
                self._session_expired()
                raise error from refresh_error

            logger.info("Sessão renovada; repetindo %s %s", attempt.method, attempt.path)

    def refresh(self) -> Envelope:
        """POST no endpoint de refresh. Um 401 aqui é propagado sem nova tentativa."""
        return self.request('POST', settings.REFRESH_PATH)

    def is_auth_endpoint(self, path: str) -> bool:
        """Compara o caminho normalizado (sem query string e sem barra final) com cada endpoint."""
        normalized = '/' + path.split('?', 1)[0].strip('/')
        return any(
            normalized.endswith('/' + marker.strip('/'))
            for marker in self.no_retry_paths if marker.strip('/')
        )

    # --- Auxiliares ---

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _send(self, attempt: RequestAttempt) -> requests.Response:
        try:
            return self.session.request(
                attempt.method,
                self._url(attempt.path),
                params=attempt.params,
                json=attempt.json,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Erro de conexão com a API: {e}", original=e) from e

    def _session_expired(self):
        if self.on_session_expired is None:
            return
        try:
            self.on_session_expired()
        except Exception:
            logger.exception("Falha no tratamento de sessão expirada.")

    @staticmethod
    def _body(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def _handle_response(self, response: requests.Response) -> Envelope:
        if response.status_code >= 400:
            raise self._normalize_error(response)
        return Envelope.from_json(self._body(response), status_code=response.status_code)

    def _normalize_error(self, response: requests.Response) -> ApiError:
        status = response.status_code
        body = self._body(response)

        if not isinstance(body, dict):
            message = f"HTTP {status}"
            if status == 401:
                return AuthenticationError(status_code=status)
            if status == 404:
                return NotFoundError(message, status_code=status)
            return ApiError(message, status_code=status)

        envelope = Envelope.from_json(body, status_code=status)
        message = envelope.error_message or f"HTTP {status}"
        error = envelope.error if isinstance(envelope.error, dict) else {}
        code = error.get('code')
        details = error.get('details')

        if envelope.errors and status in (400, 422):
            field_errors = {
                e.get('field') or '__all__': e.get('message', '')
                for e in envelope.errors if isinstance(e, dict)
            }
            return ValidationError(message, field_errors=field_errors, status_code=status)
        if status == 401:
            return AuthenticationError(message, status_code=status, code=code, details=details)
        if status == 404:
            return NotFoundError(message, status_code=status, code=code, details=details)
        if 400 <= status < 500:
            return BusinessRuleError(message, status_code=status, code=code, details=details)
        return ApiError(message, status_code=status, code=code, details=details)
