import logging
import uuid
from typing import Any, Dict

import requests

from vitrine import settings
from vitrine.core.entities import PaymentConfirmation
from vitrine.core.exceptions import PaymentFailedError
from vitrine.core.ports import IPaymentProvider

logger = logging.getLogger(__name__)


# ====================================================================
# GATEWAYS: Implementações concretas que se comunicam com APIs externas.
# ====================================================================

class StripePaymentProvider(IPaymentProvider):
    """
    Provedor de pagamento Stripe, do lado do cliente.

    Faz o mesmo que o widget de tokenização do navegador: recebe o client secret
    emitido pelo nosso servidor e confirma o PaymentIntent com a chave PÚBLICA.
    Nenhuma chave secreta passa por aqui.
    """

    # Mapeamento do status do Stripe para "sucesso" no checkout
    _SUCCESS_STATUSES = ("succeeded",)

    def __init__(self, publishable_key: str, api_base_url: str = None, timeout: int = None):
        if not publishable_key:
            raise PaymentFailedError("Chave pública do Stripe não configurada.")
        self.publishable_key = publishable_key
        self.api_base_url = (api_base_url or settings.STRIPE_API_URL).rstrip('/')
        self.timeout = timeout or settings.STRIPE_TIMEOUT

    @staticmethod
    def intent_id_from_secret(client_secret: str) -> str:
        """O client secret tem o formato `pi_XXX_secret_YYY`."""
        intent_id, sep, _ = client_secret.partition('_secret_')
        if not sep or not intent_id:
            raise PaymentFailedError("Client secret de pagamento inválido.")
        return intent_id

    def confirm_payment(self, client_secret: str, payment_details: Dict[str, Any]) -> PaymentConfirmation:
        intent_id = self.intent_id_from_secret(client_secret)

        headers = {
            "Authorization": f"Bearer {self.publishable_key}",
            "Idempotency-Key": str(uuid.uuid4()),  # Para evitar cobrança duplicada em re-envio
        }
        payload = {"client_secret": client_secret}
        payment_method = payment_details.get("payment_method")
        if payment_method:
            payload["payment_method"] = payment_method
        return_url = payment_details.get("return_url")
        if return_url:
            payload["return_url"] = return_url

        try:
            url = f"{self.api_base_url}/payment_intents/{intent_id}/confirm"
            response = requests.post(url, data=payload, headers=headers, timeout=self.timeout)
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise PaymentFailedError(f"Erro de conexão com a API do Stripe: {e}")
        except ValueError:
            raise PaymentFailedError("Resposta inválida do Stripe.")

        if response.status_code >= 400 or "error" in data:
            error = data.get("error") or {}
            message = error.get("message") or "Pagamento recusado."
            logger.info("Stripe recusou o PaymentIntent %s: %s", intent_id, message)
            return PaymentConfirmation(
                succeeded=False,
                payment_intent_id=intent_id,
                status=(error.get("payment_intent") or {}).get("status"),
                error_message=message,
            )

        status = data.get("status")
        return PaymentConfirmation(
            succeeded=status in self._SUCCESS_STATUSES,
            payment_intent_id=data.get("id", intent_id),
            status=status,
            error_message=None if status in self._SUCCESS_STATUSES else f"Status do pagamento: {status}",
        )


class PaymentProviderMock(IPaymentProvider):
    """
    Provedor Mock para desenvolvimento e testes.
    Aprova tudo, a menos que `payment_details["fail"]` seja verdadeiro.
    """

    def __init__(self):
        self.confirmations = []

    def confirm_payment(self, client_secret: str, payment_details: Dict[str, Any]) -> PaymentConfirmation:
        self.confirmations.append(client_secret)
        intent_id = client_secret.partition('_secret_')[0] or f"pi_mock_{uuid.uuid4().hex[:12]}"
        if payment_details.get("fail"):
            logger.info("[MOCK Pagamento] Recusado: %s", intent_id)
            return PaymentConfirmation(
                succeeded=False,
                payment_intent_id=intent_id,
                status="requires_payment_method",
                error_message=payment_details.get("error_message", "Cartão recusado."),
            )
        logger.info("[MOCK Pagamento] Aprovado: %s", intent_id)
        return PaymentConfirmation(succeeded=True, payment_intent_id=intent_id, status="succeeded")
