"""
Configurações do cliente Vitrine.

Os valores são lidos de variáveis de ambiente (ou de um arquivo .env) via python-decouple.
As constantes de negócio (imposto, frete) são fixas e não configuráveis.
"""

import logging.config
import os
from decimal import Decimal
from pathlib import Path

from decouple import config, Csv


# ====================================================================
# API REMOTA
# ====================================================================

API_URL = config('VITRINE_API_URL', default='http://localhost:5000/api')

# Timeout (segundos) de cada requisição HTTP.
REQUEST_TIMEOUT = config('VITRINE_REQUEST_TIMEOUT', default=15, cast=int)

# Endpoints que nunca disparam o refresh de sessão (evita recursão infinita).
REFRESH_PATH = '/auth/refresh'
SESSION_PROBE_PATH = '/auth/me'
NO_RETRY_PATHS = config('VITRINE_NO_RETRY_PATHS', default=f'{REFRESH_PATH},{SESSION_PROBE_PATH}', cast=Csv())


# ====================================================================
# NAVEGAÇÃO
# ====================================================================

LOGIN_URL = config('VITRINE_LOGIN_URL', default='/login')
CART_URL = config('VITRINE_CART_URL', default='/cart')


# ====================================================================
# ESTADO PERSISTIDO (carrinho / lista de desejos)
# ====================================================================

STATE_DIR = Path(config('VITRINE_STATE_DIR', default=os.path.join('~', '.vitrine'))).expanduser()

WISHLIST_STORAGE_KEY = 'wishlist-storage'
GUEST_CART_KEY = 'cart-guest'


def cart_storage_key(user_id=None) -> str:
    """Chave do carrinho persistido: um carrinho por usuário, ou o carrinho de visitante."""
    return f"cart-{user_id}" if user_id else GUEST_CART_KEY


# ====================================================================
# REGRAS DE PREÇO (fixas)
# ====================================================================

TAX_RATE = Decimal('0.08')
FREE_SHIPPING_THRESHOLD = Decimal('100')
SHIPPING_COST = Decimal('10')

PLACEHOLDER_IMAGE = (
    'https://images.unsplash.com/photo-1560343090-f0409e92791a'
    '?auto=format&fit=crop&q=80&w=200'
)


# ====================================================================
# PAGAMENTO (Stripe)
# ====================================================================

STRIPE_API_URL = config('STRIPE_API_URL', default='https://api.stripe.com/v1')
STRIPE_TIMEOUT = config('STRIPE_TIMEOUT', default=15, cast=int)


# ====================================================================
# NOTIFICAÇÕES
# ====================================================================

# Janela (segundos) em que notificações repetidas são agrupadas como "(×N)".
TOAST_RESET_DELAY = 5.0
TOAST_DURATION = 5.0
# Quantas notificações recentes o Notifier guarda em `history`.
TOAST_HISTORY_LIMIT = 50


# ====================================================================
# LOGGING
# ====================================================================

LOG_LEVEL = config('LOG_LEVEL', default='INFO')
LOG_FILE = config('LOG_FILE', default=str(STATE_DIR / 'logs' / 'vitrine.log'))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'level': LOG_LEVEL,
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
        'file': {
            'level': LOG_LEVEL,
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOG_FILE,
            'maxBytes': 1024 * 1024 * 5,  # 5 MB
            'backupCount': 5,
            'formatter': 'verbose',
        },
    },
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {name} {message}',
            'style': '{',
        },
    },
    'loggers': {
        'vitrine': {
            'handlers': ['console', 'file'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}


def configure_logging(logging_config: dict = None):
    """Aplica a configuração de logging (cria o diretório do arquivo de log se necessário)."""
    logging_config = logging_config or LOGGING
    file_handler = logging_config.get('handlers', {}).get('file')
    if file_handler:
        Path(file_handler['filename']).parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(logging_config)
