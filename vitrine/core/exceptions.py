class VitrineError(Exception):
    """Classe base para todas as exceções do cliente Vitrine."""
    def __init__(self, message="Ocorreu um erro inesperado."):
        self.message = message
        super().__init__(self.message)

# ===============================================
# ERROS DE TRANSPORTE E DA API REMOTA
# ===============================================

class TransportError(VitrineError):
    """Falha de rede: a requisição nem chegou a ter uma resposta HTTP."""
    def __init__(self, message="Não foi possível conectar ao servidor.", original=None):
        self.original = original
        super().__init__(message)

class ApiError(VitrineError):
    """Erro reportado pelo servidor (resposta não-2xx ou envelope com success=false)."""
    def __init__(self, message="A requisição falhou.", status_code=None, code=None, details=None):
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(message)

class ValidationError(ApiError):
    """Erros de validação por campo (do servidor ou dos schemas locais)."""
    def __init__(self, message="Os dados fornecidos são inválidos.", field_errors=None, status_code=None):
        self.field_errors = field_errors or {}
        super().__init__(message, status_code=status_code, details=self.field_errors)

class AuthenticationError(ApiError):
    """HTTP 401: sessão ausente ou expirada."""
    def __init__(self, message="Sua sessão expirou. Faça login novamente.", status_code=401, code=None, details=None):
        super().__init__(message, status_code=status_code, code=code, details=details)

class NotFoundError(ApiError):
    """HTTP 404: o recurso solicitado não existe."""
    def __init__(self, message="O recurso solicitado não foi encontrado.", status_code=404, code=None, details=None):
        super().__init__(message, status_code=status_code, code=code, details=details)

class BusinessRuleError(ApiError):
    """Rejeição de regra de negócio (estoque insuficiente, política de reembolso etc.)."""
    pass

# ===============================================
# ERROS DE ESTADO LOCAL
# ===============================================

class ItemNotFoundError(VitrineError):
    """Erro levantado quando um item não está no carrinho/lista local."""
    def __init__(self, message="O item solicitado não foi encontrado."):
        super().__init__(message)

# ===============================================
# ERROS DE FLUXO DE COMPRA E PAGAMENTO
# ===============================================

class EmptyCartError(VitrineError):
    """Erro levantado ao tentar fazer checkout com carrinho vazio."""
    def __init__(self, message="O carrinho de compras está vazio."):
        super().__init__(message)

class InvalidCouponError(VitrineError):
    """O servidor recusou o cupom informado."""
    def __init__(self, message="Cupom inválido."):
        super().__init__(message)

class InvalidAddressError(VitrineError):
    """Erro levantado quando o checkout avança sem endereço de entrega válido."""
    def __init__(self, message="Informe um endereço de entrega válido."):
        super().__init__(message)

class InvalidTransitionError(VitrineError):
    """Operação não permitida na etapa atual (checkout ou política de retry)."""
    def __init__(self, message="Operação não permitida no estado atual."):
        super().__init__(message)

class PaymentFailedError(VitrineError):
    """Erro levantado quando o provedor de pagamento não confirma a transação."""
    def __init__(self, message="A transação de pagamento foi rejeitada ou falhou."):
        super().__init__(message)

