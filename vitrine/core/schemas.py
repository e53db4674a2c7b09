"""
Schemas de validação dos formulários do cliente.

Cada modelo Pydantic abaixo valida os dados ANTES de irem para a API. O servidor
valida de novo; aqui o objetivo é devolver mensagens por campo sem um round-trip.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from vitrine.core.exceptions import ValidationError

SchemaT = TypeVar('SchemaT', bound=BaseModel)


class Schema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


# --- Autenticação ---

class LoginSchema(Schema):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterSchema(Schema):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6, description="Mínimo de 6 caracteres")


# --- Checkout / Conta ---

class ShippingAddressSchema(Schema):
    address: str = Field(..., min_length=5, description="Endereço com pelo menos 5 caracteres")
    city: str = Field(..., min_length=2)
    postal_code: str = Field(..., min_length=4, alias='postalCode')
    country: str = Field(..., min_length=2)


class SavedAddressSchema(ShippingAddressSchema):
    label: str = Field("Home", min_length=1, description="Ex.: Home, Work, Office")
    is_default: bool = Field(False, alias='isDefault')


# --- Avaliações e reembolsos ---

class ReviewSchema(Schema):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class RefundItemSchema(Schema):
    product: str = Field(..., min_length=1)
    qty: int = Field(..., ge=1)


class RefundRequestSchema(Schema):
    reason: Literal["damaged", "wrong_item", "not_as_described", "changed_mind", "other"]
    description: Optional[str] = None
    items: List[RefundItemSchema] = Field(..., min_length=1)


# --- Admin ---

class ProductSchema(Schema):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    stock: int = Field(..., ge=0)


class CouponSchema(Schema):
    code: str = Field(..., min_length=3)
    discount_type: Literal["percentage", "fixed"] = Field(..., alias='discountType')
    discount_value: Decimal = Field(..., gt=0, alias='discountValue')
    min_purchase: Decimal = Field(Decimal('0'), ge=0, alias='minPurchase')
    max_uses: int = Field(0, ge=0, alias='maxUses')
    is_active: bool = Field(True, alias='isActive')
    expires_at: Optional[datetime] = Field(None, alias='expiresAt')

    @pydantic.field_validator('code')
    @classmethod
    def code_upper(cls, value: str) -> str:
        return value.upper()

    @pydantic.model_validator(mode='after')
    def percentage_limit(self):
        if self.discount_type == 'percentage' and self.discount_value > 100:
            raise ValueError("Desconto percentual não pode passar de 100%.")
        return self


# ====================================================================
# VALIDAÇÃO
# ====================================================================

def validate(schema: Type[SchemaT], data: Dict[str, Any]) -> SchemaT:
    """Valida `data` contra o schema; erros viram ValidationError com mensagens por campo."""
    try:
        return schema.model_validate(data or {})
    except pydantic.ValidationError as e:
        field_errors = {}
        for error in e.errors():
            field = '.'.join(str(part) for part in error.get('loc', ())) or '__all__'
            field_errors.setdefault(field, error.get('msg', 'Valor inválido.'))
        message = ', '.join(f"{field}: {msg}" for field, msg in field_errors.items())
        raise ValidationError(message, field_errors=field_errors) from e


def to_payload(instance: BaseModel) -> Dict[str, Any]:
    """Serializa para o formato da API (camelCase quando houver alias, JSON-compatível)."""
    return instance.model_dump(mode='json', by_alias=True, exclude_none=True)
