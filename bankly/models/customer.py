"""Customer onboarding payloads (individual and business)."""
from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import Field, field_validator

from .base import BanklyModel, digits_only

_EMAIL = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

__all__ = [
    "Phone",
    "Address",
    "Customer",
    "LegalRepresentative",
    "BusinessCustomer",
    "PaymentAccount",
]


class Phone(BanklyModel):
    country_code: str = "55"
    number: str

    @field_validator("country_code", "number")
    @classmethod
    def _numeric(cls, v: str, info) -> str:
        return digits_only(v, name=info.field_name)


class Address(BanklyModel):
    zip_code: str
    address_line: str = Field(min_length=1)
    building_number: str = Field(min_length=1)
    complement: Optional[str] = None
    neighborhood: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=2, max_length=2)
    country: str = Field(default="BR", min_length=2)

    @field_validator("zip_code")
    @classmethod
    def _zip(cls, v: str) -> str:
        return digits_only(v, length=8, name="zip code")


class Customer(BanklyModel):
    """Individual (CPF) account holder."""

    phone: Phone
    address: Address
    social_name: Optional[str] = None
    register_name: str = Field(min_length=1)
    birth_date: date
    mother_name: str = Field(min_length=1)
    email: str = Field(pattern=_EMAIL)


class LegalRepresentative(Customer):
    document_number: str

    @field_validator("document_number")
    @classmethod
    def _cpf(cls, v: str) -> str:
        return digits_only(v, length=11, name="document number")


class BusinessCustomer(BanklyModel):
    """Business (CNPJ) account holder."""

    business_name: str = Field(min_length=1)
    trading_name: Optional[str] = None
    business_email: str = Field(pattern=_EMAIL)
    business_type: Literal["MEI", "EI", "EIRELI", "LTDA", "SA"]
    business_size: Literal["MEI", "ME", "EPP"]
    business_address: Address
    legal_representative: LegalRepresentative


class PaymentAccount(BanklyModel):
    account_type: Literal["PAYMENT_ACCOUNT"] = "PAYMENT_ACCOUNT"
