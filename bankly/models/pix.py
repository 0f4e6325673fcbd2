"""PIX payloads: addressing keys, cash-out/refund and QR codes."""
from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator

from .base import BanklyModel, digits_only, positive_amount

__all__ = [
    "Bank",
    "PixAccount",
    "BankAccount",
    "AddressingKey",
    "PixEntries",
    "PixCashout",
    "PixRefund",
    "Location",
    "Payer",
    "PixStaticQrCode",
    "PixDynamicQrCode",
    "PixQrCodeData",
]

KeyType = Literal["CPF", "CNPJ", "PHONE", "EMAIL", "EVP"]

_PHONE = re.compile(r"^\+55\d{10,11}$")
_EVP = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


class Bank(BanklyModel):
    ispb: str
    compe: Optional[str] = None
    name: Optional[str] = None

    @field_validator("ispb")
    @classmethod
    def _ispb(cls, v: str) -> str:
        return digits_only(v, length=8, name="ispb")


class PixAccount(BanklyModel):
    branch: str
    number: str
    type: Literal["CHECKING", "SAVINGS", "PAYMENT", "SALARY"] = "CHECKING"

    @field_validator("branch", "number")
    @classmethod
    def _numeric(cls, v: str, info) -> str:
        return digits_only(v, name=info.field_name)


class BankAccount(BanklyModel):
    """Holder + account + institution, used as cash-out sender/recipient."""

    document_number: str
    name: str = Field(min_length=1)
    account: PixAccount
    bank: Bank

    @field_validator("document_number")
    @classmethod
    def _doc(cls, v: str) -> str:
        digits_only(v, name="document number")
        if len(v) not in (11, 14):
            raise ValueError("document number should be a CPF or CNPJ")
        return v


class AddressingKey(BanklyModel):
    type: KeyType
    value: Optional[str] = None

    @model_validator(mode="after")
    def _value_matches_type(self) -> "AddressingKey":
        v = self.value
        if self.type == "EVP":
            # random keys are generated by the bank on registration
            if v and not _EVP.match(v):
                raise ValueError("EVP key should be a UUID")
        elif not v:
            raise ValueError(f"{self.type} key requires a value")
        elif self.type == "CPF":
            digits_only(v, length=11, name="CPF key")
        elif self.type == "CNPJ":
            digits_only(v, length=14, name="CNPJ key")
        elif self.type == "PHONE" and not _PHONE.match(v):
            raise ValueError("PHONE key should look like +55DDNNNNNNNNN")
        elif self.type == "EMAIL" and "@" not in v:
            raise ValueError("EMAIL key should be an e-mail address")
        return self


class PixEntries(BanklyModel):
    addressing_key: AddressingKey
    account: PixAccount


class PixCashout(BanklyModel):
    """Cash-out order. ``initialization_type`` selects the rule set."""

    amount: str
    description: str = Field(min_length=1)
    sender: BankAccount
    recipient: Optional[BankAccount] = None
    initialization_type: Literal["Manual", "Key", "StaticQrCode", "DynamicQrCode"]
    end_to_end_id: Optional[str] = None
    control_number: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: str) -> str:
        return positive_amount(v)

    @model_validator(mode="after")
    def _rules_for_type(self) -> "PixCashout":
        if self.initialization_type == "Manual" and self.recipient is None:
            raise ValueError("manual cash-out requires a recipient")
        if self.initialization_type != "Manual" and not self.end_to_end_id:
            raise ValueError("end to end id should be a string")
        return self


class PixRefund(BanklyModel):
    account: PixAccount
    authentication_code: str = Field(min_length=1)
    amount: str
    description: Optional[str] = None
    refund_code: Literal["BE08", "FR01", "MD06", "SL02"] = "MD06"

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: str) -> str:
        return positive_amount(v)


class Location(BanklyModel):
    city: str = Field(min_length=1)
    zip_code: str
    address_line: Optional[str] = None
    state: Optional[str] = None

    @field_validator("zip_code")
    @classmethod
    def _zip(cls, v: str) -> str:
        return digits_only(v, length=8, name="zip code")


class Payer(BanklyModel):
    name: str = Field(min_length=1)
    document_number: str
    type: Literal["CUSTOMER", "BUSINESS"]
    address: Location

    @field_validator("document_number")
    @classmethod
    def _doc(cls, v: str) -> str:
        return digits_only(v, name="document number")


class PixStaticQrCode(BanklyModel):
    addressing_key: AddressingKey
    recipient_name: str = Field(min_length=1)
    location: Location
    amount: Optional[str] = None
    conciliation_id: Optional[str] = Field(default=None, max_length=25)
    category_code: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else positive_amount(v)


class PixDynamicQrCode(BanklyModel):
    addressing_key: AddressingKey
    recipient_name: str = Field(min_length=1)
    conciliation_id: str = Field(min_length=1, max_length=35)
    amount: str
    single_payment: bool = True
    change_amount_type: Literal["ALLOWED", "NOT_ALLOWED"] = "NOT_ALLOWED"
    expires_at: Optional[str] = None
    payer: Optional[Payer] = None
    location: Location

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: str) -> str:
        return positive_amount(v)


class PixQrCodeData(BanklyModel):
    encoded_value: str = Field(min_length=1)
    document_number: str

    @field_validator("document_number")
    @classmethod
    def _doc(cls, v: str) -> str:
        return digits_only(v, name="document number")
