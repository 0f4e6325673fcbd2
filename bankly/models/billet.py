"""Billet (boleto) payloads: issuing, cancelling and paying."""
from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import Field, field_validator

from .base import BanklyModel, digits_only, positive_amount

__all__ = ["BilletAccount", "BilletPayer", "DepositBillet", "CancelBillet", "BillPayment"]


class BilletAccount(BanklyModel):
    number: str
    type: Literal["Checking", "Payment"] = "Checking"

    @field_validator("number")
    @classmethod
    def _number(cls, v: str) -> str:
        return digits_only(v, name="account number")


class BilletPayer(BanklyModel):
    name: str = Field(min_length=1)
    trade_name: Optional[str] = None
    document: str
    address: Optional[dict] = None

    @field_validator("document")
    @classmethod
    def _doc(cls, v: str) -> str:
        return digits_only(v, name="payer document")


class DepositBillet(BanklyModel):
    alias: Optional[str] = None
    document_number: str
    amount: str
    due_date: date
    emission_fee: bool = False
    type: Literal["Deposit", "Levy"] = "Deposit"
    account: BilletAccount
    payer: Optional[BilletPayer] = None

    @field_validator("document_number")
    @classmethod
    def _doc(cls, v: str) -> str:
        return digits_only(v, name="document number")

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: str) -> str:
        return positive_amount(v)


class CancelBillet(BanklyModel):
    authentication_code: str = Field(min_length=1)
    account: BilletAccount


class BillPayment(BanklyModel):
    """Confirmation of a previously validated boleto/utility payment."""

    id: str = Field(min_length=1)
    amount: float
    description: Optional[str] = None
    bank_branch: str
    bank_account: str

    @field_validator("amount")
    @classmethod
    def _amount(cls, v: float) -> float:
        return positive_amount(v)

    @field_validator("bank_branch", "bank_account")
    @classmethod
    def _numeric(cls, v: str, info) -> str:
        return digits_only(v, name=info.field_name)
