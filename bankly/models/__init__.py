"""Typed request payloads accepted by :class:`bankly.client.BanklyClient`."""

from .base import BanklyModel, Payload
from .billet import BilletAccount, BilletPayer, BillPayment, CancelBillet, DepositBillet
from .customer import (
    Address,
    BusinessCustomer,
    Customer,
    LegalRepresentative,
    PaymentAccount,
    Phone,
)
from .document import DocumentAnalysis
from .pix import (
    AddressingKey,
    Bank,
    BankAccount,
    Location,
    Payer,
    PixAccount,
    PixCashout,
    PixDynamicQrCode,
    PixEntries,
    PixQrCodeData,
    PixRefund,
    PixStaticQrCode,
)

__all__ = [
    "Payload",
    "BanklyModel",
    "Address",
    "Phone",
    "Customer",
    "LegalRepresentative",
    "BusinessCustomer",
    "PaymentAccount",
    "BilletAccount",
    "BilletPayer",
    "DepositBillet",
    "CancelBillet",
    "BillPayment",
    "DocumentAnalysis",
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
