"""Bankly API facade.

One method per banking operation. Each method only picks the verb, path,
query/body shape and encoding, then delegates to :class:`bankly.http.Dispatcher`.
Results are returned exactly as decoded from the response.
"""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import requests

from . import config
from .auth import CredentialManager, default_manager
from .common.datetime import to_bankly_datetime
from .errors import ValidationError
from .http import FORM, JSON, ClientConfig, Dispatcher, RequestBuilder
from .models.base import BanklyModel, Payload
from .models.document import DocumentAnalysis

__all__ = ["BanklyClient", "PIX_USER_ID_HEADER"]

_log = logging.getLogger(__name__)

PIX_USER_ID_HEADER = "x-bkly-pix-user-id"

DateLike = Union[str, _dt.date, _dt.datetime]


def _serialize(payload: Any) -> Dict[str, Any]:
    """Run the payload's ``validate()`` (if any) and return ``to_dict()``.

    ``BanklyModel.to_dict()`` validates on its own, so models are validated once.
    """
    if not isinstance(payload, Payload):
        raise ValidationError(
            f"{type(payload).__name__} does not provide to_dict(); expected a Bankly payload"
        )
    try:
        if not isinstance(payload, BanklyModel):
            validate = getattr(payload, "validate", None)
            if callable(validate):
                validate()
        return payload.to_dict()
    except ValidationError:
        raise
    except (ValueError, TypeError) as exc:
        # pydantic.ValidationError is a ValueError
        raise ValidationError(str(exc)) from exc


def _as_mapping(value: Union[Mapping[str, Any], Payload]) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    return _serialize(value)


def _date_param(value: Optional[DateLike]) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return to_bankly_datetime(value)


class BanklyClient:
    """
    Client for the Bankly banking-as-a-service API.
    - Bearer token from the process-wide CredentialManager, or an explicit
      token set with :meth:`set_token` (never refreshed).
    - ``x-correlation-id`` on every call except the bank list.
    - Optional mTLS when cert path, key path and passphrase are all set.
    """

    def __init__(
        self,
        base_url: str = config.BANKLY_API_URL,
        *,
        token: Optional[str] = None,
        credential_manager: Optional[CredentialManager] = None,
        api_version: str = config.BANKLY_API_VERSION,
        mtls_cert_path: Optional[str] = None,
        mtls_key_path: Optional[str] = None,
        mtls_passphrase: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = config.BANKLY_TIMEOUT,
        verify: bool | str = True,
        sticky_pix_user_id: bool = False,
    ) -> None:
        env_cert, env_key, env_pass = config.mtls_settings()
        self.config = ClientConfig(
            base_url=base_url,
            api_version=api_version,
            mtls_cert_path=mtls_cert_path or env_cert,
            mtls_key_path=mtls_key_path or env_key,
            mtls_passphrase=mtls_passphrase or env_pass,
        )
        self._token = token
        self._credential_manager = credential_manager
        # legacy behaviour: PIX user id set by one call stays on the client
        self.sticky_pix_user_id = sticky_pix_user_id
        self._builder = RequestBuilder(self.config, self._resolve_token)
        self.http = Dispatcher(self._builder, session=session, timeout=timeout, verify=verify)

    # --- configuration ----------------------------------------------------------
    def set_token(self, token: str) -> None:
        """Use *token* for every later call; the credential manager is bypassed."""
        self._token = token

    def get_token(self) -> Optional[str]:
        return self._token

    def set_passphrase(self, passphrase: str) -> "BanklyClient":
        self.config.mtls_passphrase = passphrase
        return self

    def set_cert_path(self, path: str) -> "BanklyClient":
        self.config.mtls_cert_path = path
        return self

    def set_key_path(self, path: str) -> "BanklyClient":
        self.config.mtls_key_path = path
        return self

    def set_api_version(self, version: str) -> "BanklyClient":
        self.config.api_version = version
        self.config.headers["api-version"] = version
        return self

    def set_headers(self, headers: Mapping[str, str]) -> None:
        """Merge *headers* into the client-wide headers (visible to later calls)."""
        self.config.headers.update(headers)

    @property
    def credential_manager(self) -> CredentialManager:
        if self._credential_manager is None:
            self._credential_manager = default_manager()
        return self._credential_manager

    def _resolve_token(self) -> str:
        if self._token:
            return self._token
        return self.credential_manager.get_valid_token()

    def _pix_headers(self, document_number: str) -> Optional[Dict[str, str]]:
        header = {PIX_USER_ID_HEADER: document_number}
        if self.sticky_pix_user_id:
            self.set_headers(header)
            return None
        return header

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "BanklyClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Banks ----------------------------------------------------------------
    def get_bank_list(self, product: Optional[str] = None) -> Any:
        """GET /banklist (no correlation id)."""
        params = {"product": product} if product else None
        return self.http.get("/banklist", params)

    # --- Accounts -------------------------------------------------------------
    def get_balance(self, branch: str, account: str) -> Any:
        """GET /account/balance

        If this fails in staging, use :meth:`get_account` instead.
        """
        return self.http.get("/account/balance", {"branch": branch, "account": account})

    def get_account(self, account: str, include_balance: str = "true") -> Any:
        return self.http.get(f"/accounts/{account}", {"includeBalance": include_balance})

    def get_income_report(self, account: str, year: Optional[str] = None) -> Any:
        """GET /accounts/{account}/income-report; Bankly defaults to the previous year."""
        return self.http.get(f"/accounts/{account}/income-report", {"calendar": year})

    def get_income_report_print(self, account: str, year: Optional[str] = None) -> Any:
        """Income report PDF, base64-encoded inside the JSON body."""
        return self.http.get(f"/accounts/{account}/income-report/print", {"calendar": year})

    def get_statement(
        self,
        branch: str,
        account: str,
        offset: int = 1,
        limit: int = 20,
        details: str = "true",
        details_level_basic: str = "true",
    ) -> Any:
        return self.http.get(
            "/account/statement",
            {
                "branch": branch,
                "account": account,
                "offset": offset,
                "limit": limit,
                "details": details,
                "detailsLevelBasic": details_level_basic,
            },
        )

    def get_events(
        self,
        branch: str,
        account: str,
        page: int = 1,
        page_size: int = 20,
        include_details: str = "true",
        card_proxy: Iterable[str] = (),
        begin_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
    ) -> Any:
        """GET /events

        Deprecated for some Bankly environments; the response shape differs
        between them.
        """
        query: Dict[str, Any] = {
            "branch": branch,
            "account": account,
            "page": page,
            "pageSize": page_size,
            "includeDetails": include_details,
        }
        card_proxy = list(card_proxy)
        if card_proxy:
            query["cardProxy"] = card_proxy
        if begin_date:
            query["beginDateTime"] = _date_param(begin_date)
        if end_date:
            query["endDateTime"] = _date_param(end_date)
        return self.http.get("/events", query)

    def close_account(
        self, account: str, reason: str = "HOLDER_REQUEST", correlation_id: Optional[str] = None
    ) -> Any:
        """PATCH /accounts/{account}/closure (reason: HOLDER_REQUEST|COMMERCIAL_DISAGREEMENT)."""
        return self.http.patch(f"/accounts/{account}/closure", {"reason": reason}, correlation_id, JSON)

    # --- Transfers ------------------------------------------------------------
    def transfer(
        self,
        amount: int,
        description: str,
        sender: Union[Mapping[str, Any], Payload],
        recipient: Union[Mapping[str, Any], Payload],
        correlation_id: Optional[str] = None,
    ) -> Any:
        """POST /fund-transfers

        ``amount`` is in cents. Bankly infers the sender bank, so ``bankCode``
        is never sent for the sender.
        """
        sender_body = _as_mapping(sender)
        sender_body.pop("bankCode", None)
        body = {
            "amount": amount,
            "description": description,
            "sender": sender_body,
            "recipient": _as_mapping(recipient),
        }
        return self.http.post("/fund-transfers", body, correlation_id, JSON)

    def get_transfer_funds(
        self, branch: str, account: str, page_size: int = 10, next_page: Optional[str] = None
    ) -> Any:
        query: Dict[str, Any] = {"branch": branch, "account": account, "pageSize": page_size}
        if next_page:
            query["nextPage"] = next_page
        return self.http.get("/fund-transfers", query)

    def find_transfer_fund_by_auth_code(
        self, branch: str, account: str, authentication_code: str
    ) -> Any:
        return self.http.get(
            f"/fund-transfers/{authentication_code}", {"branch": branch, "account": account}
        )

    def get_transfer_status(self, branch: str, account: str, authentication_id: str) -> Any:
        return self.http.get(
            f"/fund-transfers/{authentication_id}/status", {"branch": branch, "account": account}
        )

    # --- Document analysis ----------------------------------------------------
    def document_analysis(
        self,
        document_number: str,
        document: DocumentAnalysis,
        correlation_id: Optional[str] = None,
    ) -> Any:
        """POST /document-analysis/{documentNumber}/deepface (multipart upload)."""
        fields = _serialize(document)
        return self.http.post(
            f"/document-analysis/{document_number}/deepface",
            fields,
            correlation_id,
            attachment=document,
        )

    def get_document_analysis(
        self,
        document_number: str,
        tokens: Iterable[str] = (),
        result_level: str = "ONLY_STATUS",
        correlation_id: Optional[str] = None,
    ) -> Any:
        query: List[tuple] = [("token", token) for token in tokens]
        query.append(("resultLevel", result_level))
        return self.http.get(f"/document-analysis/{document_number}", query, correlation_id)

    # --- Customers ------------------------------------------------------------
    def customer(
        self, document_number: str, customer: Payload, correlation_id: Optional[str] = None
    ) -> Any:
        """PUT /customers/{documentNumber}"""
        return self.http.put(f"/customers/{document_number}", _serialize(customer), correlation_id, JSON)

    def business_customer(
        self, document_number: str, customer: Payload, correlation_id: Optional[str] = None
    ) -> Any:
        """PUT /business/{documentNumber}"""
        return self.http.put(f"/business/{document_number}", _serialize(customer), correlation_id, JSON)

    def cancel_customer(
        self, document_number: str, reason: str = "HOLDER_REQUEST", correlation_id: Optional[str] = None
    ) -> Any:
        """Customer offboarding."""
        return self.http.patch(f"/customers/{document_number}/cancel", {"reason": reason}, correlation_id, JSON)

    def cancel_business(
        self, document_number: str, reason: str = "HOLDER_REQUEST", correlation_id: Optional[str] = None
    ) -> Any:
        """Business offboarding."""
        return self.http.patch(f"/business/{document_number}/cancel", {"reason": reason}, correlation_id, JSON)

    def get_customer(self, document_number: str, result_level: str = "DETAILED") -> Any:
        return self.http.get(f"/customers/{document_number}", {"resultLevel": result_level})

    def get_business_customer(self, document_number: str, result_level: str = "DETAILED") -> Any:
        return self.http.get(f"/business/{document_number}", {"resultLevel": result_level})

    def get_customer_accounts(self, document_number: str) -> Any:
        return self.http.get(f"/customers/{document_number}/accounts")

    def get_business_customer_accounts(self, document_number: str) -> Any:
        return self.http.get(f"/business/{document_number}/accounts")

    def create_customer_account(self, document_number: str, payment_account: Payload) -> Any:
        return self.http.post(
            f"/customers/{document_number}/accounts", _serialize(payment_account), None, JSON
        )

    def create_business_customer_account(self, document_number: str, payment_account: Payload) -> Any:
        return self.http.post(
            f"/business/{document_number}/accounts", _serialize(payment_account), None, JSON
        )

    # --- Bill payment ---------------------------------------------------------
    def payment_validate(self, code: str, correlation_id: Optional[str] = None) -> Any:
        """POST /bill-payment/validate (code: digitable line of a boleto or utility bill)."""
        return self.http.post("/bill-payment/validate", {"code": code}, correlation_id, JSON)

    def payment_confirm(self, bill_payment: Payload, correlation_id: Optional[str] = None) -> Any:
        """POST /bill-payment/confirm; reuse the correlation id from :meth:`payment_validate`."""
        return self.http.post("/bill-payment/confirm", _serialize(bill_payment), correlation_id, JSON)

    # --- Billets --------------------------------------------------------------
    def deposit_billet(self, deposit_billet: Payload) -> Any:
        return self.http.post("/bankslip", _serialize(deposit_billet), None, JSON)

    def print_billet(self, authentication_code: str) -> requests.Response:
        """GET /bankslip/{code}/pdf; returns the raw response (PDF bytes in ``.content``)."""
        return self.http.get(f"/bankslip/{authentication_code}/pdf", response_json=False)

    def get_billet(self, branch: str, account_number: str, authentication_code: str) -> Any:
        return self.http.get(f"/bankslip/branch/{branch}/number/{account_number}/{authentication_code}")

    def get_billet_by_date(self, when: DateLike) -> Any:
        return self.http.get(f"/bankslip/searchstatus/{_date_param(when)}")

    def get_billet_by_barcode(self, barcode: str) -> Any:
        return self.http.get(f"/bankslip/{barcode}")

    def cancel_billet(self, cancel_billet: Payload) -> Any:
        """DELETE /bankslip/cancel"""
        return self.http.delete("/bankslip/cancel", _serialize(cancel_billet))

    # --- PIX ------------------------------------------------------------------
    def register_pix_key(self, pix_entries: Payload) -> Any:
        """POST /pix/entries; links an addressing key to an account."""
        entries = _serialize(pix_entries)
        body = {"addressingKey": entries["addressingKey"], "account": entries["account"]}
        return self.http.post("/pix/entries", body, None, JSON)

    def get_pix_addressing_keys(self, account_number: str) -> Any:
        return self.http.get(f"/accounts/{account_number}/addressing-keys")

    def get_pix_addressing_key_value(self, document_number: str, addressing_key_value: str) -> Any:
        """GET /pix/entries/{key}; details of the account behind a key."""
        return self.http.get(
            f"/pix/entries/{addressing_key_value}",
            headers=self._pix_headers(document_number),
        )

    def delete_pix_addressing_key_value(self, addressing_key_value: str) -> Any:
        return self.http.delete(f"/pix/entries/{addressing_key_value}")

    def pix_cashout(self, pix_cashout: Payload, correlation_id: Optional[str] = None) -> Any:
        return self.http.post("/pix/cash-out", _serialize(pix_cashout), correlation_id, JSON)

    def pix_refund(self, pix_refund: Payload) -> Any:
        return self.http.post("/pix/cash-out:refund", _serialize(pix_refund), None, JSON)

    def qr_code(self, document_number: str, data: Payload) -> Any:
        """POST /pix/qrcodes/static/transfer"""
        return self.http.post(
            "/pix/qrcodes/static/transfer",
            _serialize(data),
            None,
            JSON,
            headers=self._pix_headers(document_number),
        )

    def dynamic_qr_code(self, document_number: str, data: Payload) -> Any:
        """POST /pix/qrcodes/dynamic/payment"""
        return self.http.post(
            "/pix/qrcodes/dynamic/payment",
            _serialize(data),
            None,
            JSON,
            headers=self._pix_headers(document_number),
        )

    def qr_code_decode(self, data: Payload) -> Any:
        """POST /pix/qrcodes/decode; the payload's documentNumber is the PIX user id."""
        qr_code = _serialize(data)
        document_number = qr_code.get("documentNumber")
        if not document_number:
            raise ValidationError("QR code decode payload requires documentNumber")
        return self.http.post(
            "/pix/qrcodes/decode",
            qr_code,
            None,
            JSON,
            headers=self._pix_headers(document_number),
        )

    # --- Webhooks -------------------------------------------------------------
    def get_webhook_messages(
        self,
        start_date: DateLike,
        end_date: DateLike,
        state: Optional[str] = None,
        event_name: Optional[str] = None,
        context: Optional[str] = None,
        page: int = 1,
        page_size: int = 100,
    ) -> Any:
        """GET /webhooks/processed-messages; ``None`` filters are not sent."""
        query = {
            "startDate": _date_param(start_date),
            "endDate": _date_param(end_date),
            "state": state,
            "eventName": event_name,
            "context": context,
            "page": page,
            "pageSize": page_size,
        }
        return self.http.get("/webhooks/processed-messages", query)

    def reprocess_webhook_message(self, idempotency_key: str) -> Any:
        return self.http.post(f"/webhooks/processed-messages/{idempotency_key}", {}, None, JSON)

    # --- Limits ---------------------------------------------------------------
    def get_feature_limits(self, document_number: str, limit_type: str, feature_name: str) -> Any:
        return self.http.get(f"/holders/{document_number}/limits/{limit_type}/features/{feature_name}")

    def update_customer_limits(
        self, document_number: str, data: Union[Mapping[str, Any], Payload]
    ) -> Any:
        """PUT /holders/{documentNumber}/max-limits (form-encoded)."""
        return self.http.put(f"/holders/{document_number}/max-limits", _as_mapping(data), None, FORM)
