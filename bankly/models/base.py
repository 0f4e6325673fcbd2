from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

__all__ = ["Payload", "BanklyModel", "digits_only", "positive_amount"]


@runtime_checkable
class Payload(Protocol):
    """Anything the client can send: serializable to a JSON-compatible dict.

    Implementations may also define ``validate()``; the client calls it before
    serializing and never sends a payload whose ``validate()`` raised.
    """

    def to_dict(self) -> Dict[str, Any]:
        ...


class BanklyModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def validate(self) -> None:  # type: ignore[override]
        """Re-run field validation on the current (possibly mutated) values."""
        type(self).model_validate(self.model_dump())

    def to_dict(self) -> Dict[str, Any]:
        self.validate()
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


_DIGITS = re.compile(r"^\d+$")


def digits_only(value: str, *, length: int | None = None, name: str = "value") -> str:
    if not value or not _DIGITS.match(value):
        raise ValueError(f"{name} should be a numeric string")
    if length is not None and len(value) != length:
        raise ValueError(f"{name} should have {length} digits")
    return value


def positive_amount(value: Any, *, name: str = "amount") -> Any:
    """Accept numbers or numeric strings greater than zero."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{name} should be numeric and greater than zero") from None
    if amount <= 0:
        raise ValueError(f"{name} should be numeric and greater than zero")
    return value
