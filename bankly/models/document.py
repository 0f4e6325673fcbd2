from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import Field, field_validator

from .base import BanklyModel

__all__ = ["DocumentAnalysis"]


class DocumentAnalysis(BanklyModel):
    """Identity document image sent to the deepface analysis endpoint.

    Besides the form fields it carries the file itself, exposed through the
    ``field_name``/``file_contents``/``file_name`` attachment attributes.
    """

    document_type: Literal["RG", "CNH", "SELFIE", "RNE", "CNH_DIGITAL"]
    document_side: Literal["FRONT", "BACK"] = "FRONT"
    provider: Optional[str] = None
    provider_metadata: Optional[Dict[str, Any]] = None

    field_name: str = Field(default="image", exclude=True)
    file_contents: bytes = Field(exclude=True, repr=False)
    file_name: str = Field(exclude=True)

    @field_validator("file_contents")
    @classmethod
    def _not_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("document file is empty")
        return v

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> "DocumentAnalysis":
        path = Path(path)
        return cls(file_contents=path.read_bytes(), file_name=path.name, **kwargs)

    def validate(self) -> None:  # type: ignore[override]
        # excluded fields are not part of model_dump(), revalidate them explicitly
        type(self).model_validate(
            {
                **self.model_dump(),
                "field_name": self.field_name,
                "file_contents": self.file_contents,
                "file_name": self.file_name,
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        """Multipart form fields; ``providerMetadata`` travels JSON-encoded."""
        data = super().to_dict()
        if self.provider_metadata is not None:
            data["providerMetadata"] = json.dumps(self.provider_metadata)
        return data
