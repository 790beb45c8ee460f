"""
Upload Admission

Client-side checks applied before an invoice file is sent to the upload
endpoint, plus parsing of the endpoint's response. No storage I/O happens here.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.errors import DataServiceError, ValidationError

# Configure logging
logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
UPLOAD_ROOT = "pending"

CONTENT_TYPES = {
    '.pdf': 'application/pdf',
    '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    '.xls': 'application/vnd.ms-excel',
    '.csv': 'text/csv',
    '.doc': 'application/msword',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}
ALLOWED_EXTENSIONS = tuple(CONTENT_TYPES)


def file_extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lower()


def is_allowed_file_type(file_name: str) -> bool:
    return file_extension(file_name) in ALLOWED_EXTENSIONS


def content_type_for(file_name: str) -> str:
    return CONTENT_TYPES.get(file_extension(file_name), 'application/octet-stream')


def validate_upload(file_name: str, size: int, vendor_id: Optional[str]) -> None:
    """Reject uploads the endpoint would refuse.

    Args:
        file_name: Original file name
        size: Payload size in bytes
        vendor_id: Vendor the invoice belongs to

    Raises:
        ValidationError: On a missing file name or vendor, a disallowed
            extension, or a payload over MAX_UPLOAD_BYTES
    """
    if not file_name:
        raise ValidationError("No file provided")
    if not vendor_id:
        raise ValidationError("Vendor ID is required")
    if not is_allowed_file_type(file_name):
        raise ValidationError("Invalid file type. Allowed types: PDF, Excel, CSV, Word")
    if size > MAX_UPLOAD_BYTES:
        raise ValidationError("File size exceeds the limit of 50MB")
    logger.debug(f"Upload of {file_name} ({size} bytes) for vendor {vendor_id} accepted")


def build_upload_path(vendor_id: str, file_name: str, now: Optional[datetime] = None) -> str:
    """Storage path the endpoint files an upload under: pending/<vendor>/YYYY/MM/DD/HH-MM-SS/<name>."""
    now = now or datetime.now(timezone.utc)
    return f"{UPLOAD_ROOT}/{vendor_id.lower()}/{now:%Y/%m/%d/%H-%M-%S}/{file_name}"


class UploadResult(BaseModel):
    """Successful upload as reported by the endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(validation_alias=AliasChoices('fileName', 'file_name'))
    uri: str = Field(validation_alias=AliasChoices('gcsUri', 'uri'))
    size: int = 0
    uploaded_at: str = Field(validation_alias=AliasChoices('uploadedAt', 'uploaded_at'))

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "UploadResult":
        """Parse either the full response envelope or its data object.

        Raises:
            DataServiceError: If the endpoint reported a failure or the payload is malformed
        """
        if payload.get('success') is False:
            raise DataServiceError(payload.get('error') or "Upload failed")
        data = payload.get('data', payload)
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise DataServiceError(f"Malformed upload response: {e}") from e
