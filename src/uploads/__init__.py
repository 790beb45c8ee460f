"""
Invoice upload admission rules.
"""

from src.uploads.validation import (
    ALLOWED_EXTENSIONS,
    MAX_UPLOAD_BYTES,
    UploadResult,
    build_upload_path,
    content_type_for,
    is_allowed_file_type,
    validate_upload,
)

__all__ = [
    'ALLOWED_EXTENSIONS', 'MAX_UPLOAD_BYTES', 'UploadResult', 'build_upload_path',
    'content_type_for', 'is_allowed_file_type', 'validate_upload',
]
