from typing import List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ImportParseError(ServiceError):
    """File-level parse failure (empty file, missing columns). Nothing in the file was processed."""

    def __init__(self, message: str, parse_errors: Optional[List] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.parse_errors = parse_errors or []
