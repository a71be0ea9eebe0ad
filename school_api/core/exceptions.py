from uuid import UUID

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def parse_uuid(value: str, label: str) -> UUID:
    """Parse a path identifier; malformed ids are a client error, not a 404."""
    try:
        return UUID(str(value))
    except ValueError:
        raise ServiceError(f"Invalid {label} ID", status.HTTP_400_BAD_REQUEST)
