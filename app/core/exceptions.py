from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidTransitionError(ServiceError):
    """The requested workflow transition is not allowed from the current state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ConcurrentUpdateError(ServiceError):
    """Another transaction changed the row between our read and our write."""

    def __init__(self, message: str = "The record was modified by another request. Reload and try again.") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ConsentAlreadyResolvedError(ServiceError):
    def __init__(self, consent_status: str) -> None:
        super().__init__(f"This request has already been {consent_status}.", status.HTTP_409_CONFLICT)
        self.consent_status = consent_status


class ConsentExpiredError(ServiceError):
    def __init__(self) -> None:
        super().__init__("This consent link has expired.", status.HTTP_410_GONE)


class PaymentGatewayError(ServiceError):
    """Transport or API failure talking to the payment gateway. Never mutates local state."""

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
        self.upstream_status = upstream_status


class JobFailedError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
