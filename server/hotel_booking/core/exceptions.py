"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from .clock import utcnow


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if detail:
            self.problem_details["detail"] = detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, if any."""
        return self.problem_details.get("code")

    def _tag(self, code: str, retryable: bool = False, **extra: Any) -> None:
        self.problem_details.update({"code": code, "retryable": retryable, **extra})


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Exception for authorization errors."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri="https://example.com/problems/access-forbidden",
            instance=instance,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "code": "NOT_FOUND",
            "retryable": False,
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Inventory exceptions

class RangeUnavailableError(ConflictError):
    """Some day of the requested range has no inventory row for the room."""

    def __init__(self, room_id: str, date_from: date, date_to: date, missing_days: int):
        super().__init__(
            detail=f"Room {room_id} has no inventory for {missing_days} day(s) "
                   f"between {date_from.isoformat()} and {date_to.isoformat()}",
            conflicting_resource={
                "room_id": room_id,
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "missing_days": missing_days,
            }
        )
        self._tag("RANGE_UNAVAILABLE")


class IncompleteAvailabilityError(ConflictError):
    """Only part of the requested range can be served."""

    def __init__(self, room_id: str, expected_days: int, available_days: int):
        super().__init__(
            detail=f"Room {room_id} is not available for the full period: "
                   f"{available_days} of {expected_days} day(s) can be reserved",
            conflicting_resource={
                "room_id": room_id,
                "expected_days": expected_days,
                "available_days": available_days,
            }
        )
        self._tag("INCOMPLETE_AVAILABILITY")


class InsufficientCapacityError(ConflictError):
    """A day in the range cannot take the requested number of rooms."""

    def __init__(self, room_id: str, day: date, requested: int, available: int):
        super().__init__(
            detail=f"Room {room_id} has insufficient capacity on {day.isoformat()}. "
                   f"Requested: {requested}, Available: {available}",
            conflicting_resource={
                "room_id": room_id,
                "date": day.isoformat(),
                "requested_rooms": requested,
                "available_rooms": available,
            }
        )
        self._tag("INSUFFICIENT_CAPACITY")


class InventoryConsistencyError(ConflictError):
    """Ledger counters do not hold the units a transition expects."""

    def __init__(self, room_id: str, day: date, detail: str):
        super().__init__(
            detail=f"Inventory for room {room_id} on {day.isoformat()} is inconsistent: {detail}",
        )
        self._tag("INVENTORY_INCONSISTENT")


# Booking lifecycle exceptions

class InvalidStateError(ConflictError):
    """A lifecycle transition was attempted from a state that does not permit it."""

    def __init__(self, booking_id: str, status: str, action: str):
        super().__init__(
            detail=f"Booking {booking_id} cannot {action.lower().replace('_', ' ')} "
                   f"while in status {status}"
        )
        self._tag("INVALID_STATE", booking_id=booking_id, booking_status=status, action=action)


class BookingExpiredError(ProblemDetailsException):
    """The hold window of a booking has elapsed."""

    def __init__(self, booking_id: str, expired_at: datetime):
        super().__init__(
            status_code=410,
            title="Booking Expired",
            detail=f"Booking {booking_id} expired at {expired_at.isoformat()}Z",
            type_uri="https://example.com/problems/booking-expired",
            extensions={
                "code": "BOOKING_EXPIRED",
                "retryable": False,
                "booking_id": booking_id,
                "expired_at": expired_at.isoformat() + "Z",
            },
        )


class OwnershipError(AuthorizationError):
    """The caller does not own the resource it is acting on."""

    def __init__(self, resource_type: str, resource_id: str, user_id: str):
        super().__init__(
            detail=f"{resource_type.capitalize()} {resource_id} does not belong to user {user_id}"
        )
        self._tag("NOT_OWNER", resource_type=resource_type, resource_id=resource_id)


# Payment exceptions

class GatewayFailureError(ProblemDetailsException):
    """The checkout gateway failed or timed out."""

    def __init__(self, operation: str, reason: str, **extensions: Any):
        super().__init__(
            status_code=502,
            title="Payment Gateway Failure",
            detail=f"Checkout gateway {operation} failed: {reason}",
            type_uri="https://example.com/problems/payment-gateway-failure",
            extensions={
                "code": "GATEWAY_FAILURE",
                "retryable": False,
                "operation": operation,
                **extensions,
            },
        )
        self.operation = operation
        self.reason = reason


class RefundFailedError(GatewayFailureError):
    """A booking was closed but the compensating refund did not go through."""

    def __init__(self, booking_id: str, reason: str, booking_status: str = "CANCELLED"):
        super().__init__(
            "refund",
            reason,
            booking_id=booking_id,
            booking_status=booking_status,
        )
        self._tag("REFUND_FAILED", booking_id=booking_id, booking_status=booking_status)


# Configuration exceptions

class PricingConfigurationError(ValueError):
    """Pricing inputs are unusable; raised while configuring, never while pricing."""


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": str(uuid.uuid4()),
        "timestamp": utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
