"""
Custom exceptions for tradefeed.

Exception hierarchy:
- TradeFeedError (base)
  - ConnectionError: WebSocket connection issues
  - SubscriptionError: Query subscription failures
  - MessageParseError: Invalid/malformed inbound frames
  - AuthenticationError: Token acquisition failures
  - ConfigurationError: Invalid configuration
"""

from __future__ import annotations

from typing import Any, Optional


class TradeFeedError(Exception):
    """Base exception for all tradefeed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConnectionError(TradeFeedError):
    """Raised when the WebSocket connection fails or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, component=component, details=details)


class SubscriptionError(TradeFeedError):
    """Raised when a query subscription cannot be started."""

    def __init__(
        self,
        message: str,
        *,
        query: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.query = query
        details = details or {}
        if query:
            details["query"] = query
        super().__init__(message, component=component, details=details)


class MessageParseError(TradeFeedError):
    """Raised when an inbound frame cannot be decoded."""

    def __init__(
        self,
        message: str,
        *,
        raw_data: Optional[str] = None,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.raw_data = raw_data
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        # Don't include raw_data in details to avoid log spam
        super().__init__(message, component=component, details=details)


class AuthenticationError(TradeFeedError):
    """Raised when a bearer token cannot be obtained from the identity provider."""

    def __init__(
        self,
        message: str,
        *,
        auth_type: Optional[str] = None,
        status: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.auth_type = auth_type
        self.status = status
        details = details or {}
        if auth_type:
            details["auth_type"] = auth_type
        if status is not None:
            details["status"] = status
        super().__init__(message, component=component, details=details)


class ConfigurationError(TradeFeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)
