"""
Exceptions for the bar pipeline.

Exception hierarchy:
- BarFeedError (base)
  - MissingCredential: required API key absent, raised before any network call
  - ProviderError: non-2xx (or transport failure) from an upstream provider
  - MalformedResponse: unparseable payload / missing or non-finite fields
  - UnknownSource: source identifier matches no adapter and is not "auto"
  - CacheIOError: cache storage failure (never escapes the cache store)
  - AllProvidersFailed: every attempt in a fallback chain failed
"""

from __future__ import annotations

from typing import Any, Optional


class BarFeedError(Exception):
    """Base exception for all bar pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        # The HTTP layer returns str(err) to callers; keep it to the plain message.
        return self.message

    def describe(self) -> str:
        """Message plus component/details, for logs."""
        parts = [self.message]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class MissingCredential(BarFeedError):
    """Raised when a provider needs an API key that is not configured."""

    def __init__(
        self,
        message: str,
        *,
        env_var: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.env_var = env_var
        details = details or {}
        if env_var:
            details["env_var"] = env_var
        super().__init__(message, component=component, details=details)


class ProviderError(BarFeedError):
    """Raised when a provider answers with a non-2xx status or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        provider: Optional[str] = None,
        url: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status = status
        self.provider = provider
        self.url = url
        details = details or {}
        if status is not None:
            details["status"] = status
        if provider:
            details["provider"] = provider
        super().__init__(message, component=component, details=details)


class MalformedResponse(BarFeedError):
    """Raised when a provider payload cannot be normalized into bars."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        field: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.provider = provider
        self.field = field
        details = details or {}
        if provider:
            details["provider"] = provider
        if field:
            details["field"] = field
        # Don't include the raw payload in details to avoid log spam
        super().__init__(message, component=component, details=details)


class UnknownSource(BarFeedError):
    """Raised when the requested source is not registered."""

    def __init__(
        self,
        message: str,
        *,
        source: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.source = source
        details = details or {}
        if source is not None:
            details["source"] = source
        super().__init__(message, component=component, details=details)


class CacheIOError(BarFeedError):
    """Raised inside the cache store when the backing storage fails."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.key = key
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, component=component, details=details)


class AllProvidersFailed(BarFeedError):
    """Raised when every provider in a fallback chain failed. Carries the last error."""

    def __init__(
        self,
        message: str,
        *,
        last_error: Optional[BaseException] = None,
        attempted: Optional[list[str]] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.last_error = last_error
        self.attempted = attempted or []
        details = details or {}
        if attempted:
            details["attempted"] = attempted
        super().__init__(message, component=component, details=details)
