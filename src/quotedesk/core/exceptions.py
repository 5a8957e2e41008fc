"""Custom exception hierarchy for quotedesk."""

from typing import Any


class QuoteDeskError(Exception):
    """Base exception for all quotedesk errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(QuoteDeskError):
    """Invalid or missing configuration, including upstream credentials.

    Raised by load_config() during startup, and by the quote service when a
    provider reports that its API key is not configured.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
        provider (str): the provider missing a credential
    """


class InvalidRequestError(QuoteDeskError):
    """A required request parameter is missing or malformed.

    Context keys:
        parameter (str): the offending query parameter
    """


class UnauthenticatedError(QuoteDeskError):
    """No principal could be verified for the request."""


class NotFoundError(QuoteDeskError):
    """Unknown instrument id, or a symbol the upstream provider does not know.

    Context keys:
        stock_id (str): the registry id that was looked up
        symbol (str): the provider symbol that was looked up
    """


class ProviderUnavailableError(QuoteDeskError):
    """Upstream returned no data and there is nothing cached to fall back on.

    Context keys:
        provider (str): "finnhub" or "yahoo"
        symbol (str): the provider symbol
        status (str): the FetchStatus reported by the adapter
    """


class InternalError(QuoteDeskError):
    """Unexpected failure inside the service.

    Policy: log with traceback server-side, return a generic message.
    """


class StorageError(InternalError):
    """Database operation failed.

    Policy: raise immediately. Registry and cache integrity is critical.

    Context keys:
        operation (str): "insert", "query", "migrate", etc.
        table (str): the table involved
    """
