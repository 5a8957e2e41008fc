"""Tests for quotedesk.core.exceptions."""

import pytest

from quotedesk.core.exceptions import (
    ConfigError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
    ProviderUnavailableError,
    QuoteDeskError,
    StorageError,
    UnauthenticatedError,
)


@pytest.mark.parametrize(
    "exc_cls",
    [
        ConfigError,
        InvalidRequestError,
        UnauthenticatedError,
        NotFoundError,
        ProviderUnavailableError,
        InternalError,
        StorageError,
    ],
)
def test_all_derive_from_base(exc_cls):
    assert issubclass(exc_cls, QuoteDeskError)


def test_storage_error_is_internal():
    assert issubclass(StorageError, InternalError)


def test_context_defaults_to_empty_dict():
    err = NotFoundError("Stock not found: x")
    assert err.context == {}
    assert str(err) == "Stock not found: x"


def test_context_is_preserved():
    err = InvalidRequestError("Missing symbol parameter", context={"parameter": "symbol"})
    assert err.context["parameter"] == "symbol"


def test_can_be_caught_as_base():
    with pytest.raises(QuoteDeskError):
        raise ProviderUnavailableError("Failed to fetch price")
