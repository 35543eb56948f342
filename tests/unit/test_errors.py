"""
Unit tests for the tradefeed exception hierarchy.
"""

import pytest

import tradefeed
from tradefeed.errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    MessageParseError,
    SubscriptionError,
    TradeFeedError,
)


class TestHierarchy:
    """Tests for the exported exception classes."""

    @pytest.mark.parametrize(
        "cls",
        [
            ConnectionError,
            SubscriptionError,
            MessageParseError,
            AuthenticationError,
            ConfigurationError,
        ],
    )
    def test_subclasses_base(self, cls) -> None:
        assert issubclass(cls, TradeFeedError)

    def test_exports_resolve(self) -> None:
        """Test that every exported name exists on the package."""
        for name in tradefeed.__all__:
            assert hasattr(tradefeed, name), name

    def test_only_raised_errors_exported(self) -> None:
        """Test that the package exports exactly the errors the library raises."""
        exported = {
            name
            for name in tradefeed.__all__
            if isinstance(getattr(tradefeed, name), type)
            and issubclass(getattr(tradefeed, name), TradeFeedError)
        }
        assert exported == {
            "TradeFeedError",
            "ConnectionError",
            "SubscriptionError",
            "MessageParseError",
            "AuthenticationError",
            "ConfigurationError",
        }


class TestStr:
    """Tests for error rendering."""

    def test_message_only(self) -> None:
        assert str(TradeFeedError("boom")) == "boom"

    def test_component_and_details(self) -> None:
        error = AuthenticationError("denied", auth_type="SSO", status=401, component="auth")

        rendered = str(error)
        assert rendered.startswith("denied [component=auth]")
        assert "'auth_type': 'SSO'" in rendered
        assert "'status': 401" in rendered
        assert error.status == 401

    def test_parse_error_keeps_raw_out_of_details(self) -> None:
        error = MessageParseError("bad frame", raw_data="{", expected_type="json")

        assert error.raw_data == "{"
        assert error.details == {"expected_type": "json"}
