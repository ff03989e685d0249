"""
Tests for the SMI exception hierarchy.
"""
import pytest

from smi.core.exceptions import (
    ConfigurationError,
    DegenerateSampleError,
    ErrorContext,
    EstimationFailure,
    SmiError,
    handle_exception,
)


class TestHandleException:

    @pytest.mark.parametrize("exc, expected", [
        (ValueError("bad"), ConfigurationError),
        (KeyError("h"), ConfigurationError),
        (FileNotFoundError("widths.npz"), ConfigurationError),
        (FloatingPointError("overflow"), EstimationFailure),
        (RuntimeError("other"), SmiError),
    ])
    def test_mapping(self, exc, expected):
        wrapped = handle_exception(exc, ErrorContext(component="bandwidth"))
        assert type(wrapped) is expected
        assert wrapped.context.component == "bandwidth"

    def test_smi_errors_pass_through(self):
        err = DegenerateSampleError("no variance")
        assert handle_exception(err) is err

    def test_message_carries_context(self):
        err = ConfigurationError("Mask has no valid cells", ErrorContext(cell=3, component="grid"))
        assert str(err) == "ConfigurationError: Mask has no valid cells [Cell: 3] [Component: grid]"
