"""Tests for the pushrelay error hierarchy."""

import pytest

from pushrelay.errors import (
    BadCharacterError,
    BadResponseError,
    MissingConfigError,
    PushRelayError,
    UpdateJobError,
    is_recoverable,
)


def test_default_message_used_when_none_given():
    error = BadResponseError()
    assert error.message == "Bad response from server"
    assert str(error) == "Bad response from server"


def test_to_dict_carries_code_and_details():
    error = UpdateJobError("Full update failed: boom", details={"error_type": "RuntimeError"})

    assert error.to_dict() == {
        "code": "UPDATE_JOB_FAILED",
        "message": "Full update failed: boom",
        "recoverable": False,
        "details": {"error_type": "RuntimeError"},
    }


@pytest.mark.parametrize(
    "error, expected",
    [
        (BadCharacterError(), True),
        (MissingConfigError(), True),
        (PushRelayError(), True),
        (UpdateJobError(), False),
        (RuntimeError("not ours"), False),
    ],
)
def test_is_recoverable(error, expected):
    assert is_recoverable(error) is expected
