import pytest

from parlor_room.errors import (
    ConfigurationError,
    InternalError,
    InvalidQueueRequestError,
    MatchmakingError,
)


def test_invalid_queue_request_carries_reason():
    err = InvalidQueueRequestError("No players provided for rating calculation")
    assert err.reason == "No players provided for rating calculation"
    assert "No players provided for rating calculation" in str(err)
    assert isinstance(err, MatchmakingError)


@pytest.mark.parametrize("cls", [ConfigurationError, InternalError])
def test_message_errors(cls):
    err = cls("Beta must be positive")
    assert err.message == "Beta must be positive"
    assert "Beta must be positive" in str(err)


@pytest.mark.parametrize(
    "cls, text",
    [
        (InvalidQueueRequestError, "bad request"),
        (ConfigurationError, "bad config"),
        (InternalError, "lock failed"),
    ],
)
def test_all_caught_as_base(cls, text):
    with pytest.raises(MatchmakingError) as excinfo:
        raise cls(text)
    assert text in str(excinfo.value)
    assert type(excinfo.value) is cls