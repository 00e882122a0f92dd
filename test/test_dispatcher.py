import pytest
from drawing_api_client.dispatcher import (
    UNKNOWN_API_ERROR,
    RateLimitedDispatcher,
    classify_response,
)
from drawing_api_client.errors import ApiError, TransportError, UNKNOWN_STATUS_CODE


class ScriptedThunk:
    """Plays back a list of outcomes, raising the ones that are exceptions"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.mark.parametrize("status", [100, 200, 204, 299])
def test_classify_accepts_success_statuses(status):
    assert classify_response(status, "OK") is None


@pytest.mark.parametrize("status", [0, 99, 300, 404, 429, 500])
def test_classify_rejects_other_statuses(status):
    error = classify_response(status, "Nope", body="details")
    assert isinstance(error, ApiError)
    assert error.message == "Nope"
    assert error.body == "details"


def test_classify_exposes_numeric_status_for_rate_limit():
    error = classify_response(429, "Too Many Requests")
    assert error.status == 429
    assert error.cause == 429


def test_classify_transport_error_uses_sentinel():
    error = classify_response(None, error=ConnectionResetError("reset by peer"))
    assert error.status is None
    assert error.cause == UNKNOWN_STATUS_CODE
    assert error.message == "reset by peer"
    assert error.body == "NO_BODY"


def test_classify_falls_back_to_fixed_message():
    assert classify_response(503).message == UNKNOWN_API_ERROR


@pytest.mark.asyncio
async def test_rate_limited_call_stops_after_five_attempts(recording_sleep):
    dispatcher = RateLimitedDispatcher(sleep=recording_sleep)
    rate_limited = ApiError(429, "Too Many Requests")
    thunk = ScriptedThunk([rate_limited])

    with pytest.raises(ApiError) as raised:
        await dispatcher.execute(thunk)

    assert raised.value is rate_limited
    assert thunk.calls == 5
    assert dispatcher.state.attempt == 5
    assert recording_sleep.delays == [5.0, 7.5, 11.25, 16.875]


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(recording_sleep):
    dispatcher = RateLimitedDispatcher(sleep=recording_sleep)
    thunk = ScriptedThunk([ApiError(500, "Internal Server Error"), "unused"])

    with pytest.raises(ApiError) as raised:
        await dispatcher.execute(thunk)

    assert raised.value.status == 500
    assert thunk.calls == 1
    assert recording_sleep.delays == []
    assert dispatcher.sleep_ms == 5000


@pytest.mark.asyncio
async def test_transport_errors_are_not_retried(recording_sleep):
    dispatcher = RateLimitedDispatcher(sleep=recording_sleep)
    thunk = ScriptedThunk([TransportError("connection refused"), "unused"])

    with pytest.raises(TransportError):
        await dispatcher.execute(thunk)
    assert thunk.calls == 1


@pytest.mark.asyncio
async def test_backoff_grows_across_logical_calls(recording_sleep):
    dispatcher = RateLimitedDispatcher(sleep=recording_sleep)

    first = ScriptedThunk([ApiError(429, "Too Many Requests"), "one"])
    assert await dispatcher.execute(first) == "one"
    assert dispatcher.sleep_ms == 7500

    second = ScriptedThunk([ApiError(429, "Too Many Requests"), "two"])
    assert await dispatcher.execute(second) == "two"

    assert recording_sleep.delays == [5.0, 7.5]
    assert dispatcher.sleep_ms == 11250
    assert dispatcher.state.error_count == 3


@pytest.mark.asyncio
async def test_success_returns_without_sleeping(recording_sleep):
    dispatcher = RateLimitedDispatcher(sleep=recording_sleep)
    thunk = ScriptedThunk(["done"])

    assert await dispatcher.execute(thunk) == "done"
    assert thunk.calls == 1
    assert recording_sleep.delays == []
