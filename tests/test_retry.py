import pytest

from cv_orchestrator.errors import ApiError, TransportError
from cv_orchestrator.retry import backoff_delays, retry


class TestRetry:
    def test_retries_then_succeeds(self):
        delays = []
        attempts = []

        @retry(max_attempts=3, base_delay=1.0, jitter=False, sleep=delays.append)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise TransportError("HTTP 502")
            return "ok"

        assert flaky() == "ok"
        assert delays == [1.0, 2.0]

    def test_gives_up(self):
        @retry(max_attempts=2, jitter=False, sleep=lambda s: None)
        def down():
            raise TransportError("refused")

        with pytest.raises(TransportError):
            down()

    def test_non_retryable_passes_through(self):
        calls = []

        @retry(max_attempts=3, sleep=lambda s: None)
        def rejected():
            calls.append(1)
            raise ApiError("bad request", status_code=400)

        with pytest.raises(ApiError):
            rejected()
        assert len(calls) == 1


class TestBackoffDelays:
    def test_doubles_between_attempts(self):
        assert list(backoff_delays(4, 0.5, jitter=False)) == [0.5, 1.0, 2.0]

    def test_single_attempt_never_waits(self):
        assert list(backoff_delays(1, 1.0)) == []

    def test_jitter_stays_in_band(self):
        first, second = backoff_delays(3, 1.0)
        assert 0.5 <= first < 1.5
        assert 1.0 <= second < 3.0
