import pytest
from mediaopt.domain.cancellation import CancellationToken, Deadline
from mediaopt.domain.errors import Cancelled, ErrorKind, ProcessingTimeout


def test_token_starts_clear():
    token = CancellationToken()
    assert token.cancelled is False
    token.checkpoint("anywhere")


def test_checkpoint_raises_once_cancelled():
    token = CancellationToken()
    token.cancel()

    with pytest.raises(Cancelled, match="before encode") as exc_info:
        token.checkpoint("before encode")
    assert exc_info.value.kind == ErrorKind.CANCELLED


def test_wait_returns_when_cancelled():
    token = CancellationToken()
    assert token.wait(0.01) is False
    token.cancel()
    assert token.wait(0.01) is True


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_deadline_remaining_counts_down():
    clock = FakeClock()
    deadline = Deadline(30, clock=clock)

    assert deadline.remaining() == 30
    clock.now += 10
    assert deadline.remaining() == 20
    assert deadline.expired is False
    deadline.check("a.jpg")


def test_deadline_expires_at_limit():
    clock = FakeClock()
    deadline = Deadline(30, clock=clock)
    clock.now += 30

    assert deadline.expired is True
    assert deadline.remaining() == 0.0
    with pytest.raises(ProcessingTimeout, match="a.jpg exceeded 30s") as exc_info:
        deadline.check("a.jpg")
    assert exc_info.value.limit_seconds == 30
