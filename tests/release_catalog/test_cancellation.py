"""Tests for the cooperative cancellation token."""

import threading

import pytest

from ReleaseCatalog.cancellation import CancellationToken
from ReleaseCatalog.errors import CrawlCancelledError, IngestionError


def test_first_reason_wins() -> None:
    token = CancellationToken()
    token.cancel("first")
    token.cancel("second")
    assert token.is_cancelled()
    assert token.reason == "first"


def test_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    with pytest.raises(CrawlCancelledError) as excinfo:
        token.raise_if_cancelled()
    assert isinstance(excinfo.value, IngestionError)


def test_wait_wakes_on_cancel_from_other_thread() -> None:
    token = CancellationToken()
    assert token.wait(0.01) is False
    threading.Timer(0.05, token.cancel, args=("timer",)).start()
    assert token.wait(5.0) is True
    assert token.reason == "timer"
