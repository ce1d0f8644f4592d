"""Tests for the cancellation token."""

import threading

import pytest

from hotswap.cancellation import CancellationToken
from hotswap.domain import CancelledError, UpdateError


def test_new_token_is_not_cancelled() -> None:
    token = CancellationToken()
    assert not token.is_cancelled
    token.raise_if_cancelled()


def test_cancel_is_idempotent_and_keeps_first_reason() -> None:
    token = CancellationToken()
    token.cancel("first")
    token.cancel("second")

    assert token.is_cancelled
    assert token.reason == "first"


def test_raise_if_cancelled_uses_reason() -> None:
    token = CancellationToken()
    token.cancel("Interrupted by user")

    with pytest.raises(CancelledError, match="Interrupted by user"):
        token.raise_if_cancelled()


def test_cancelled_error_is_an_update_error() -> None:
    assert issubclass(CancelledError, UpdateError)


def test_cancel_from_another_thread() -> None:
    token = CancellationToken()
    thread = threading.Thread(target=token.cancel)
    thread.start()
    thread.join()

    assert token.is_cancelled
