"""Tests for run_in_order - ordered authority strategies."""

import pytest

from auth.exceptions import InvalidCredentialsError, NetworkError, RemoteAuthorityError
from auth.strategies import Strategy, run_in_order


def _raise(error):
    def attempt():
        raise error
    return attempt


class TestRunInOrder:
    def test_first_success_wins(self):
        second_called = []
        outcome = run_in_order(
            [
                Strategy("local", lambda: "L"),
                Strategy("remote", lambda: second_called.append(1)),
            ]
        )
        assert outcome.strategy == "local"
        assert outcome.value == "L"
        assert second_called == []

    def test_falls_back_on_listed_error(self):
        outcome = run_in_order(
            [
                Strategy("local", _raise(InvalidCredentialsError()), fallback_on=(InvalidCredentialsError,)),
                Strategy("remote", lambda: "R"),
            ]
        )
        assert outcome.strategy == "remote"
        assert outcome.value == "R"

    def test_falls_back_on_subclass_of_listed_error(self):
        outcome = run_in_order(
            [
                Strategy("remote", _raise(NetworkError()), fallback_on=(RemoteAuthorityError,)),
                Strategy("local", lambda: "L"),
            ]
        )
        assert outcome.strategy == "local"

    def test_unlisted_error_propagates(self):
        with pytest.raises(InvalidCredentialsError):
            run_in_order(
                [
                    Strategy("remote", _raise(InvalidCredentialsError()), fallback_on=(RemoteAuthorityError,)),
                    Strategy("local", lambda: "L"),
                ]
            )

    def test_last_strategy_error_propagates(self):
        with pytest.raises(NetworkError):
            run_in_order(
                [
                    Strategy("local", _raise(InvalidCredentialsError()), fallback_on=(InvalidCredentialsError,)),
                    Strategy("remote", _raise(NetworkError()), fallback_on=(NetworkError,)),
                ]
            )

    def test_empty_list_rejected(self):
        with pytest.raises(ValueError):
            run_in_order([])
