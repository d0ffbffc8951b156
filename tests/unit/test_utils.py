"""Unit tests for utility helpers."""

import pytest

from disposable_mail.exceptions import NetworkFailure, ValidationError
from disposable_mail.utils import retry_async


class TestRetryAsync:
    """Test suite for the retry_async decorator."""

    @pytest.mark.asyncio
    async def test_returns_after_transient_failures(self) -> None:
        calls = []

        @retry_async(max_retries=3, delay=0, retry_on=(NetworkFailure,))
        async def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise NetworkFailure("try again")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        calls = []

        @retry_async(max_retries=2, delay=0, retry_on=(NetworkFailure,))
        async def always_fails() -> None:
            calls.append(1)
            raise NetworkFailure("down")

        with pytest.raises(NetworkFailure):
            await always_fails()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_zero_retries_runs_once(self) -> None:
        calls = []

        @retry_async(max_retries=0, delay=0)
        async def fails() -> None:
            calls.append(1)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await fails()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self) -> None:
        calls = []

        @retry_async(max_retries=3, delay=0, retry_on=(NetworkFailure,))
        async def invalid() -> None:
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            await invalid()
        assert len(calls) == 1
