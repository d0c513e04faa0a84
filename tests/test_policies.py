"""Tests for the fail-open and fail-closed error policies."""

import pytest

from aicampaign.app.exceptions import (
    AtomicReserveFailedError,
    CampaignRepositoryError,
    CampaignServiceError,
    InvalidInputError,
)
from aicampaign.app.services.campaign_quota.policies import best_effort, wraps_errors


async def failing():
    raise ConnectionError("redis down")


async def succeeding():
    return 42


class TestBestEffort:

    @pytest.mark.asyncio
    async def test_returns_result(self):
        assert await best_effort("read", succeeding()) == 42

    @pytest.mark.asyncio
    async def test_swallows_errors(self):
        assert await best_effort("read", failing()) is None

    @pytest.mark.asyncio
    async def test_custom_default(self):
        assert await best_effort("count", failing(), default=0) == 0


class TestWrapsErrors:

    @pytest.mark.asyncio
    async def test_wraps_unexpected_errors(self):
        @wraps_errors("GET_STATUS_FAILED", "Failed to get campaign status")
        async def operation():
            raise ConnectionError("redis down")

        with pytest.raises(CampaignServiceError) as exc_info:
            await operation()

        error = exc_info.value
        assert error.code == "GET_STATUS_FAILED"
        assert error.message == "Failed to get campaign status"
        assert isinstance(error.cause, ConnectionError)
        assert error.__cause__ is error.cause

    @pytest.mark.asyncio
    async def test_service_errors_pass_through(self):
        @wraps_errors("UPDATE_CAMPAIGN_FAILED", "Failed to update campaign")
        async def operation():
            raise CampaignRepositoryError("db down", "UPDATE_FAILED")

        with pytest.raises(CampaignRepositoryError) as exc_info:
            await operation()
        assert exc_info.value.code == "UPDATE_FAILED"

    @pytest.mark.asyncio
    async def test_narrow_passthrough(self):
        @wraps_errors(
            "ATOMIC_RESERVE_FAILED",
            "Failed to reserve",
            error_cls=AtomicReserveFailedError,
            passthrough=(InvalidInputError,),
        )
        async def operation(kind):
            if kind == "input":
                raise InvalidInputError("bad id")
            raise CampaignRepositoryError("db down", "GET_ACTIVE_FAILED")

        with pytest.raises(InvalidInputError):
            await operation("input")
        with pytest.raises(AtomicReserveFailedError) as exc_info:
            await operation("store")
        assert exc_info.value.code == "ATOMIC_RESERVE_FAILED"

    def test_keeps_function_metadata(self):
        @wraps_errors("X", "x")
        async def reserve_something():
            """Docstring."""

        assert reserve_something.__name__ == "reserve_something"
        assert reserve_something.__doc__ == "Docstring."


class TestExceptionResponses:

    def test_to_response(self):
        error = InvalidInputError("Request ID is required")
        assert error.status_code == 400
        assert error.to_response() == {
            "success": False,
            "error": "Request ID is required",
            "code": "INVALID_INPUT",
        }

    @pytest.mark.parametrize(
        ("code", "status"),
        [("NOT_FOUND", 404), ("INVALID_INPUT", 400), ("UPDATE_FAILED", 500)],
    )
    def test_repository_error_status(self, code, status):
        assert CampaignRepositoryError("x", code).status_code == status
