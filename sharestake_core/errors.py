"""
Error taxonomy for the staking engine.

Every failure is raised synchronously before (or rolled back after) any
state change, so callers may simply resubmit once the underlying
condition changes.
"""

from __future__ import annotations


class StakingError(Exception):
    """Base class; ``code`` is the stable identifier exposed over the API."""

    code = "StakingError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidInput(StakingError):
    code = "InvalidInput"


class AlreadyActive(StakingError):
    code = "AlreadyActive"


class NoActiveStake(StakingError):
    code = "NoActiveStake"


class PeriodNotComplete(StakingError):
    code = "PeriodNotComplete"


class PeriodAlreadyComplete(StakingError):
    code = "PeriodAlreadyComplete"


class TransferFailure(StakingError):
    code = "TransferFailure"


class InvalidShareCount(StakingError):
    code = "InvalidShareCount"


class Unauthorized(StakingError):
    code = "Unauthorized"


class StakingPaused(StakingError):
    code = "StakingPaused"


class InvariantViolation(StakingError):
    code = "InvariantViolation"
