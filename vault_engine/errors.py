"""Error taxonomy for the valuation engine."""
from __future__ import annotations


class VaultEngineError(Exception):
    """Base class for valuation engine errors."""


class InvalidNumberFormat(VaultEngineError, ValueError):
    """A numeric input could not be parsed as a fixed-point decimal."""

    def __init__(self, value: object, reason: str = "not a decimal number") -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid number {value!r}: {reason}")


class MissingCollateralParams(VaultEngineError, KeyError):
    """A vault references a collateral type absent from the params map."""

    def __init__(self, collateral_type: str) -> None:
        self.collateral_type = collateral_type
        super().__init__(collateral_type)

    def __str__(self) -> str:
        return f"No collateral params for '{self.collateral_type}'"


class RiskClassificationError(VaultEngineError):
    """The risk classifier was called with a value it cannot interpret."""
