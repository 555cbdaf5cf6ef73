"""Service modules"""
from .valuation import ValuationResult, VaultValuationService, evaluate

__all__ = ["ValuationResult", "VaultValuationService", "evaluate"]
