"""Vault valuation and risk engine for CDP protocols."""
from .aggregator import aggregate_system
from .metrics import compute_vault_metrics, value_vault, value_vaults
from .reconciler import Reconciler, SourcedRecords, reconcile
from .risk import RiskState, Status, classify

__version__ = "0.1.0"

__all__ = [
    "Reconciler",
    "RiskState",
    "SourcedRecords",
    "Status",
    "aggregate_system",
    "classify",
    "compute_vault_metrics",
    "reconcile",
    "value_vault",
    "value_vaults",
]
