"""Polls a chain's tip and records block difficulty per height."""

from .chain import ChainReader, Header
from .ledger import Ledger, Observation
from .metrics import MetricsExporter
from .synchronizer import HeightSynchronizer, SyncState

__all__ = [
    "ChainReader",
    "Header",
    "HeightSynchronizer",
    "Ledger",
    "MetricsExporter",
    "Observation",
    "SyncState",
]
