"""
Fund recovery: scanning, legacy matching and sweeping.
"""

from lnsweep.recovery.ancient import load_ancient_channels
from lnsweep.recovery.matcher import LegacyMatcher, MatchSession
from lnsweep.recovery.scanner import BalanceScanner
from lnsweep.recovery.sweep import SignedSweep, SweepBuilder, TxWeightEstimator, fee_for_weight

__all__ = [
    "BalanceScanner",
    "LegacyMatcher",
    "MatchSession",
    "SignedSweep",
    "SweepBuilder",
    "TxWeightEstimator",
    "fee_for_weight",
    "load_ancient_channels",
]
