"""
Background workers for the escrow engine.

Tasks:
- run_auto_release_sweep: releases shipped transactions past their
  auto-release date (hourly)
- retry_outstanding_payouts: retries skipped or failed seller payouts
  (every 30 minutes)

Usage:
    from escrow.workers import run_auto_release_sweep
    run_auto_release_sweep.delay()
"""

from escrow.workers.auto_release import AutoReleaseScheduler, run_auto_release_sweep
from escrow.workers.payout_retry import retry_outstanding_payouts

__all__ = [
    "AutoReleaseScheduler",
    "retry_outstanding_payouts",
    "run_auto_release_sweep",
]
