"""
Scheduler Module - Black Box Interface

Purpose: Admit waiting users in periodic batches
Interface: start(), stop(), run_once(), discover_queues()
Hidden: Loop timing, per-queue fan-out, failure isolation
"""

from .scheduler import AdmissionScheduler, SweepReport, discover_queues

__all__ = ["AdmissionScheduler", "SweepReport", "discover_queues"]
