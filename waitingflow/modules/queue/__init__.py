"""
Queue Module - Black Box Interface

Purpose: Waiting queue state machine
Interface: register(), promote(), rank(), is_admitted(), verify_token()
Hidden: Key layout, scoring, wait -> proceed transition

Can be backed by any store implementing OrderedQueueStore.
"""

from .queue import (
    DEFAULT_QUEUE,
    QueueManager,
    RegistrationOutcome,
    RegistrationResult,
)

__all__ = ["QueueManager", "RegistrationOutcome", "RegistrationResult", "DEFAULT_QUEUE"]
