"""
waitingflow - Virtual Waiting Room

Admits users to a protected resource in fair, arrival-ordered batches.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- storage: Redis connection and sorted-set queue store
- token: Admission token issuing and caching
- queue: Waiting queue state machine (register, promote, rank)
- scheduler: Periodic admission sweeps across all queues
- config: Environment configuration
- api: REST API models, routes and waiting-room page
"""

__version__ = "1.0.0"
