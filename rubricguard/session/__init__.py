"""
Session Module.

Grading state of the active session. The orchestrating GradingSession
lives in rubricguard.session.workspace.
"""

from rubricguard.session.store import GradingStore, InvalidScoreError, StoreChange

__all__ = [
    "GradingStore",
    "InvalidScoreError",
    "StoreChange",
]
