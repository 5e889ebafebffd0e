"""
Output Module.

Session reports and the saved-session hand-off format.
"""

from rubricguard.output.report import ReportFormat, ReportGenerator, load_session, save_session

__all__ = [
    "ReportFormat",
    "ReportGenerator",
    "load_session",
    "save_session",
]
