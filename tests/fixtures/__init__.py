"""
Fixtures package for backup system testing.

Provides in-memory fakes for sheets, Drive, Search Console and triggers.
"""

from fixtures.fakes import (
    FakeAnalyticsClient,
    FakeDestination,
    FakeSpreadsheet,
    FakeTriggerScheduler,
    FakeWorksheet,
    make_rows,
)

__all__ = [
    "FakeAnalyticsClient",
    "FakeDestination",
    "FakeSpreadsheet",
    "FakeTriggerScheduler",
    "FakeWorksheet",
    "make_rows",
]
