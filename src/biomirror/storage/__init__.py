"""Storage sub-package — hand-off points for session records."""

from biomirror.storage.sink import InMemoryRecordSink, RecordSink

__all__ = ["InMemoryRecordSink", "RecordSink"]
