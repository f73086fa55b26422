"""Fusion sub-package — sample-pair scoring, fused-state history and diffs."""

from biomirror.fusion.changes import StateChange
from biomirror.fusion.engine import StateFusionEngine, fuse
from biomirror.fusion.history import StateHistory

__all__ = ["StateChange", "StateFusionEngine", "StateHistory", "fuse"]
