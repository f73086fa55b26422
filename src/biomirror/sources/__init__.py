"""Sample sources — facial and physiological inputs to the fusion engine."""

from biomirror.sources.base import SampleSink, SampleSource
from biomirror.sources.synthetic import (
    SCENARIOS,
    SyntheticFacialSource,
    SyntheticPhysiologicalSource,
)

__all__ = [
    "SCENARIOS",
    "SampleSink",
    "SampleSource",
    "SyntheticFacialSource",
    "SyntheticPhysiologicalSource",
]
