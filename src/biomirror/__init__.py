"""biomirror — real-time emotional state fusion and safety monitoring.

The package fuses facial-emotion samples and physiological samples into a
single :class:`~biomirror.models.IntegratedState` on a fixed clock, tracks
dissociation episodes, escalates safety alerts, and schedules therapeutic
responses for a companion character.
"""

__version__ = "0.1.0"
