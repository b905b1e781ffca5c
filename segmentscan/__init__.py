"""segmentscan - find skippable intros and credits in a video library."""

__version__ = "0.1.0"
