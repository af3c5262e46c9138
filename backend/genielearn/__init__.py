"""GenieLearn backend: study groups and real-time group chat."""

__version__ = "0.1.0"
