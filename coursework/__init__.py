"""Course, assignment, enrollment and grading lifecycle engine."""

__version__ = "0.1.0"
