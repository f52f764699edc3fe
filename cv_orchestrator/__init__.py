"""Client-side orchestration of CV analysis and ATS scan jobs."""

__version__ = "0.1.0"
