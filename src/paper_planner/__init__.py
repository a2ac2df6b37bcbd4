"""Scientific paper planner: guided section-by-section planning and AI paper review."""

__version__ = "0.1.0"
