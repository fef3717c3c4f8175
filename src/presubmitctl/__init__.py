"""presubmitctl -- presubmit result aggregation and regression classifier."""

__version__ = "0.1.0"
