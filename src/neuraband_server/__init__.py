"""Live biosignal monitoring server for NeuraBand wearables."""

__version__ = "0.1.0"
