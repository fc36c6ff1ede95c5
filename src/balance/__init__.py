"""Balance — tasks whose progress builds up or decays over time."""

__version__ = "1.0.0"
