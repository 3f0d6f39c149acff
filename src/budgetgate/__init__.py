"""Multi-budget admission control with fair queuing of deferred requests."""

__version__ = "0.1.0"
