"""Field Service - task lifecycle and time/earnings accounting for field workers."""

__version__ = "0.1.0"
