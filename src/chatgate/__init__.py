"""Access policy and session routing for multi-platform chat agents."""

__version__ = "0.3.0"
