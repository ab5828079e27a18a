"""Mirror editor configuration to a GitHub repository."""

__version__ = "0.1.0"
