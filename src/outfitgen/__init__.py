"""Generation-job lifecycle controller for the AI outfit visualization service."""

__version__ = "0.1.0"
