"""Tap4Service backend: service requests, technician proposals and live updates."""

__version__ = "0.1.0"
