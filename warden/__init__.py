"""Warden: access protection and abuse detection service."""

__version__ = "1.0.0"
