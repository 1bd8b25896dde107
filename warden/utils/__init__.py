"""Shared utilities: logging, caching, rate limiting and address helpers."""
