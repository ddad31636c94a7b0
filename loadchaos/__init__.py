"""Burst load testing for a site's own endpoints."""

__version__ = "0.1.0"
