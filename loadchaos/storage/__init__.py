"""Baseline persistence."""
