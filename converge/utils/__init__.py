"""Shared helpers for the planning engine."""
