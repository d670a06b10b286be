"""Shared utilities for LabNet."""
