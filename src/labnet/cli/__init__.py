"""Command line interface for LabNet."""
