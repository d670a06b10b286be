"""Data models shared across LabNet subsystems."""
