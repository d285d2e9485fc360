"""Cloud storage sync for planner data (Box, OneDrive, Google Drive)."""

__version__ = "0.1.0"
