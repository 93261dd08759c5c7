"""Manage batches of open GitLab merge requests from the command line."""

__version__ = "0.1.0"
