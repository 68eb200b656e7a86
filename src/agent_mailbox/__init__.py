"""File-based agent mailboxes and worker orchestration."""

__version__ = "0.1.0"
