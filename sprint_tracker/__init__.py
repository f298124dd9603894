"""Log sprint time against Azure DevOps work items."""

__version__ = "0.1.0"
