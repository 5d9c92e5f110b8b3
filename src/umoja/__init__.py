"""UmojaHub reputation and workflow engine."""

__version__ = "0.1.0"
