"""Windows administration backend: command execution and response normalization."""

__version__ = "0.1.0"
