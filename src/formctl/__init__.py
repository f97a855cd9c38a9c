"""formctl — declarative form-definition engine and CLI."""

__version__ = "0.1.0"
