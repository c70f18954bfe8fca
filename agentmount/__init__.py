"""Plugin composition and checkpoint externalization for agent runtimes."""

__version__ = "0.1.0"
