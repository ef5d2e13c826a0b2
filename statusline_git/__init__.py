"""Read-only Git status information for status lines"""

__version__ = "0.1.0"
