"""polypm - resolve, verify and install registry packages into a flat project directory."""

__version__ = "0.1.0"
