"""Ops dashboard backend: build-task board, billing sync tracker and user settings over Firebase."""

__version__ = "0.1.0"
