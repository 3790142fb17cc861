"""Keeps a task database in sync with task lines written in markdown notes."""

__version__ = "0.1.0"
