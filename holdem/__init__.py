"""Authoritative No-Limit Texas Hold'em table server."""

__version__ = "0.1.0"
