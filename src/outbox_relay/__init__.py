"""Outbox relay: dispatches pending database records to an event stream."""

__version__ = "0.1.0"
