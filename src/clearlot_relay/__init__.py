"""Clearlot Relay: conversations, notifications and delivery reminders."""

__version__ = "0.1.0"
