"""Base command and event interfaces shared across services."""

from dataclasses import dataclass


@dataclass
class Command:
    """Base class for all commands."""
    pass

@dataclass
class PrivilegedCommand(Command):
    """Base class for commands that mutate the registry and require the admin capability."""
    pass

@dataclass
class Event:
    """Base class for all domain events."""
    pass
