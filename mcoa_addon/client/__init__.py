"""
The client module provides the interface used to talk to the hub API.

- Objects are raw kubernetes documents addressed by NamedResource.
- Listeners receive a WatchEvent for every change, which is how watches are
  delivered to the event mapper.

This abstract interface allows for various implementations (in-memory, a
real kubernetes client, etc.).
"""

from .client import Client, EventType, WatchEvent
from .in_memory import InMemoryClient

__all__ = [
    "Client",
    "EventType",
    "WatchEvent",
    "InMemoryClient",
]
