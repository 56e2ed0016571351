"""Asyncio building blocks for TURN relays: allocations, permissions, channel bindings, client transactions and credentials."""

__version__ = "0.1.0"