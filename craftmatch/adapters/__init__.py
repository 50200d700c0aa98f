"""
Craftmatch adapters layer.

External service wrappers: the Qdrant record store and the persistence
gateway that falls back to an in-process store when the durable one fails.
"""

# Record store
from craftmatch.adapters.store import (
    RecordKind,
    RecordStore,
    get_client,
    memory_client,
)

# Persistence gateway
from craftmatch.adapters.gateway import (
    ConnectionState,
    OperationResult,
    PersistenceGateway,
)

__all__ = [
    # Record store
    "RecordKind",
    "RecordStore",
    "get_client",
    "memory_client",
    # Persistence gateway
    "ConnectionState",
    "OperationResult",
    "PersistenceGateway",
]
