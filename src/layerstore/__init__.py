"""
layerstore - backing-store-agnostic persistence with dirty tracking.

Entities remember what changed, schemas say how attributes map to columns,
and a storage engine turns that into parameterised SQL over any DB-API
shaped connection (sqlite3, a SQLAlchemy session, …).

- layerstore.core: protocols, dialects, connections, errors, logging, settings
- layerstore.persistence: schema, entity, mapper, storage engine, repository
"""

__version__ = "0.1.0"

from layerstore.core.connection import create_connection
from layerstore.core.errors import LayerStoreError
from layerstore.persistence import (
    AttributeSchema,
    Entity,
    ErrorRule,
    Repository,
    SimpleEntityFactory,
    StorageEngine,
)

__all__ = [
    "AttributeSchema",
    "Entity",
    "ErrorRule",
    "LayerStoreError",
    "Repository",
    "SimpleEntityFactory",
    "StorageEngine",
    "create_connection",
]
