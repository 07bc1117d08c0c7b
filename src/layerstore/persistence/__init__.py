"""layerstore persistence -- entities, schemas, mapping, storage, repositories.

Components, leaves first::

    schema.py        AttributeSchema (immutable descriptor) + ErrorRule
    entity.py        Entity with dirty tracking, EntityContext, factories
    conditions.py    Condition / Pagination / OrderSpec + SQL compilation
    mapper.py        attribute-space ↔ column-space translation, JSON columns
    translator.py    ErrorTranslator (driver errors → typed errors)
    storage.py       StorageEngine (SQL against a Connection)
    repository.py    Repository facade (attribute-space CRUD and search)

Tags:
    layerstore, persistence

Doc-Types:
    package-overview
"""

from layerstore.persistence.conditions import Condition, OrderSpec, Pagination
from layerstore.persistence.entity import ContextFactory, Entity, EntityContext, SimpleEntityFactory
from layerstore.persistence.mapper import Mapper
from layerstore.persistence.repository import Repository
from layerstore.persistence.schema import WILDCARD, AttributeSchema, ErrorRule
from layerstore.persistence.storage import StorageEngine
from layerstore.persistence.translator import ErrorTranslator

__all__ = [
    "WILDCARD",
    "AttributeSchema",
    "Condition",
    "ContextFactory",
    "Entity",
    "EntityContext",
    "ErrorRule",
    "ErrorTranslator",
    "Mapper",
    "OrderSpec",
    "Pagination",
    "Repository",
    "SimpleEntityFactory",
    "StorageEngine",
]
