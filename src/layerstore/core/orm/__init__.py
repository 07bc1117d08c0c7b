"""SQLAlchemy integration: engine factory and the Session → Connection bridge.

Tags:
    layerstore, orm, sqlalchemy

Doc-Types:
    api-reference
"""

from layerstore.core.orm.session import (
    QmarkDialect,
    SAConnectionBridge,
    StoreSession,
    create_store_engine,
    store_session_factory,
)

__all__ = [
    "QmarkDialect",
    "SAConnectionBridge",
    "StoreSession",
    "create_store_engine",
    "store_session_factory",
]
