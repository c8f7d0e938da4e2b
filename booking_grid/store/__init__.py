from .document_store import DocumentStore, InMemoryDocumentStore, PersistenceFailure, StoreDocument

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "PersistenceFailure",
    "StoreDocument",
]
