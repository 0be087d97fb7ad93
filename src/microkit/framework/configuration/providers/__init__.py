"""
Document store backends that need a third-party SDK.
"""

from .firestore import FirestoreDocumentSource

__all__ = [
    "FirestoreDocumentSource",
]
