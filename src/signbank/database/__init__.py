"""
Storage package for SignBank.

Provides the content store, label index and counter table backends.
"""

from signbank.database.base import ContentStore, CounterTable, LabelIndex
from signbank.database.factory import Stores, create_stores

__all__ = [
    'ContentStore',
    'CounterTable',
    'LabelIndex',
    'Stores',
    'create_stores',
]
