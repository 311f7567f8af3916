"""
Providers de conteúdo por backend.
"""

from .airtable import AirtableProvider, normalize_airtable_record
from .base import ContentProvider
from .baserow import BaserowProvider, normalize_baserow_row
from .sanity import SanityProvider, normalize_sanity_document

__all__ = [
    "ContentProvider",
    "BaserowProvider",
    "AirtableProvider",
    "SanityProvider",
    "normalize_baserow_row",
    "normalize_airtable_record",
    "normalize_sanity_document",
]
