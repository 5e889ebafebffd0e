"""
Catalog Module.

Static lookup of assignments, rubric criteria and submissions, with
load-time integrity checks.
"""

from rubricguard.catalog.loader import (
    Catalog,
    CatalogLoadError,
    load_catalog,
    load_sample_catalog,
    parse_catalog,
)
from rubricguard.catalog.validator import CatalogValidationError, CatalogValidator

__all__ = [
    "Catalog",
    "CatalogLoadError",
    "CatalogValidationError",
    "CatalogValidator",
    "load_catalog",
    "load_sample_catalog",
    "parse_catalog",
]
