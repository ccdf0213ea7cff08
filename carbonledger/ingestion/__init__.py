"""
File ingestion: spreadsheet reading, fuzzy header mapping, row
normalisation, lenient validation and the GPC/CRF and content-pattern
parsers.
"""

from carbonledger.ingestion.header_mapper import HeaderMapper, HeaderMapping, map_headers
from carbonledger.ingestion.service import (
    IngestResult,
    IngestService,
    SaveResult,
    get_ingest_service,
)

__all__ = [
    "HeaderMapper",
    "HeaderMapping",
    "map_headers",
    "IngestResult",
    "IngestService",
    "SaveResult",
    "get_ingest_service",
]
