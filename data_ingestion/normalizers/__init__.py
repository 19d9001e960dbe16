"""
Data Ingestion - Normalizers Package.

Normalizers:
- log_normalizer: raw log + transaction context -> ActivityEvent
"""

from data_ingestion.normalizers.log_normalizer import (
    LogNormalizer,
    extract_participants,
    parse_quantity,
)

__all__ = [
    "LogNormalizer",
    "extract_participants",
    "parse_quantity",
]
