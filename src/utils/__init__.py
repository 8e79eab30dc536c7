"""Utility modules for the poster crawler.

Provides shared utilities for:
- Text cleaning and normalization
- Date/time parsing (Gregorian, ROC and short forms)
- URL resolution and validation
- Taiwanese city names and address assembly
- Gift parsing
- Event deduplication and merge
"""

# Text utilities
from src.utils.text import clean_text, fold_fullwidth_digits, normalize_whitespace, strip_label

# Date utilities
from src.utils.date_parser import (
    count_date_shapes,
    extract_date_tokens,
    normalize_year,
    parse_flexible_date,
    parse_time_range,
    resolve_short_date,
)

# URL utilities
from src.utils.urls import (
    domain_matches,
    extract_domain,
    get_query_param,
    is_valid_url,
    make_absolute_url,
    strip_fragment,
)

# Location utilities
from src.utils.locations import (
    VALID_CITIES,
    build_full_address,
    extract_city_from_text,
    fold_city_variant,
    normalize_city,
    normalize_location_key,
    split_address,
)

# Gifts
from src.utils.gifts import parse_gift

# Deduplication
from src.utils.deduplication import (
    ReconcileResult,
    dedupe_batch,
    is_same_occasion,
    locations_overlap,
    reconcile,
)

__all__ = [
    # Text
    "clean_text",
    "normalize_whitespace",
    "strip_label",
    "fold_fullwidth_digits",
    # Dates
    "count_date_shapes",
    "extract_date_tokens",
    "normalize_year",
    "parse_flexible_date",
    "parse_time_range",
    "resolve_short_date",
    # URLs
    "domain_matches",
    "extract_domain",
    "get_query_param",
    "is_valid_url",
    "make_absolute_url",
    "strip_fragment",
    # Locations
    "VALID_CITIES",
    "build_full_address",
    "extract_city_from_text",
    "fold_city_variant",
    "normalize_city",
    "normalize_location_key",
    "split_address",
    # Gifts
    "parse_gift",
    # Deduplication
    "ReconcileResult",
    "dedupe_batch",
    "is_same_occasion",
    "locations_overlap",
    "reconcile",
]
