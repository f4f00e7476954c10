"""Static SQL Server classification identifiers and T-SQL escaping helpers.

The GUIDs are the built-in SQL Server information types and sensitivity
labels. Both live-database write paths use them to emit ``*_ID`` values next
to the display names. Names not listed here are written name-only.
"""
from __future__ import annotations

from typing import Dict, Optional

INFORMATION_TYPE_IDS: Dict[str, str] = {
    "Banking": "8a462631-4130-0a31-9a52-c6a9ca125f92",
    "Contact Info": "5c503e21-22c6-81fa-620b-f369b8ec38d1",
    "Credentials": "c64aba7b-3a3e-95b6-535d-3bc535da5a59",
    "Credit Card": "d22fa6e9-5ee4-3bde-4c2b-a409604c4646",
    "Date Of Birth": "3de7cc52-710d-4e96-7e20-4d5188d2590c",
    "Financial": "c44193e1-0e58-4b2a-9001-f7d6e7bc1373",
    "Health": "6e2c5b18-97cf-3073-27ab-f12f87493da7",
    "Name": "57845286-7598-22f5-9659-15b24aeb125e",
    "National ID": "6f5a11a7-08b1-19c3-59e5-8c89cf4f8444",
    "Networking": "b40ad280-0f6a-6ca8-11ba-2f1a08651fcf",
    "SSN": "d936ec2c-04a4-9cf7-44c2-378a96456c61",
    "Other": "9c5b4a0c-3b8c-4c13-8a8c-2b0b1e2d3f4a",
}

SENSITIVITY_LABEL_IDS: Dict[str, str] = {
    "Public": "1866ca45-1973-4c28-9d12-04d407f147ad",
    "General": "684a0db2-d514-49d8-8c0c-df84a7b083eb",
    "Confidential": "331f0b13-76b5-2f1b-a77b-def5a73c73c2",
    "Confidential - GDPR": "989adc05-3f3f-0588-a635-f475b994915b",
    "Highly Confidential": "b82ce05b-60a9-4cf3-8a8a-d6a0bb76e903",
    "Highly Confidential - GDPR": "3302ae7f-b8ac-46bc-97f8-378828781efd",
}


def information_type_id(name: Optional[str]) -> Optional[str]:
    return INFORMATION_TYPE_IDS.get(name) if name else None


def sensitivity_label_id(name: Optional[str]) -> Optional[str]:
    return SENSITIVITY_LABEL_IDS.get(name) if name else None


def escape_sql_name(name: str) -> str:
    """Quote an identifier: ``a]b`` -> ``[a]]b]``."""
    return "[" + name.replace("]", "]]") + "]"


def escape_sql_string(value: str) -> str:
    """Escape a string literal body: ``O'Brien`` -> ``O''Brien``."""
    return value.replace("'", "''")
