"""Keepa root category codes and their display names."""

from __future__ import annotations

from typing import Any, Dict

CATEGORY_NAMES: Dict[int, str] = {
    1: "Books",
    2: "Movies & TV",
    3: "Music",
    4: "Video Games",
    5: "Electronics",
    6: "Camera & Photo",
    7: "Computers",
    8: "Home & Garden",
    9: "Toys & Games",
    10: "Sports & Outdoors",
    11: "Tools & Home Improvement",
    12: "Beauty",
    13: "Health & Personal Care",
    14: "Office Products",
    15: "Pet Supplies",
    16: "Automotive",
    17: "Industrial & Scientific",
    18: "Jewelry",
    19: "Baby",
    20: "Clothing",
    21: "Shoes",
    22: "Luggage",
    23: "Software",
    24: "Cell Phones & Accessories",
    25: "Musical Instruments",
    26: "Grocery",
    27: "Watches",
    28: "Patio, Lawn & Garden",
    29: "Kindle Store",
    30: "Apps & Games",
}


def _to_code(value: Any):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def resolve_category(code: Any) -> str:
    """Map a category code to a label, synthesizing one for unknown codes."""
    numeric = _to_code(code)
    if numeric is not None and numeric in CATEGORY_NAMES:
        return CATEGORY_NAMES[numeric]
    label = numeric if numeric is not None else code
    return f"Category {label}"
