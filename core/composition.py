"""Canonical composition keys used for duplicate detection.

``composition_key`` identifies an exact formulation (ingredients plus
strengths) independent of ingredient order; ``composition_family_key`` drops
the strengths so different strengths of one combination share a family.
"""

import re
from typing import Optional, Tuple

from core.types import MedicineData

MICRO_GRAM = "µg"

_SEPARATORS = re.compile(r"[+&,]")
_WHITESPACE = re.compile(r"\s+")
# Thousands separators: "60,000" -> "60000"
_DIGIT_GROUP = re.compile(r"(?<=\d),(?=\d{3}\b)")

# (pattern, replacement) applied in order after lower-casing
_UNIT_START = r"(?:(?<=\d)|\b)"

_UNIT_REWRITES = (
    (re.compile(_UNIT_START + r"(?:micrograms?|mcg)(?![a-z])|μg"), MICRO_GRAM),
    (re.compile(_UNIT_START + r"milligrams?(?![a-z])"), "mg"),
    (re.compile(_UNIT_START + r"milli-?lit(?:re|er)s?(?![a-z])"), "ml"),
    (re.compile(_UNIT_START + r"grams?(?![a-z])"), "g"),
    (re.compile(_UNIT_START + r"i\.u\."), "iu"),
)

# "500 mg" -> "500mg", "0.5 %" -> "0.5%"
_NUMBER_UNIT_GAP = re.compile(r"(\d(?:[\d.]*\d)?)\s+(mg|µg|ml|g|iu|%)(?![a-z])")

_STRENGTH_TOKEN = re.compile(r"\d+(?:\.\d+)?\s*(?:(?:mg|µg|ml|g|iu)(?![a-z])|%)")


def normalize_composition(text: str) -> str:
    normalized = _WHITESPACE.sub(" ", text.lower()).strip()
    normalized = normalized.replace("(", " ").replace(")", " ")
    normalized = _DIGIT_GROUP.sub("", normalized)
    for pattern, replacement in _UNIT_REWRITES:
        normalized = pattern.sub(replacement, normalized)
    normalized = _NUMBER_UNIT_GAP.sub(r"\1\2", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def build_composition_key(normalized: str) -> str:
    ingredients = sorted(
        token
        for token in (_WHITESPACE.sub(" ", part).strip() for part in _SEPARATORS.split(normalized))
        if token
    )
    return "+".join(ingredients)


def build_family_key(normalized: str) -> str:
    without_strength = _STRENGTH_TOKEN.sub("", normalized)
    return build_composition_key(_WHITESPACE.sub(" ", without_strength).strip())


def composition_keys(text: Optional[str]) -> Optional[Tuple[str, Optional[str]]]:
    """Return ``(composition_key, family_key)`` or None for empty text."""
    if not text or not text.strip():
        return None
    normalized = normalize_composition(text)
    key = build_composition_key(normalized)
    if not key:
        return None
    return key, build_family_key(normalized) or None


def apply_composition_keys(medicine: MedicineData) -> None:
    """Stamp both keys onto ``medicine``; leaves them unset for empty composition."""
    keys = composition_keys(medicine.composition)
    if keys is None:
        return
    medicine.composition_key, medicine.composition_family_key = keys
