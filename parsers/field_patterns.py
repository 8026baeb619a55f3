"""
Ordered per-field extractors for retailer product pages.

Each extractor is a pure function ``(html) -> Optional[str]``; a field keeps
the first non-empty value produced by its list. Retailer markup changes
often, so every field carries several independent fallbacks.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from utils.helpers import sanitize_text

Extractor = Callable[[str], Optional[str]]

DEFAULT_FLAGS = re.IGNORECASE

_AMOUNT = r"([0-9][0-9,]*(?:\.[0-9]{1,2})?)"
_RUPEE = r"(?:₹|&#8377;|Rs\.?|INR)"


def regex_extractor(pattern: str, flags: int = DEFAULT_FLAGS, group: int = 1) -> Extractor:
    compiled = re.compile(pattern, flags)

    def extract(html: str) -> Optional[str]:
        match = compiled.search(html)
        if not match:
            return None
        value = sanitize_text(match.group(group))
        return value or None

    extract.pattern = compiled.pattern  # type: ignore[attr-defined]
    return extract


def cue_extractor(patterns: Iterable[str], flags: int = DEFAULT_FLAGS) -> Extractor:
    """Return the first matched cue phrase (used for boolean fields)."""
    compiled = [re.compile(p, flags) for p in patterns]

    def extract(html: str) -> Optional[str]:
        for pattern in compiled:
            match = pattern.search(html)
            if match:
                return sanitize_text(match.group(0))
        return None

    return extract


def first_match(extractors: Sequence[Extractor], html: str) -> Optional[str]:
    for extractor in extractors:
        value = extractor(html)
        if value:
            return value
    return None


def label_value(label: str) -> Extractor:
    """Text of the first element following a label element (``Label</x><y>value``)."""
    return regex_extractor(label + r"[^>]*>.*?<[^>]*>([^<]+)")


def label_colon(label: str) -> Extractor:
    """Inline ``Label: value`` text."""
    return regex_extractor(label + r"\s*:\s*([^<\n]+)")


PRESCRIPTION_CUES = (
    r"\bprescription\s+required\b",
    r"\brequires?\s+(?:a\s+)?(?:valid\s+)?prescription\b",
    r"\bRx\s+(?:required|only)\b",
    r"\bschedule\s+(?:H1|H|X)\s+drug\b",
    r"\bschedule\s+(?:H1|H|X)\b",
)

FIELD_NAMES = (
    "name",
    "composition",
    "price",
    "original_price",
    "discount",
    "manufacturer",
    "image",
    "uses",
    "side_effects",
    "strength",
    "dosage_form",
    "pack_size",
    "description",
    "prescription",
)


def _common_fields() -> Dict[str, List[Extractor]]:
    return {
        "name": [regex_extractor(r"<h1[^>]*>([^<]+)</h1>")],
        "composition": [
            label_value("Salt Composition"),
            label_value("Active Ingredients"),
            label_value("Ingredients"),
            label_value("Composition"),
        ],
        "price": [regex_extractor(_RUPEE + r"\s*" + _AMOUNT)],
        "original_price": [
            regex_extractor(r"M\.?R\.?P\.?.{0,200}?" + _RUPEE + r"\s*" + _AMOUNT),
        ],
        "discount": [regex_extractor(r"(\d{1,2}(?:\.\d+)?)\s*%\s*off")],
        "manufacturer": [
            label_colon("Manufacturer"),
            label_value("Manufacturer"),
            label_value("Marketed by"),
            label_colon("Mkt"),
        ],
        "image": [
            regex_extractor(r'<img[^>]*src="([^"]*product[^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"'),
        ],
        "uses": [
            regex_extractor(r"Uses of [^<]*</[^>]+>\s*(?:<[^>]+>\s*)*([^<]+)"),
            label_value("Therapeutic Uses"),
            label_value("Indications"),
        ],
        "side_effects": [
            regex_extractor(r"Side effects of [^<]*</[^>]+>\s*(?:<[^>]+>\s*)*([^<]+)"),
            label_value("Side Effects"),
        ],
        "strength": [label_value("Strength")],
        "dosage_form": [label_value("Dosage Form")],
        "pack_size": [
            label_value("Pack Size"),
            regex_extractor(
                r"(?:strip|bottle|box|tube|packet|vial) of "
                r"(\d+(?:\.\d+)?\s*(?:tablets?|capsules?|ml|g|gm|sachets?|softgels?))"
            ),
            label_value("Quantity"),
        ],
        "description": [
            regex_extractor(r"(?:Product Introduction|Description|Overview)[^>]*>.*?<p[^>]*>([^<]+)"),
            regex_extractor(r'<meta[^>]*name="description"[^>]*content="([^"]+)"'),
        ],
        "prescription": [cue_extractor(PRESCRIPTION_CUES)],
    }


@dataclass
class RetailerPatterns:
    """Extractor lists for one retailer; retailer-specific patterns run first."""

    key: str
    domains: Sequence[str]
    fields: Dict[str, List[Extractor]] = field(default_factory=dict)

    def extract(self, html: str) -> Dict[str, Optional[str]]:
        return {name: first_match(self.fields.get(name, []), html) for name in FIELD_NAMES}


def build_retailer(key: str, domains: Sequence[str], specific: Dict[str, List[Extractor]]) -> RetailerPatterns:
    merged = _common_fields()
    for name, extractors in specific.items():
        merged[name] = list(extractors) + merged.get(name, [])
    return RetailerPatterns(key=key, domains=domains, fields=merged)


ONE_MG = build_retailer(
    "1mg",
    ("1mg.com",),
    {
        "name": [
            regex_extractor(r'<h1[^>]*class="[^"]*ProductTitle[^"]*"[^>]*>([^<]+)<'),
            regex_extractor(r'<h1[^>]*class="[^"]*DrugHeader__title[^"]*"[^>]*>([^<]+)<'),
        ],
        "composition": [
            regex_extractor(r'class="[^"]*saltInfo[^"]*"[^>]*>(?:\s*<[^>]+>)*\s*([^<]+)'),
        ],
        "price": [
            regex_extractor(
                r'(?:PriceBox__best-price|DrugPriceBox__best-price|PriceDetails__discount-price)'
                r'[^>]*>(?:\s*<[^>]+>)*\s*' + _RUPEE + r"?\s*" + _AMOUNT
            ),
        ],
        "original_price": [
            regex_extractor(
                r'(?:PriceBox__mrp|DrugPriceBox__slashed-price)[^>]*>(?:\s*<[^>]+>)*\s*'
                r"(?:MRP\s*)?" + _RUPEE + r"?\s*" + _AMOUNT
            ),
        ],
        "manufacturer": [
            regex_extractor(r'class="[^"]*DrugHeader__meta-value[^"]*"[^>]*>(?:\s*<a[^>]*>)?\s*([^<]+)'),
        ],
        "image": [
            regex_extractor(r'<img[^>]*src="(https://onemg\.gumlet\.io/[^"]+)"'),
        ],
    },
)

APOLLO = build_retailer(
    "apollo",
    ("apollopharmacy.in",),
    {
        "name": [regex_extractor(r'<h1[^>]*class="[^"]*(?:PdpTitle|ProductName)[^"]*"[^>]*>([^<]+)<')],
        "manufacturer": [label_value("Manufacturer/ Marketer"), label_colon("Manufacturer/ Marketer")],
        "composition": [label_value("Composition")],
        "image": [regex_extractor(r'<img[^>]*src="([^"]*apollo[^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"')],
    },
)

NETMEDS = build_retailer(
    "netmeds",
    ("netmeds.com",),
    {
        "name": [regex_extractor(r'<h1[^>]*class="[^"]*(?:black-txt|prodName)[^"]*"[^>]*>([^<]+)<')],
        "price": [regex_extractor(r'final-price[^>]*>\s*(?:<[^>]+>\s*)*' + _RUPEE + r"?\s*" + _AMOUNT)],
        "manufacturer": [label_colon("Mkt"), regex_extractor(r'class="[^"]*drug-manu[^"]*"[^>]*>(?:\s*<[^>]+>)*\s*([^<]+)')],
        "composition": [regex_extractor(r'class="[^"]*drug-conf[^"]*"[^>]*>(?:\s*<[^>]+>)*\s*([^<]+)')],
        "image": [regex_extractor(r'<img[^>]*src="([^"]*netmeds[^"]*\.(?:jpg|jpeg|png|webp)[^"]*)"')],
    },
)

RETAILERS: Sequence[RetailerPatterns] = (ONE_MG, APOLLO, NETMEDS)
