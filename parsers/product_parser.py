"""
Medicine product page parser.

Strategies run in order and the first one that yields a product name wins:

1. ``structured_data`` - schema.org ``Product``/``Drug`` JSON-LD blocks
2. ``opengraph`` - ``og:title`` and friends
3. ``retailer:<key>`` - regex extractors for known pharmacy layouts
4. ``generic`` - page title plus hints derived from the product name

Whatever strategy wins, completeness warnings are derived from the fields
that were actually filled.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup

from core.domain_policy import host_matches
from core.types import MedicineData, ParsedProduct
from parsers.field_patterns import RETAILERS, RetailerPatterns
from utils.helpers import build_soup, clean_price, extract_domain, sanitize_text

logger = logging.getLogger(__name__)

NO_PRICE_WARNING = "No price found - requires manual review"
NO_MANUFACTURER_WARNING = "No manufacturer found - requires manual review"
NO_COMPOSITION_WARNING = "Composition uncertain - requires manual review"
NO_IMAGE_WARNING = "No product image found"
NO_NAME_WARNING = "No product name found - name derived from URL"

_PRODUCT_TYPES = {"product", "drug"}

_DOSAGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?\s*(?:mg|mcg|µg|g|ml|iu|%))(?![a-z])", re.IGNORECASE)
_PACK_PATTERNS = (
    re.compile(r"(?:strip|bottle|pack|box|tube|packet) of (\d+\s*[a-z]+)", re.IGNORECASE),
    re.compile(r"\b(\d+\s*(?:tablets?|capsules?|sachets?|softgels?))\b", re.IGNORECASE),
)
_PARENTHESES = re.compile(r"\(([^)]*[a-z][^)]*)\)", re.IGNORECASE)
_WORD_STRENGTH = re.compile(r"([a-z][a-z\-]*)\s+(\d+(?:\.\d+)?\s*(?:mg|mcg|g|ml))(?![a-z])", re.IGNORECASE)
_TITLE_SEPARATOR = re.compile(r"\s+[|\-–]\s+")
_TRAILING_ID = re.compile(r"[-_]\d+$")


def extract_medicine_details(name: str) -> Dict[str, Optional[str]]:
    """Derive dosage, pack size, brand and a composition hint from a product name."""
    details: Dict[str, Optional[str]] = {
        "dosage": None,
        "pack_size": None,
        "brand": None,
        "composition": None,
    }
    if not name:
        return details

    dosage = _DOSAGE_PATTERN.search(name)
    if dosage:
        details["dosage"] = re.sub(r"\s+", "", dosage.group(1))

    for pattern in _PACK_PATTERNS:
        pack = pattern.search(name)
        if pack:
            details["pack_size"] = sanitize_text(pack.group(1))
            break

    details["brand"] = name.split()[0]

    parenthesised = _PARENTHESES.search(name)
    if parenthesised:
        details["composition"] = sanitize_text(parenthesised.group(1))
    else:
        word_strength = _WORD_STRENGTH.search(name)
        if word_strength:
            details["composition"] = f"{word_strength.group(1)} {word_strength.group(2)}"

    return details


def extract_title(soup: BeautifulSoup) -> Optional[str]:
    """Page ``<title>`` without the retailer suffix, falling back to the first ``<h1>``."""
    title_tag = soup.find("title")
    title = sanitize_text(title_tag.get_text()) if title_tag else ""
    if title:
        title = _TITLE_SEPARATOR.split(title)[0]
        title = re.sub(r"^buy\s+", "", title, flags=re.IGNORECASE)
        title = re.sub(r"\s+online$", "", title, flags=re.IGNORECASE).strip()
    if not title:
        h1 = soup.find("h1")
        title = sanitize_text(h1.get_text()) if h1 else ""
    return title or None


def name_from_url(url: str) -> str:
    """``/drugs/dolo-650-tablet-74467`` -> ``Dolo 650 Tablet``."""
    segment = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    segment = _TRAILING_ID.sub("", segment)
    words = re.split(r"[-_+]+", segment)
    return " ".join(word.capitalize() for word in words if word)


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _entity_name(value: Any) -> Optional[str]:
    value = _first(value)
    if isinstance(value, dict):
        value = value.get("name")
    text = sanitize_text(value) if isinstance(value, str) else ""
    return text or None


def _image_value(value: Any) -> Optional[str]:
    value = _first(value)
    if isinstance(value, dict):
        value = value.get("url") or value.get("contentUrl")
    return value.strip() if isinstance(value, str) and value.strip() else None


def _type_names(obj: Dict[str, Any]) -> List[str]:
    declared = obj.get("@type")
    if isinstance(declared, list):
        return [str(item).lower() for item in declared]
    return [str(declared).lower()] if declared else []


def _flatten_json_ld(data: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _flatten_json_ld(item)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _flatten_json_ld(data["@graph"])


class ProductParser:
    """Turns product page HTML into a ``MedicineData`` draft."""

    def __init__(self, retailers: Optional[Sequence[RetailerPatterns]] = None):
        self.retailers = list(retailers if retailers is not None else RETAILERS)
        self.logger = logging.getLogger(__name__)

    def retailer_for(self, domain: str) -> Optional[RetailerPatterns]:
        for retailer in self.retailers:
            if any(host_matches(domain, known) for known in retailer.domains):
                return retailer
        return None

    def parse(self, html: str, url: str) -> ParsedProduct:
        html = html or ""
        soup = build_soup(html)
        domain = extract_domain(url)

        strategy = "structured_data"
        medicine = self.parse_structured_data(soup, url)
        if medicine is None:
            strategy = "opengraph"
            medicine = self.parse_opengraph(soup, url)
        if medicine is None:
            retailer = self.retailer_for(domain)
            if retailer is not None:
                strategy = f"retailer:{retailer.key}"
                medicine = self.parse_retailer(html, soup, url, retailer)
            else:
                strategy = "generic"
                medicine = self.parse_generic(soup, url)

        warnings: List[str] = []
        if not medicine.name:
            medicine.name = name_from_url(url)
            warnings.append(NO_NAME_WARNING)
        warnings.extend(self.completeness_warnings(medicine))

        self.logger.info(f"Parsed {url} with {strategy} strategy: {medicine.name}")
        return ParsedProduct(medicine=medicine, strategy=strategy, warnings=warnings)

    def completeness_warnings(self, medicine: MedicineData) -> List[str]:
        warnings = []
        if not medicine.price or medicine.price <= 0:
            warnings.append(NO_PRICE_WARNING)
        if not medicine.manufacturer:
            warnings.append(NO_MANUFACTURER_WARNING)
        if not medicine.composition:
            warnings.append(NO_COMPOSITION_WARNING)
        if not medicine.image_url:
            warnings.append(NO_IMAGE_WARNING)
        for warning in warnings:
            self.logger.warning(f"{warning}: {medicine.name}")
        return warnings

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def iter_structured_products(self, soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
        scripts = soup.find_all(
            "script", attrs={"type": re.compile(r"application/ld\+json", re.IGNORECASE)}
        )
        for script in scripts:
            raw = script.string or script.get_text() or ""
            if not raw.strip():
                continue
            try:
                data = json.loads(raw.strip())
            except ValueError as e:
                self.logger.debug(f"Skipping malformed JSON-LD block: {e}")
                continue
            for obj in _flatten_json_ld(data):
                if _PRODUCT_TYPES.intersection(_type_names(obj)):
                    yield obj

    def parse_structured_data(self, soup: BeautifulSoup, url: str) -> Optional[MedicineData]:
        for obj in self.iter_structured_products(soup):
            name = sanitize_text(obj.get("name"))
            if not name:
                continue

            offers = _first(obj.get("offers")) or {}
            if not isinstance(offers, dict):
                offers = {}
            price = clean_price(offers.get("price") or offers.get("lowPrice")) or 0.0
            high_price = clean_price(offers.get("highPrice"))

            composition = obj.get("activeIngredient")
            if isinstance(composition, list):
                composition = ", ".join(sanitize_text(item) for item in composition if item)
            composition = sanitize_text(composition) or None

            status = str(obj.get("prescriptionStatus") or "").lower()
            image = _image_value(obj.get("image"))
            details = extract_medicine_details(name)

            return MedicineData(
                name=name,
                brand=_entity_name(obj.get("brand")) or details["brand"],
                generic_name=sanitize_text(obj.get("nonProprietaryName")) or None,
                manufacturer=_entity_name(obj.get("manufacturer")),
                price=price,
                original_price=high_price or (price or None),
                description=sanitize_text(obj.get("description")) or None,
                dosage=details["dosage"],
                pack_size=details["pack_size"],
                dosage_form=sanitize_text(obj.get("dosageForm")) or None,
                requires_prescription="prescription" in status,
                composition=composition,
                image_url=urljoin(url, image) if image else None,
            )
        return None

    def parse_opengraph(self, soup: BeautifulSoup, url: str) -> Optional[MedicineData]:
        name = sanitize_text(self._meta(soup, "og:title"))
        if not name:
            return None

        details = extract_medicine_details(name)
        price_text = self._meta(soup, "product:price:amount") or self._meta(soup, "og:price:amount")
        image = self._meta(soup, "og:image")

        return MedicineData(
            name=name,
            brand=details["brand"],
            price=clean_price(price_text) or 0.0,
            description=sanitize_text(self._meta(soup, "og:description")) or None,
            dosage=details["dosage"],
            pack_size=details["pack_size"],
            image_url=urljoin(url, image.strip()) if image and image.strip() else None,
        )

    def parse_retailer(
        self, html: str, soup: BeautifulSoup, url: str, retailer: RetailerPatterns
    ) -> MedicineData:
        values = retailer.extract(html)
        name = values["name"] or extract_title(soup) or ""
        details = extract_medicine_details(name)

        price = clean_price(values["price"]) or 0.0
        original_price = clean_price(values["original_price"])
        discount = clean_price(values["discount"])
        if discount is None and original_price and 0 < price < original_price:
            discount = round((original_price - price) / original_price * 100, 2)

        image = values["image"]
        return MedicineData(
            name=name,
            brand=details["brand"],
            manufacturer=values["manufacturer"],
            price=price,
            original_price=original_price,
            discount_percentage=discount,
            description=values["description"],
            dosage=details["dosage"] or values["strength"],
            pack_size=values["pack_size"] or details["pack_size"],
            strength=values["strength"],
            dosage_form=values["dosage_form"],
            uses=values["uses"],
            side_effects=values["side_effects"],
            requires_prescription=bool(values["prescription"]),
            composition=values["composition"] or details["composition"],
            image_url=urljoin(url, image) if image else None,
        )

    def parse_generic(self, soup: BeautifulSoup, url: str) -> MedicineData:
        name = extract_title(soup) or ""
        details = extract_medicine_details(name)
        return MedicineData(
            name=name,
            brand=details["brand"],
            price=0.0,
            dosage=details["dosage"],
            pack_size=details["pack_size"],
            composition=details["composition"],
        )

    @staticmethod
    def _meta(soup: BeautifulSoup, key: str) -> Optional[str]:
        tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
        if tag is None:
            return None
        content = tag.get("content")
        return content if isinstance(content, str) else None
