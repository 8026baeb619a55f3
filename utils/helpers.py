import hashlib
import re
import logging
from html import unescape
from typing import Optional, Any, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup

# Configure logging
logger = logging.getLogger(__name__)


def build_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def clean_price(price_text: Any) -> Optional[float]:
    """Clean and parse price text to float with rupee and decimal support."""
    if isinstance(price_text, (int, float)):
        return float(price_text) if price_text >= 0 else None
    if not isinstance(price_text, str) or not price_text.strip():
        logger.debug("Invalid price_text input: %s", price_text)
        return None

    try:
        # Remove currency symbols and markers: ₹, Rs., INR, $, €, £
        cleaned = re.sub(r"(?i)(rs\.?|inr|mrp)", "", price_text.strip())
        cleaned = re.sub(r"[₹€$£\s]", "", cleaned)

        # Indian and western thousands separators use commas
        if "," in cleaned and "." not in cleaned:
            parts = cleaned.split(",")
            if len(parts) == 2 and len(parts[1]) <= 2 and parts[1].isdigit():
                cleaned = cleaned.replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", "")

        match = re.search(r"(\d+(?:\.\d{1,2})?)", cleaned)
        if not match:
            logger.debug("No numeric value found in price_text: %s", price_text)
            return None

        price = float(match.group(1))

        if price < 0 or price > 1000000:
            logger.warning("Price out of reasonable range: %f", price)
            return None

        return price

    except (ValueError, AttributeError) as e:
        logger.error("Error parsing price '%s': %s", price_text, e)
        return None


def sanitize_text(text: Any) -> str:
    """Sanitize text by unescaping entities, removing control characters and normalizing whitespace."""
    if not isinstance(text, str):
        return ""

    sanitized = unescape(text)
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f]", " ", sanitized)
    sanitized = re.sub(r"\s+", " ", sanitized).strip()
    return sanitized


def validate_url(url: Any) -> bool:
    """Validate if the given string is an absolute http(s) URL."""
    if not isinstance(url, str):
        return False

    try:
        result = urlparse(url.strip())
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def extract_domain(url: str) -> str:
    """Lower-cased hostname of ``url`` without port."""
    return (urlparse(url).hostname or "").lower()


def compute_checksum(data: Union[str, bytes], algorithm: str = "sha256") -> str:
    """Hex digest of ``data`` (text is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.new(algorithm, data).hexdigest()
