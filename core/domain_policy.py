"""Source domain trust classification for copyright and accuracy review."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from core.types import TrustTier

logger = logging.getLogger(__name__)

TRUSTED_DOMAINS = (
    "1mg.com",
    "apollopharmacy.in",
    "netmeds.com",
    "pharmeasy.in",
)

REVIEW_SUFFIX = " - unverified source, manual review required"

_TIER_LABELS = {
    TrustTier.TRUSTED: "trusted medical retailer",
    TrustTier.ALLOWLISTED: "allowlisted source",
    TrustTier.UNKNOWN: "external source",
}


def parse_allowlist(raw: Optional[str]) -> List[str]:
    """Split a comma separated allowlist into normalised domains."""
    if not raw:
        return []
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def host_matches(host: str, domain: str) -> bool:
    """True when ``host`` is ``domain`` or one of its subdomains."""
    host = host.lower().rstrip(".")
    domain = domain.lower().lstrip(".")
    return host == domain or host.endswith("." + domain)


class DomainPolicy:
    """Classifies hosts into trust tiers.

    Unknown domains are never blocked; they only produce review warnings.
    """

    def __init__(
        self,
        allowlist: Optional[Iterable[str]] = None,
        trusted: Iterable[str] = TRUSTED_DOMAINS,
    ) -> None:
        self.trusted = tuple(trusted)
        self.allowlist = tuple(d.strip().lower() for d in (allowlist or ()) if d.strip())

    def classify(self, host: str) -> TrustTier:
        if any(host_matches(host, domain) for domain in self.trusted):
            return TrustTier.TRUSTED
        if any(host_matches(host, domain) for domain in self.allowlist):
            return TrustTier.ALLOWLISTED
        return TrustTier.UNKNOWN

    @staticmethod
    def attribution(domain: str, tier: TrustTier) -> str:
        verdict = (
            "verified content" if tier == TrustTier.TRUSTED else "requires copyright review"
        )
        return f"Imported from {domain} ({_TIER_LABELS[tier]}) - {verdict}"

    @staticmethod
    def review_warnings(domain: str, tier: TrustTier) -> List[str]:
        if tier != TrustTier.UNKNOWN:
            return []
        logger.warning(
            "Domain %s not in allowlist - using generic parsing with copyright guard",
            domain,
        )
        return [
            f"Domain {domain} not allowlisted - manual copyright review required",
            "Verify attribution and permission before publishing",
        ]

    @staticmethod
    def annotate(warning: str, tier: TrustTier) -> str:
        if tier == TrustTier.UNKNOWN and not warning.endswith(REVIEW_SUFFIX):
            return warning + REVIEW_SUFFIX
        return warning
