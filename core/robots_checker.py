"""
Robots.txt compliance checker for the medicine importer.

This module provides:
- robots.txt retrieval per origin (fail open when missing or unreachable)
- user-agent group parsing for ``*`` and the importer's own token
- prefix-based Disallow matching for a target path
- per-invocation caching and compliance statistics
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ROBOTS_USER_AGENT = "MedicineImporter/1.0"
DEFAULT_AGENT_TOKEN = "medicineimporter"


@dataclass
class RobotsGroup:
    """One ``User-agent`` block and the Disallow paths that follow it."""

    agents: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)

    def applies_to(self, agent_token: str) -> bool:
        return any(agent == "*" or agent_token in agent for agent in self.agents)


def parse_robots_txt(robots_content: str) -> List[RobotsGroup]:
    """
    Parse robots.txt content into user-agent groups.

    Consecutive ``User-agent`` lines share one group; a ``User-agent`` line that
    follows rules starts a new group. Lines are compared case-insensitively.
    """
    groups: List[RobotsGroup] = []
    current: Optional[RobotsGroup] = None
    collecting_agents = False

    for raw_line in robots_content.splitlines():
        line = raw_line.split("#", 1)[0].strip().lower()
        if not line or ":" not in line:
            continue

        directive, value = line.split(":", 1)
        directive = directive.strip()
        value = value.strip()

        if directive == "user-agent":
            if current is None or not collecting_agents:
                current = RobotsGroup()
                groups.append(current)
            current.agents.append(value)
            collecting_agents = True
            continue

        collecting_agents = False
        if current is not None and directive == "disallow" and value:
            current.disallow.append(value)

    return groups


def is_path_disallowed(groups: List[RobotsGroup], path: str, agent_token: str) -> bool:
    target = (path or "/").lower()
    for group in groups:
        if not group.applies_to(agent_token):
            continue
        for rule in group.disallow:
            if rule == "/" or target.startswith(rule):
                return True
    return False


class RobotsTxtChecker:
    """
    robots.txt gate applied before fetching product pages.

    Features:
    - Fail-open behaviour when robots.txt is absent or unreachable
    - Wildcard and importer-specific user-agent groups
    - Origin-level cache for the lifetime of the checker
    - Compliance statistics
    """

    def __init__(self, client: httpx.AsyncClient, config: Optional[Dict[str, Any]] = None):
        """Initialize RobotsTxtChecker with an HTTP client and configuration."""
        config = config or {}
        self.client = client
        self.enabled = config.get("enabled", True)
        self.user_agent = config.get("user_agent", DEFAULT_ROBOTS_USER_AGENT)
        self.agent_token = config.get("agent_token", DEFAULT_AGENT_TOKEN).lower()
        self.timeout = config.get("timeout_seconds", 10)

        # origin -> parsed groups (None when robots.txt is unavailable)
        self.robots_cache: Dict[str, Optional[List[RobotsGroup]]] = {}

        self.compliance_stats = {
            "total_checks": 0,
            "allowed_requests": 0,
            "blocked_requests": 0,
            "robots_txt_fetches": 0,
            "robots_txt_errors": 0,
            "cache_hits": 0,
        }

    @staticmethod
    def robots_url_for(url: str) -> str:
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}/robots.txt"

    async def check_url_allowed(self, url: str) -> Dict[str, Any]:
        """
        URL permission check.

        Args:
            url: URL to check for permission

        Returns:
            Dictionary with ``allowed`` flag and ``reason``
        """
        if not self.enabled:
            return {"allowed": True, "reason": "robots_txt_checking_disabled"}

        self.compliance_stats["total_checks"] += 1
        parsed = urlparse(url)
        groups = await self._get_groups(url)

        if groups is None:
            self.compliance_stats["allowed_requests"] += 1
            return {"allowed": True, "reason": "robots_txt_unavailable"}

        if is_path_disallowed(groups, parsed.path, self.agent_token):
            self.compliance_stats["blocked_requests"] += 1
            logger.warning(f"URL blocked by robots.txt: {url}")
            return {"allowed": False, "reason": "disallowed_by_robots_txt"}

        self.compliance_stats["allowed_requests"] += 1
        return {"allowed": True, "reason": "allowed_by_robots_txt"}

    async def is_allowed(self, url: str) -> bool:
        result = await self.check_url_allowed(url)
        return bool(result["allowed"])

    async def fetch_robots_txt(self, url: str) -> Optional[str]:
        """
        Fetch robots.txt for the origin of ``url``.

        Returns:
            Robots.txt content or None when missing or unreachable
        """
        robots_url = self.robots_url_for(url)
        try:
            response = await self.client.get(
                robots_url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {robots_url}, defaulting to allowed: {e}")
            self.compliance_stats["robots_txt_errors"] += 1
            return None

        if response.status_code < 200 or response.status_code >= 300:
            logger.debug(
                f"robots.txt not found at {robots_url} (status: {response.status_code})"
            )
            return None

        self.compliance_stats["robots_txt_fetches"] += 1
        return response.text

    async def _get_groups(self, url: str) -> Optional[List[RobotsGroup]]:
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}".lower()
        if origin in self.robots_cache:
            self.compliance_stats["cache_hits"] += 1
            return self.robots_cache[origin]

        content = await self.fetch_robots_txt(url)
        groups = parse_robots_txt(content) if content is not None else None
        self.robots_cache[origin] = groups
        return groups

    def get_compliance_report(self) -> Dict[str, Any]:
        total = self.compliance_stats["total_checks"]
        return {
            **self.compliance_stats,
            "block_rate": (
                self.compliance_stats["blocked_requests"] / total if total else 0.0
            ),
            "cached_origins": len(self.robots_cache),
        }
