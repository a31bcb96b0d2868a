"""VERIFY_ACCESS stage."""

from typing import Any, Dict, List, Protocol

from core.errors import AccessRevoked
from core.logger import get_logger
from core.tools.search_console_client import SiteEntry
from pipelines.core.base_agent import BaseAgent

logger = get_logger(__name__)


class SiteLister(Protocol):
    def list_verified_sites(self) -> List[SiteEntry]: ...


def _normalize_site(url: str) -> str:
    return url.strip().rstrip("/").lower()


class AccessCheckAgent(BaseAgent):
    """
    Confirm the configured website is still among the verified sites.

    Access can be revoked after setup, so this is checked on every run.
    """

    def __init__(self, client: SiteLister) -> None:
        super().__init__(name="VERIFY_ACCESS")
        self.client = client

    def run(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        website = input_data["config"].website
        verified = {_normalize_site(site["url"]) for site in self.client.list_verified_sites()}

        if _normalize_site(website) not in verified:
            raise AccessRevoked(website)

        logger.info(f"Access to {website} confirmed")
        return {}
