"""HTML news site adapters."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from ingestion.settings import SiteProfile
from ingestion.utils.logging import get_logger

from .base import BaseSourceAdapter, ConnectorError

logger = get_logger(__name__)


class StructuredNewsSiteAdapter(BaseSourceAdapter):
    """A single newspaper section with site-tuned selectors.

    A failure fetching the section page propagates so the orchestrator records
    the whole source as failed.
    """

    def __init__(self, name: str, site: SiteProfile, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.name = name
        self.site = site

    def _collect(self, errors: List[str]) -> List[Dict[str, Any]]:
        return self.scrape_site(self.site, errors)


class GenericHtmlSiteAdapter(BaseSourceAdapter):
    """Several small local sites; each site fails independently."""

    def __init__(self, name: str, sites: Sequence[SiteProfile], **kwargs: Any) -> None:
        kwargs.setdefault("max_articles", 5)
        super().__init__(**kwargs)
        self.name = name
        self.sites = list(sites)

    def _collect(self, errors: List[str]) -> List[Dict[str, Any]]:
        drafts: List[Dict[str, Any]] = []
        failures = 0
        for site in self.sites:
            try:
                site_drafts = self.scrape_site(site, errors)
            except ConnectorError as exc:
                failures += 1
                errors.append(f"{site.name} 수집 실패: {exc}")
                continue
            logger.info("adapter.site_done", extra={"source": self.name, "site": site.name, "drafts": len(site_drafts)})
            drafts.extend(site_drafts)
        if self.sites and failures == len(self.sites):
            raise ConnectorError(f"{self.name}: 모든 사이트 수집 실패")
        return drafts
