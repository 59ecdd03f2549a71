import logging
from typing import Any, Dict, List, Optional

from tenacity import RetryError

from db.config import StreamSource, settings
from db.schemas import ContentIdentity
from scrapers.base_scraper import BaseScraper, ScraperError


class TorrentSearchScraper(BaseScraper):
    """
    Search source exposing `GET {url}/api/search?type=<type>&query=<id[:s:e]>`
    and answering `{"results": [{title, magnetLink, quality?, size?, filename?}]}`.
    """

    def __init__(self, name: str, base_url: str, timeout: Optional[float] = None):
        super().__init__(
            name=name,
            logger_name=__name__,
            timeout=timeout or settings.source_timeout,
        )
        self.base_url = base_url.rstrip("/")

    def _generate_url(self) -> str:
        return f"{self.base_url}/api/search"

    async def _scrape_and_parse(self, identity: ContentIdentity) -> List[Dict[str, Any]]:
        url = self._generate_url()
        params = {"type": str(identity.media_type), "query": identity.search_query}
        try:
            response = await self.make_request(url, params=params)
            data = response.json()
        except (ScraperError, RetryError):
            self.metrics.record_error("request_failed")
            return []
        except ValueError as e:
            self.metrics.record_error("invalid_json")
            self.logger.warning(f"Malformed JSON received from {url}: {e}")
            return []

        if not self.validate_response(data):
            self.metrics.record_error("invalid_response")
            self.logger.warning(f"Invalid response received for {url}")
            return []

        results = [result for result in data["results"] if isinstance(result, dict)]
        self.metrics.record_found_items(len(results))
        return results

    def validate_response(self, response: Any) -> bool:
        return isinstance(response, dict) and isinstance(response.get("results"), list)


def get_configured_sources(
    sources: Optional[List[StreamSource]] = None,
) -> List[TorrentSearchScraper]:
    sources = settings.stream_sources if sources is None else sources
    logging.debug("Configured stream sources: %s", [source.name for source in sources])
    return [TorrentSearchScraper(source.name, source.url) for source in sources]
