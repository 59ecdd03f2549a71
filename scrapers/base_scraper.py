import abc
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential

from db.config import settings
from db.schemas import ContentIdentity
from utils import const


@dataclass
class ScraperMetrics:
    scraper_name: str
    identity_key: Optional[str] = None
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    total_items_found: int = 0
    total_items_processed: int = 0
    error_counts: Counter = field(default_factory=Counter)
    skip_reasons: Counter = field(default_factory=Counter)
    quality_stats: Counter = field(default_factory=Counter)

    def start(self, identity_key: Optional[str] = None):
        """Reset counters for a new search"""
        self.identity_key = identity_key
        self.start_time = datetime.now()
        self.end_time = None
        self.total_items_found = 0
        self.total_items_processed = 0
        for counter in (self.error_counts, self.skip_reasons, self.quality_stats):
            counter.clear()

    def stop(self):
        self.end_time = datetime.now()

    def record_found_items(self, count: int):
        self.total_items_found += count

    def record_processed_item(self):
        self.total_items_processed += 1

    def record_error(self, error_type: str):
        self.error_counts[error_type] += 1

    def record_skip(self, reason: str):
        self.skip_reasons[reason] += 1

    def record_quality(self, quality: Any):
        self.quality_stats[str(quality)] += 1

    @property
    def duration_seconds(self) -> float:
        return ((self.end_time or datetime.now()) - self.start_time).total_seconds()

    def format_summary(self) -> str:
        lines = [
            "",
            f"{self.scraper_name} search summary for {self.identity_key}",
            f"Duration: {self.duration_seconds:.2f} seconds",
            "Results:",
            f"  ├─ Found    : {self.total_items_found}",
            f"  ├─ Accepted : {self.total_items_processed}",
            f"  ├─ Skipped  : {sum(self.skip_reasons.values())}",
            f"  └─ Errors   : {sum(self.error_counts.values())}",
        ]

        for title, counter in (
            ("Errors", self.error_counts),
            ("Skip Reasons", self.skip_reasons),
            ("Qualities", self.quality_stats),
        ):
            if not counter:
                continue
            lines.append(f"{title}:")
            for i, (name, count) in enumerate(counter.most_common(), 1):
                prefix = "  └─" if i == len(counter) else "  ├─"
                lines.append(f"{prefix} {name:<16} : {count}")

        return "\n".join(lines)

    def log_summary(self, logger: logging.Logger):
        logger.info(self.format_summary())


class ScraperError(Exception):
    pass


class BaseScraper(abc.ABC):
    """
    A search source queried by the aggregator. Subclasses return raw result
    dicts and leave normalization to the aggregator.
    """

    def __init__(
        self,
        name: str,
        logger_name: str,
        timeout: float = settings.source_timeout,
    ):
        self.name = name
        self.logger = logging.getLogger(logger_name)
        self.http_client = httpx.AsyncClient(timeout=timeout, headers=const.UA_HEADER)
        self.metrics = ScraperMetrics(name)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.http_client.aclose()

    async def scrape_and_parse(self, identity: ContentIdentity) -> List[Dict[str, Any]]:
        """
        Search raw results for identity. Failures are logged and recorded in
        the metrics, never raised.
        """
        self.metrics.start(identity.canonical_key)
        try:
            result = await self._scrape_and_parse(identity)
            if isinstance(result, list):
                return result
            self.logger.error(f"Invalid result received from {self.name}: {result}")
        except Exception as e:
            self.metrics.record_error("unexpected_error")
            self.logger.exception(f"An error occurred while searching {self.name}: {e}")
        finally:
            self.metrics.stop()
        return []

    @abc.abstractmethod
    async def _scrape_and_parse(self, identity: ContentIdentity) -> List[Dict[str, Any]]:
        pass

    @retry(
        stop=stop_after_attempt(2), wait=wait_exponential(multiplier=0.5, min=0.5, max=2)
    )
    async def make_request(
        self, url: str, method: str = "GET", is_expected_to_fail: bool = False, **kwargs
    ) -> httpx.Response:
        """
        Make an HTTP request with retry logic.
        """
        try:
            response = await self.http_client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404 and is_expected_to_fail:
                return e.response
            self.logger.error(f"HTTP error occurred: {e}")
            raise ScraperError(f"HTTP error occurred: {e}")
        except httpx.RequestError as e:
            self.logger.error(f"An error occurred while requesting {e.request.url!r}.")
            raise ScraperError(f"An error occurred while requesting {e.request.url!r}.")

    @abc.abstractmethod
    def validate_response(self, response: Any) -> bool:
        """
        Validate the decoded JSON response of a search.
        :param response: Decoded JSON response
        :return: True if valid, False otherwise
        """
        pass
