"""
Loaders for the mushaf page corpus and the ghareeb dataset.

Both sources may be local files or HTTP(S) URLs.
"""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from .ghareeb_index import GhareebIndex, build_index
from .ghareeb_typing import QuranPage
from .page_text import pages_from_records, parse_mushaf_text


class DataSourceError(Exception):
    """A page corpus or dataset could not be read or parsed."""


def _is_url(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


class CorpusClient:
    """Reads page and dataset sources from disk or over HTTP."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10):
        """
        Args:
            base_url: Prefix joined to relative sources that are not local files
            timeout: HTTP request timeout in seconds
        """
        self.base_url = base_url
        self.timeout = timeout
        self.session = requests.Session()
        self.logger = logging.getLogger(__name__)

    def load_pages(self, source: str) -> List[QuranPage]:
        """
        Load the page corpus.

        JSON sources hold page records, either as a list or under "pages";
        anything else is read as plain text with blank lines between pages.

        Args:
            source: Path or URL

        Returns:
            Pages sorted by page number
        """
        text = self._read_text(source)
        stripped = text.lstrip("\ufeff").lstrip()

        if stripped.startswith(("[", "{")):
            data = self._parse_json(stripped, source)
            records = data.get("pages") if isinstance(data, dict) else data
            if not isinstance(records, list):
                self.logger.error(f"Page source {source} has no page list")
                raise DataSourceError(f"No page records in {source}")
            pages = pages_from_records(records)
        else:
            pages = parse_mushaf_text(stripped)

        if not pages:
            self.logger.error(f"Page source {source} produced no pages")
            raise DataSourceError(f"No pages found in {source}")
        return pages

    def load_dataset(self, source: str) -> GhareebIndex:
        data = self._parse_json(self._read_text(source).lstrip("\ufeff"), source)
        if not isinstance(data, dict) or not isinstance(data.get("pages"), list):
            self.logger.error(f"Dataset {source} has no 'pages' list")
            raise DataSourceError(f"Malformed ghareeb dataset: {source}")
        return build_index(data)

    def _read_text(self, source: str) -> str:
        if not source:
            raise DataSourceError("No data source configured")

        path = Path(source)
        if not _is_url(source) and (path.exists() or not self.base_url):
            try:
                return path.read_text(encoding="utf-8")
            except OSError as e:
                self.logger.error(f"Failed to read {source}: {e}")
                raise DataSourceError(f"Failed to read {source}: {e}") from e

        url = source if _is_url(source) else urljoin(self.base_url, source)
        self.logger.debug(f"Making request to: {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.logger.error(f"Failed to fetch {url}: {e}")
            raise DataSourceError(f"Failed to fetch {url}: {e}") from e

        response.encoding = response.encoding or "utf-8"
        return response.text

    def _parse_json(self, text: str, source: str) -> Any:
        try:
            return json.loads(text)
        except ValueError as e:
            self.logger.error(f"Invalid JSON in {source}: {e}")
            raise DataSourceError(f"Invalid JSON in {source}: {e}") from e


def load_quran_data(
    pages_source: str,
    dataset_source: str,
    timeout: float = 10
) -> Tuple[List[QuranPage], GhareebIndex]:
    """
    Convenience function to load pages and the ghareeb index together.

    Args:
        pages_source: Path or URL of the page corpus
        dataset_source: Path or URL of the ghareeb dataset
        timeout: HTTP request timeout in seconds

    Returns:
        Tuple of (pages, index)
    """
    client = CorpusClient(timeout=timeout)
    pages = client.load_pages(pages_source)
    index = client.load_dataset(dataset_source)
    return pages, index
