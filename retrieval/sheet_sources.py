"""Knowledge sources: where tenant sheets are fetched from."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, List, Dict

import requests

from errors import KnowledgeSourceError
from schemas.knowledge import KnowledgeItem
from .sheet_loader import SheetLoader

logger = logging.getLogger(__name__)


class KnowledgeSource(ABC):
    """Interface for fetching a tenant's knowledge items."""

    def __init__(self, loader: Optional[SheetLoader] = None):
        self.loader = loader or SheetLoader()

    @abstractmethod
    def tenants(self) -> List[str]:
        """Tenants this source has a sheet for."""
        pass

    @abstractmethod
    def fetch_raw(self, tenant_id: str) -> bytes:
        """
        Fetch the tenant's sheet as raw bytes.

        Raises:
            KnowledgeSourceError: If the sheet cannot be fetched
        """
        pass

    def has_tenant(self, tenant_id: str) -> bool:
        return tenant_id in self.tenants()

    def fetch(self, tenant_id: str) -> List[KnowledgeItem]:
        """
        Fetch and parse the tenant's sheet.

        Raises:
            KnowledgeSourceError: If the sheet cannot be fetched or parsed
        """
        content = self.fetch_raw(tenant_id)
        try:
            df = self.loader.parse_bytes(content)
        except ValueError as e:
            raise KnowledgeSourceError(tenant_id, str(e)) from e
        return self.loader.to_items(df, tenant_id)


class CSVSheetSource(KnowledgeSource):
    """Sheets exported to local CSV files, one per tenant."""

    def __init__(self, paths: Dict[str, str], loader: Optional[SheetLoader] = None):
        """
        Initialize CSV source.

        Args:
            paths: Tenant id -> CSV file path
            loader: Sheet loader (default: SheetLoader())
        """
        super().__init__(loader)
        self.paths = dict(paths)

    def tenants(self) -> List[str]:
        return list(self.paths)

    def fetch_raw(self, tenant_id: str) -> bytes:
        path = self.paths.get(tenant_id)
        if path is None:
            raise KnowledgeSourceError(tenant_id, "no sheet configured")
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise KnowledgeSourceError(tenant_id, f"cannot read {path}: {e}") from e


class HTTPSheetSource(KnowledgeSource):
    """
    Sheets published as CSV over HTTP (e.g. a spreadsheet's "publish to web" link).

    Failures are reported per call; the cache decides whether to keep
    serving the last good copy.
    """

    def __init__(
        self,
        urls: Dict[str, str],
        timeout: float = 10,
        auth_token: Optional[str] = None,
        loader: Optional[SheetLoader] = None
    ):
        """
        Initialize HTTP source.

        Args:
            urls: Tenant id -> CSV export URL
            timeout: Request timeout in seconds (default: 10)
            auth_token: Optional bearer token
            loader: Sheet loader (default: SheetLoader())
        """
        super().__init__(loader)
        self.urls = dict(urls)
        self.timeout = timeout
        self.auth_token = auth_token

    def tenants(self) -> List[str]:
        return list(self.urls)

    def _get_headers(self) -> dict:
        """Build request headers."""
        headers = {
            "Accept": "text/csv",
            "User-Agent": "WhatsApp-Business-Assistant/1.0"
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def fetch_raw(self, tenant_id: str) -> bytes:
        url = self.urls.get(tenant_id)
        if url is None:
            raise KnowledgeSourceError(tenant_id, "no sheet configured")

        try:
            response = requests.get(url, headers=self._get_headers(), timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise KnowledgeSourceError(tenant_id, f"timeout after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise KnowledgeSourceError(tenant_id, f"request failed: {e}") from e

        if response.status_code in (401, 403):
            raise KnowledgeSourceError(tenant_id, f"authentication failed: {response.status_code}")
        if response.status_code != 200:
            raise KnowledgeSourceError(tenant_id, f"sheet returned status {response.status_code}")

        logger.debug(f"Fetched sheet for tenant {tenant_id}: {len(response.content)} bytes")
        return response.content


class MultiSheetSource(KnowledgeSource):
    """Routes each tenant to the first source that has a sheet for it."""

    def __init__(self, sources: List[KnowledgeSource]):
        super().__init__(sources[0].loader if sources else None)
        self.sources = sources

    def tenants(self) -> List[str]:
        seen: List[str] = []
        for source in self.sources:
            seen.extend(t for t in source.tenants() if t not in seen)
        return seen

    def _source_for(self, tenant_id: str) -> KnowledgeSource:
        for source in self.sources:
            if source.has_tenant(tenant_id):
                return source
        raise KnowledgeSourceError(tenant_id, "no sheet configured")

    def fetch_raw(self, tenant_id: str) -> bytes:
        return self._source_for(tenant_id).fetch_raw(tenant_id)

    def fetch(self, tenant_id: str) -> List[KnowledgeItem]:
        return self._source_for(tenant_id).fetch(tenant_id)


def build_knowledge_source(sheets: Dict[str, str], timeout: float = 10) -> KnowledgeSource:
    """
    Build a source from a tenant -> location map.

    Locations starting with http:// or https:// are fetched over HTTP;
    anything else is treated as a local CSV path.
    """
    loader = SheetLoader()
    urls = {t: loc for t, loc in sheets.items() if loc.startswith(("http://", "https://"))}
    paths = {t: loc for t, loc in sheets.items() if t not in urls}
    return MultiSheetSource([
        HTTPSheetSource(urls, timeout=timeout, loader=loader),
        CSVSheetSource(paths, loader=loader),
    ])
