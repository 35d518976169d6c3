"""Companies House REST API wrapper with async support."""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from typing import Any
from urllib.parse import quote, urlparse

import httpx

from ch_analyst.config import REGISTRY_API_KEY_ENV, RegistryConfig
from ch_analyst.errors import ConfigurationError, DocumentUnavailable, RegistryRequestFailure
from ch_analyst.models.registry import CompanySnapshot

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.company-information.service.gov.uk"
DEFAULT_DOCUMENT_BASE_URL = "https://document-api.company-information.service.gov.uk"


def basic_auth_header(api_key: str) -> str:
    """API key as the username, empty password."""
    token = base64.b64encode(f"{api_key}:".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def document_id_from_link(link: str) -> str | None:
    """Pull the document id out of a ``/document/{id}[/content]`` link."""
    parts = [p for p in urlparse(link).path.split("/") if p]
    if "document" not in parts:
        return None
    idx = parts.index("document")
    if idx + 1 >= len(parts):
        return None
    return parts[idx + 1]


def document_id_from_metadata(metadata: dict[str, Any]) -> str | None:
    links = metadata.get("links") or {}
    for key in ("self", "document"):
        link = links.get(key)
        if link:
            doc_id = document_id_from_link(link)
            if doc_id:
                return doc_id
    return None


class RegistryClient:
    """Async Companies House client using HTTP Basic auth."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        document_base_url: str = DEFAULT_DOCUMENT_BASE_URL,
        items_per_page: int = 100,
        search_limit: int = 5,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        key = api_key or os.environ.get(REGISTRY_API_KEY_ENV)
        if not key:
            raise ConfigurationError(
                f"Companies House API key required. Set {REGISTRY_API_KEY_ENV} env var or pass api_key."
            )
        self.base_url = base_url.rstrip("/")
        self.document_base_url = document_base_url.rstrip("/")
        self.items_per_page = items_per_page
        self.search_limit = search_limit
        self._headers = {"Authorization": basic_auth_header(key)}
        self.client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._request_count: int = 0

    @classmethod
    def from_config(cls, config: RegistryConfig, api_key: str | None = None) -> RegistryClient:
        return cls(
            api_key,
            base_url=config.base_url,
            document_base_url=config.document_base_url,
            items_per_page=config.items_per_page,
            search_limit=config.search_limit,
            timeout=config.timeout,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- low level -------------------------------------------------------

    async def _get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if accept:
            headers["Accept"] = accept
        logger.debug("Registry GET %s params=%s", url, params)
        self._request_count += 1
        try:
            response = await self.client.get(
                url, params=params, headers=headers, follow_redirects=True
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("Registry request failed: %s returned HTTP %d", url, status)
            raise RegistryRequestFailure(
                f"Registry request to {url} returned HTTP {status}",
                url=url,
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Registry request failed: %s (%s)", url, exc.__class__.__name__, exc_info=True)
            raise RegistryRequestFailure(
                f"Registry request to {url} failed: {exc.__class__.__name__}",
                url=url,
            ) from exc
        return response

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict:
        response = await self._get(url, params=params)
        try:
            data = response.json()
        except ValueError as exc:
            raise RegistryRequestFailure(
                f"Registry response from {url} is not valid JSON",
                url=url,
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise RegistryRequestFailure(
                f"Registry response from {url} is not a JSON object",
                url=url,
                status_code=response.status_code,
            )
        return data

    def _company_url(self, company_number: str, suffix: str = "") -> str:
        return f"{self.base_url}/company/{quote(company_number.strip(), safe='')}{suffix}"

    async def _get_items(self, company_number: str, suffix: str) -> list[dict]:
        data = await self._get_json(
            self._company_url(company_number, suffix),
            params={"items_per_page": self.items_per_page},
        )
        return data.get("items") or []

    # -- queries ---------------------------------------------------------

    async def search(self, query: str) -> list[dict]:
        """Search companies by name/number; returns at most ``search_limit`` items."""
        if not query or not query.strip():
            return []
        logger.info("Searching registry: %s", query)
        data = await self._get_json(f"{self.base_url}/search/companies", params={"q": query})
        return list(data.get("items") or [])[: self.search_limit]

    async def get_company_profile(self, company_number: str) -> dict:
        return await self._get_json(self._company_url(company_number))

    async def get_officers(self, company_number: str) -> list[dict]:
        return await self._get_items(company_number, "/officers")

    async def get_psc(self, company_number: str) -> list[dict]:
        return await self._get_items(company_number, "/persons-with-significant-control")

    async def get_filing_history(self, company_number: str) -> list[dict]:
        return await self._get_items(company_number, "/filing-history")

    async def get_company_bundle(self, company_number: str) -> CompanySnapshot:
        """Fetch profile, officers, PSC and filing history concurrently.

        All four must succeed; the first failure propagates and no partial
        snapshot is returned.
        """
        logger.info("Fetching company bundle: %s", company_number)
        profile, officers, psc_list, filing_history = await asyncio.gather(
            self.get_company_profile(company_number),
            self.get_officers(company_number),
            self.get_psc(company_number),
            self.get_filing_history(company_number),
        )
        return CompanySnapshot(
            company_number=company_number,
            profile=profile,
            officers=officers,
            psc_list=psc_list,
            filing_history=filing_history,
        )

    # -- documents -------------------------------------------------------

    async def fetch_document_metadata(self, metadata_url: str) -> dict:
        """Fetch document metadata from an absolute or document-API-relative link."""
        if not metadata_url.startswith(("http://", "https://")):
            metadata_url = f"{self.document_base_url}/{metadata_url.lstrip('/')}"
        return await self._get_json(metadata_url)

    async def get_document_metadata(self, company_number: str, transaction_id: str) -> dict:
        """Resolve a filing's document metadata (carries the content link)."""
        filing = await self._get_json(
            self._company_url(company_number, f"/filing-history/{quote(transaction_id.strip(), safe='')}")
        )
        link = (filing.get("links") or {}).get("document_metadata")
        if not link:
            raise DocumentUnavailable(
                f"Filing {transaction_id} of {company_number} has no document metadata"
            )
        return await self.fetch_document_metadata(link)

    async def get_document_content(self, document_id: str) -> bytes:
        """Download a filing document's raw PDF bytes."""
        url = f"{self.document_base_url}/document/{quote(document_id.strip(), safe='')}/content"
        response = await self._get(url, accept="application/pdf")
        return response.content

    def get_request_count(self) -> int:
        """Return accumulated request count and reset the counter."""
        count = self._request_count
        self._request_count = 0
        return count
