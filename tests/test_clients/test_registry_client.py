"""Tests for RegistryClient (Companies House API wrapper)."""

from __future__ import annotations

import httpx
import pytest
from pydantic import ValidationError

from ch_analyst.clients.registry_client import (
    RegistryClient,
    basic_auth_header,
    document_id_from_link,
    document_id_from_metadata,
)
from ch_analyst.errors import ConfigurationError, DocumentUnavailable, RegistryRequestFailure

BASE = "https://api.company-information.service.gov.uk"
DOCS = "https://document-api.company-information.service.gov.uk"


def _bundle_handler(profile, officers, psc, filings, fail_path: str | None = None):
    routes = {
        "/company/01234567": profile,
        "/company/01234567/officers": {"items": officers},
        "/company/01234567/persons-with-significant-control": {"items": psc},
        "/company/01234567/filing-history": {"items": filings},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == fail_path:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json=routes[request.url.path])

    return handler


class TestRegistryClientInit:
    def test_missing_api_key_raises_configuration_error(self, monkeypatch):
        monkeypatch.delenv("COMPANIES_HOUSE_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="Companies House API key required"):
            RegistryClient()

    def test_env_var_key_is_used(self, monkeypatch):
        monkeypatch.setenv("COMPANIES_HOUSE_API_KEY", "env-key")
        client = RegistryClient()
        assert client._headers["Authorization"] == basic_auth_header("env-key")

    def test_basic_auth_header_uses_empty_password(self):
        # base64("test-key:")
        assert basic_auth_header("test-key") == "Basic dGVzdC1rZXk6"


class TestRegistryClientSearch:
    async def test_search_sends_basic_auth_and_query(self, make_registry):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": []})

        client = make_registry(handler)
        await client.search("acme widgets")

        assert len(seen) == 1
        assert seen[0].url.path == "/search/companies"
        assert seen[0].url.params["q"] == "acme widgets"
        assert seen[0].headers["Authorization"] == "Basic dGVzdC1rZXk6"

    async def test_search_truncates_to_five_in_registry_order(self, make_registry):
        items = [{"title": f"COMPANY {i}", "company_number": f"{i:08d}"} for i in range(12)]
        client = make_registry(lambda request: httpx.Response(200, json={"items": items}))

        results = await client.search("company")

        assert [r["company_number"] for r in results] == [f"{i:08d}" for i in range(5)]

    async def test_search_fewer_than_limit_returns_all(self, make_registry):
        items = [{"title": "ONLY ONE", "company_number": "00000001"}]
        client = make_registry(lambda request: httpx.Response(200, json={"items": items}))
        assert await client.search("only") == items

    @pytest.mark.parametrize("query", ["", "   "])
    async def test_empty_query_makes_no_request(self, make_registry, query):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = make_registry(handler)
        assert await client.search(query) == []
        assert client.get_request_count() == 0

    async def test_search_http_error_raises(self, make_registry):
        client = make_registry(lambda request: httpx.Response(401, json={"error": "unauthorised"}))
        with pytest.raises(RegistryRequestFailure) as exc_info:
            await client.search("acme")
        assert exc_info.value.status_code == 401


class TestRegistryClientLists:
    async def test_list_endpoints_request_page_size_100(self, make_registry):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [{"name": "X"}]})

        client = make_registry(handler)
        await client.get_officers("01234567")
        await client.get_psc("01234567")
        await client.get_filing_history("01234567")

        assert [r.url.path for r in seen] == [
            "/company/01234567/officers",
            "/company/01234567/persons-with-significant-control",
            "/company/01234567/filing-history",
        ]
        assert all(r.url.params["items_per_page"] == "100" for r in seen)

    async def test_missing_items_yields_empty_list(self, make_registry):
        client = make_registry(lambda request: httpx.Response(200, json={"total_results": 0}))
        assert await client.get_officers("01234567") == []

    async def test_non_json_response_raises(self, make_registry):
        client = make_registry(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(RegistryRequestFailure, match="not valid JSON"):
            await client.get_company_profile("01234567")


class TestRegistryClientBundle:
    async def test_bundle_collects_all_four_parts(
        self, make_registry, sample_profile, sample_officers, sample_psc, sample_filings
    ):
        client = make_registry(
            _bundle_handler(sample_profile, sample_officers, sample_psc, sample_filings)
        )

        snapshot = await client.get_company_bundle("01234567")

        assert snapshot.company_number == "01234567"
        assert snapshot.profile == sample_profile
        assert snapshot.officers == sample_officers
        assert snapshot.psc_list == sample_psc
        assert snapshot.filing_history == sample_filings
        assert client.get_request_count() == 4

    @pytest.mark.parametrize(
        "fail_path",
        [
            "/company/01234567",
            "/company/01234567/officers",
            "/company/01234567/persons-with-significant-control",
            "/company/01234567/filing-history",
        ],
    )
    async def test_bundle_is_all_or_nothing(
        self, make_registry, sample_profile, sample_officers, sample_psc, sample_filings, fail_path
    ):
        client = make_registry(
            _bundle_handler(sample_profile, sample_officers, sample_psc, sample_filings, fail_path)
        )
        with pytest.raises(RegistryRequestFailure) as exc_info:
            await client.get_company_bundle("01234567")
        assert exc_info.value.status_code == 500

    async def test_repeated_bundles_are_identical(
        self, make_registry, sample_profile, sample_officers, sample_psc, sample_filings
    ):
        client = make_registry(
            _bundle_handler(sample_profile, sample_officers, sample_psc, sample_filings)
        )
        first = await client.get_company_bundle("01234567")
        second = await client.get_company_bundle("01234567")
        assert first == second
        assert first is not second

    async def test_snapshot_is_frozen(
        self, make_registry, sample_profile, sample_officers, sample_psc, sample_filings
    ):
        client = make_registry(
            _bundle_handler(sample_profile, sample_officers, sample_psc, sample_filings)
        )
        snapshot = await client.get_company_bundle("01234567")
        with pytest.raises(ValidationError):
            snapshot.company_number = "99999999"


class TestRegistryClientTransportErrors:
    async def test_connect_error_is_transport_failure(self, make_registry):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_registry(handler)
        with pytest.raises(RegistryRequestFailure) as exc_info:
            await client.get_company_profile("01234567")
        assert exc_info.value.status_code is None
        assert exc_info.value.is_transport_error

    async def test_timeout_is_transport_failure(self, make_registry):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_registry(handler)
        with pytest.raises(RegistryRequestFailure) as exc_info:
            await client.get_officers("01234567")
        assert exc_info.value.is_transport_error


class TestRegistryClientDocuments:
    async def test_get_document_metadata_follows_filing_link(self, make_registry):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.host == "api.company-information.service.gov.uk":
                return httpx.Response(
                    200,
                    json={
                        "transaction_id": "TX1",
                        "links": {"document_metadata": f"{DOCS}/document/abc123"},
                    },
                )
            return httpx.Response(
                200,
                json={"links": {"self": f"{DOCS}/document/abc123", "document": f"{DOCS}/document/abc123/content"}},
            )

        client = make_registry(handler)
        metadata = await client.get_document_metadata("01234567", "TX1")

        assert seen == [
            f"{BASE}/company/01234567/filing-history/TX1",
            f"{DOCS}/document/abc123",
        ]
        assert metadata["links"]["document"].endswith("/document/abc123/content")

    async def test_get_document_metadata_without_link_is_unavailable(self, make_registry):
        client = make_registry(
            lambda request: httpx.Response(200, json={"transaction_id": "TX1", "links": {}})
        )
        with pytest.raises(DocumentUnavailable):
            await client.get_document_metadata("01234567", "TX1")

    async def test_relative_metadata_link_uses_document_host(self, make_registry):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"links": {}})

        client = make_registry(handler)
        await client.fetch_document_metadata("/document/abc123")
        assert seen == [f"{DOCS}/document/abc123"]

    async def test_get_document_content_returns_bytes(self, make_registry):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"%PDF-1.4 fake")

        client = make_registry(handler)
        content = await client.get_document_content("abc123")

        assert content == b"%PDF-1.4 fake"
        assert seen[0].url.path == "/document/abc123/content"
        assert seen[0].headers["Accept"] == "application/pdf"

    async def test_get_document_content_follows_redirect_without_auth(self, make_registry):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.host == "document-api.company-information.service.gov.uk":
                return httpx.Response(302, headers={"Location": "https://s3.example.com/abc123.pdf"})
            return httpx.Response(200, content=b"%PDF-1.4 redirected")

        client = make_registry(handler)
        content = await client.get_document_content("abc123")

        assert content == b"%PDF-1.4 redirected"
        assert len(seen) == 2
        assert "Authorization" in seen[0].headers
        assert "Authorization" not in seen[1].headers


class TestDocumentIds:
    def test_id_from_content_link(self):
        assert document_id_from_link(f"{DOCS}/document/abc123/content") == "abc123"

    def test_id_from_relative_link(self):
        assert document_id_from_link("/document/xyz") == "xyz"

    def test_no_id_in_unrelated_link(self):
        assert document_id_from_link("/company/01234567") is None

    def test_id_from_metadata_prefers_self(self):
        metadata = {"links": {"self": f"{DOCS}/document/one", "document": f"{DOCS}/document/two/content"}}
        assert document_id_from_metadata(metadata) == "one"

    def test_id_from_metadata_without_links(self):
        assert document_id_from_metadata({}) is None


class TestRegistryClientRequestCount:
    async def test_request_count_resets(self, make_registry):
        client = make_registry(lambda request: httpx.Response(200, json={"items": []}))
        await client.search("a")
        await client.search("b")
        assert client.get_request_count() == 2
        assert client.get_request_count() == 0
