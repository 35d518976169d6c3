"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from ch_analyst.clients.chat_client import ChatClient, ChatCompletion
from ch_analyst.clients.registry_client import RegistryClient
from ch_analyst.models.chat import FunctionCall
from ch_analyst.models.registry import CompanySnapshot

DOCUMENT_BASE_URL = "https://document-api.company-information.service.gov.uk"


@pytest.fixture
def sample_profile() -> dict:
    return {
        "company_name": "ACME WIDGETS LIMITED",
        "company_number": "01234567",
        "company_status": "active",
        "type": "ltd",
        "date_of_creation": "2001-04-12",
        "registered_office_address": {
            "address_line_1": "1 High Street",
            "locality": "London",
            "postal_code": "EC1A 1AA",
        },
        "sic_codes": ["25990"],
    }


@pytest.fixture
def sample_officers() -> list[dict]:
    return [
        {"name": "SMITH, Jane", "officer_role": "director", "appointed_on": "2001-04-12"},
        {
            "name": "JONES, Peter",
            "officer_role": "secretary",
            "appointed_on": "2005-09-01",
            "resigned_on": "2019-03-31",
        },
    ]


@pytest.fixture
def sample_psc() -> list[dict]:
    return [
        {
            "name": "Mrs Jane Smith",
            "natures_of_control": ["ownership-of-shares-75-to-100-percent"],
            "notified_on": "2016-04-06",
        },
    ]


@pytest.fixture
def sample_filings() -> list[dict]:
    return [
        {
            "transaction_id": "MzAwMDAwMDAwMWFkaXF6a2N4",
            "type": "AA",
            "date": "2024-09-30",
            "description": "accounts-with-accounts-type-micro-entity",
            "links": {
                "self": "/company/01234567/filing-history/MzAwMDAwMDAwMWFkaXF6a2N4",
                "document_metadata": f"{DOCUMENT_BASE_URL}/document/doc-aa-2024",
            },
        },
        {
            "transaction_id": "MzAwMDAwMDAwMmNzMDFhYmNk",
            "type": "CS01",
            "date": "2024-04-20",
            "description": "confirmation-statement-with-no-updates",
            "links": {
                "self": "/company/01234567/filing-history/MzAwMDAwMDAwMmNzMDFhYmNk",
                "document_metadata": f"{DOCUMENT_BASE_URL}/document/doc-cs01-2024",
            },
        },
        {
            "transaction_id": "MzAwMDAwMDAwM25vZG9j",
            "type": "AD01",
            "date": "2023-01-05",
            "description": "change-registered-office-address-company-with-date-old-address-new-address",
            "links": {"self": "/company/01234567/filing-history/MzAwMDAwMDAwM25vZG9j"},
        },
    ]


@pytest.fixture
def sample_snapshot(sample_profile, sample_officers, sample_psc, sample_filings) -> CompanySnapshot:
    return CompanySnapshot(
        company_number="01234567",
        profile=sample_profile,
        officers=sample_officers,
        psc_list=sample_psc,
        filing_history=sample_filings,
    )


@pytest.fixture
def make_pdf() -> Callable[[str], bytes]:
    """Build a one-page PDF containing ``text``."""

    def _make(text: str) -> bytes:
        import fitz

        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), text)
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def make_registry() -> Callable[..., RegistryClient]:
    """Build a RegistryClient whose HTTP traffic goes to ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> RegistryClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RegistryClient(api_key="test-key", http_client=http, **kwargs)

    return _make


def answer(text: str) -> ChatCompletion:
    """A scripted final-answer model reply."""
    return ChatCompletion(content=text, function_call=None, input_tokens=100, output_tokens=20)


def function_call(name: str, arguments: str = "{}") -> ChatCompletion:
    """A scripted function-call model reply."""
    return ChatCompletion(
        content=None,
        function_call=FunctionCall(name=name, arguments=arguments),
        input_tokens=100,
        output_tokens=10,
    )


@pytest.fixture
def mock_registry_client(sample_profile, sample_officers, sample_psc, sample_filings) -> RegistryClient:
    """Create a mock registry client returning the sample company."""
    client = AsyncMock(spec=RegistryClient)
    client.search = AsyncMock(
        return_value=[{"title": "ACME WIDGETS LIMITED", "company_number": "01234567"}]
    )
    client.get_company_profile = AsyncMock(return_value=sample_profile)
    client.get_officers = AsyncMock(return_value=sample_officers)
    client.get_psc = AsyncMock(return_value=sample_psc)
    client.get_filing_history = AsyncMock(return_value=sample_filings)
    client.get_company_bundle = AsyncMock(
        return_value=CompanySnapshot(
            company_number="01234567",
            profile=sample_profile,
            officers=sample_officers,
            psc_list=sample_psc,
            filing_history=sample_filings,
        )
    )
    return client


@pytest.fixture
def mock_chat_client() -> ChatClient:
    """Create a mock chat client that answers immediately."""
    client = AsyncMock(spec=ChatClient)
    client.complete = AsyncMock(return_value=answer("Final answer"))
    return client


@pytest.fixture
def make_answer() -> Callable[[str], ChatCompletion]:
    return answer


@pytest.fixture
def make_function_call() -> Callable[..., ChatCompletion]:
    return function_call
