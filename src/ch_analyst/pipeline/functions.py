"""Registry functions exposed to the chat model.

The set of callable functions is closed: :class:`FunctionName` enumerates
it, ``FUNCTION_SPECS`` describes it to the model, and
:class:`FunctionDispatcher` maps every name to one registry call.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from ch_analyst.clients.registry_client import RegistryClient
from ch_analyst.errors import (
    DocumentUnavailable,
    MalformedFunctionArguments,
    RegistryRequestFailure,
    UnknownFunctionRequested,
)
from ch_analyst.models.chat import FunctionCall, FunctionCallSpec
from ch_analyst.parsers.document_parser import extract_pdf_text

logger = logging.getLogger(__name__)


class FunctionName(str, Enum):
    SEARCH_COMPANIES = "search_companies"
    GET_COMPANY_DETAILS = "get_company_details"
    GET_COMPANY_OFFICERS = "get_company_officers"
    GET_COMPANY_PSC = "get_company_psc"
    GET_FILING_HISTORY = "get_filing_history"
    GET_DOCUMENT_METADATA = "get_document_metadata"
    GET_DOCUMENT_CONTENTS = "get_document_contents"


def _params(**properties: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            name: {"type": "string", "description": desc} for name, desc in properties.items()
        },
        "required": list(properties),
    }


_COMPANY_NUMBER = "Companies House company number, e.g. 00445790"

FUNCTION_SPECS: tuple[FunctionCallSpec, ...] = (
    FunctionCallSpec(
        name=FunctionName.SEARCH_COMPANIES.value,
        description="Search the Companies House register by company name or number.",
        parameters=_params(query="Company name or number to search for"),
    ),
    FunctionCallSpec(
        name=FunctionName.GET_COMPANY_DETAILS.value,
        description="Get the registered profile of a company (status, address, SIC codes, accounts).",
        parameters=_params(company_number=_COMPANY_NUMBER),
    ),
    FunctionCallSpec(
        name=FunctionName.GET_COMPANY_OFFICERS.value,
        description="List the current and resigned officers (directors, secretaries) of a company.",
        parameters=_params(company_number=_COMPANY_NUMBER),
    ),
    FunctionCallSpec(
        name=FunctionName.GET_COMPANY_PSC.value,
        description="List the persons with significant control (beneficial owners) of a company.",
        parameters=_params(company_number=_COMPANY_NUMBER),
    ),
    FunctionCallSpec(
        name=FunctionName.GET_FILING_HISTORY.value,
        description="List a company's filing history with transaction ids, dates and descriptions.",
        parameters=_params(company_number=_COMPANY_NUMBER),
    ),
    FunctionCallSpec(
        name=FunctionName.GET_DOCUMENT_METADATA.value,
        description="Get the document metadata of one filing, including the link to its content.",
        parameters=_params(
            company_number=_COMPANY_NUMBER,
            transaction_id="Transaction id of the filing, taken from the filing history",
        ),
    ),
    FunctionCallSpec(
        name=FunctionName.GET_DOCUMENT_CONTENTS.value,
        description=(
            "Download a filing document. Returns the PDF base64-encoded and, "
            "where available, its extracted text."
        ),
        parameters=_params(document_id="Document id taken from the document metadata links"),
    ),
)

SPECS_BY_NAME: dict[str, FunctionCallSpec] = {spec.name: spec for spec in FUNCTION_SPECS}


def resolve_function(name: str) -> FunctionName:
    """Map a model-supplied name onto the closed function set."""
    try:
        return FunctionName(name)
    except ValueError:
        raise UnknownFunctionRequested(name) from None


def parse_arguments(call: FunctionCall) -> dict[str, Any]:
    """Parse the model's argument JSON; it must be an object."""
    raw = call.arguments or "{}"
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedFunctionArguments(call.name, raw, str(exc)) from exc
    if not isinstance(arguments, dict):
        raise MalformedFunctionArguments(
            call.name, raw, f"expected a JSON object, got {type(arguments).__name__}"
        )
    return arguments


def serialize_result(result: Any) -> str:
    return json.dumps(result, default=str, ensure_ascii=False)


Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class FunctionDispatcher:
    """Executes model-requested functions against the registry."""

    def __init__(self, registry: RegistryClient, *, max_document_chars: int | None = 20000):
        self.registry = registry
        self.max_document_chars = max_document_chars
        self._handlers: dict[FunctionName, Handler] = {
            FunctionName.SEARCH_COMPANIES: self._search_companies,
            FunctionName.GET_COMPANY_DETAILS: self._get_company_details,
            FunctionName.GET_COMPANY_OFFICERS: self._get_company_officers,
            FunctionName.GET_COMPANY_PSC: self._get_company_psc,
            FunctionName.GET_FILING_HISTORY: self._get_filing_history,
            FunctionName.GET_DOCUMENT_METADATA: self._get_document_metadata,
            FunctionName.GET_DOCUMENT_CONTENTS: self._get_document_contents,
        }
        missing = set(FunctionName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for functions: {sorted(m.value for m in missing)}")

    @property
    def specs(self) -> tuple[FunctionCallSpec, ...]:
        return FUNCTION_SPECS

    async def execute(self, name: FunctionName, arguments: dict[str, Any]) -> Any:
        """Run one function and return a JSON-serialisable result.

        Problems with the request itself (missing fields, an HTTP error
        response from the registry, an unavailable document) come back as
        ``{"error": ...}`` so the model can recover. Transport failures
        propagate.
        """
        spec = SPECS_BY_NAME[name.value]
        missing = [f for f in spec.required if arguments.get(f) in (None, "")]
        if missing:
            logger.warning("Function %s called without %s", name.value, ", ".join(missing))
            return {"error": f"Missing required argument(s): {', '.join(missing)}"}

        logger.info("Executing function %s(%s)", name.value, arguments)
        try:
            return await self._handlers[name](arguments)
        except RegistryRequestFailure as exc:
            if exc.is_transport_error:
                raise
            return {"error": str(exc), "status_code": exc.status_code}
        except DocumentUnavailable as exc:
            logger.warning("Document unavailable in %s: %s", name.value, exc)
            return {"error": str(exc)}

    async def _search_companies(self, args: dict[str, Any]) -> Any:
        return await self.registry.search(str(args["query"]))

    async def _get_company_details(self, args: dict[str, Any]) -> Any:
        return await self.registry.get_company_profile(str(args["company_number"]))

    async def _get_company_officers(self, args: dict[str, Any]) -> Any:
        return await self.registry.get_officers(str(args["company_number"]))

    async def _get_company_psc(self, args: dict[str, Any]) -> Any:
        return await self.registry.get_psc(str(args["company_number"]))

    async def _get_filing_history(self, args: dict[str, Any]) -> Any:
        return await self.registry.get_filing_history(str(args["company_number"]))

    async def _get_document_metadata(self, args: dict[str, Any]) -> Any:
        return await self.registry.get_document_metadata(
            str(args["company_number"]), str(args["transaction_id"])
        )

    async def _get_document_contents(self, args: dict[str, Any]) -> Any:
        document_id = str(args["document_id"])
        content = await self.registry.get_document_content(document_id)
        result: dict[str, Any] = {
            "document_id": document_id,
            "content_base64": base64.b64encode(content).decode("ascii"),
        }
        try:
            result["text"] = extract_pdf_text(content, max_chars=self.max_document_chars)
        except DocumentUnavailable as exc:
            logger.warning("No text extracted from document %s: %s", document_id, exc)
        return result
