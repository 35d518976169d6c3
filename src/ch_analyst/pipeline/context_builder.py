"""Build the analysis context (system prompt) for a company session."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence

from ch_analyst.clients.registry_client import RegistryClient, document_id_from_metadata
from ch_analyst.errors import DocumentUnavailable, RegistryRequestFailure
from ch_analyst.models.registry import CompanySnapshot, FilingDocument
from ch_analyst.parsers.document_parser import extract_pdf_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an analyst of UK companies registered at Companies House. You are given
the registry record of one company: its profile, officers, persons with
significant control (PSC) and filing history, and sometimes the text of recent
filing documents.

Answer the user's questions using this data. When you need information that is
not in the record (another company, a specific filing document, more detail),
call one of the available functions instead of guessing. Cite dates and filing
descriptions where relevant and say plainly when the data does not answer the
question."""


def _dump(data: object) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def build_system_prompt(
    snapshot: CompanySnapshot,
    documents: Sequence[FilingDocument] = (),
) -> str:
    """Render the snapshot (and any document texts) into a system prompt."""
    parts = [
        SYSTEM_PROMPT,
        f"\n# Company {snapshot.company_number}: {snapshot.company_name}",
        f"\n## Profile\n{_dump(snapshot.profile)}",
        f"\n## Officers ({len(snapshot.officers)})\n{_dump(snapshot.officers)}",
        f"\n## Persons with significant control ({len(snapshot.psc_list)})\n{_dump(snapshot.psc_list)}",
        f"\n## Filing history ({len(snapshot.filing_history)})\n{_dump(snapshot.filing_history)}",
    ]
    if documents:
        parts.append("\n## Filing documents")
        for doc in documents:
            header = " ".join(p for p in (doc.date, doc.description) if p)
            parts.append(f"\n### {header} [{doc.transaction_id}]\n{doc.text}")
    return "\n".join(parts)


async def _fetch_document(
    registry: RegistryClient,
    filing: dict,
    max_chars: int | None,
) -> FilingDocument | None:
    transaction_id = filing.get("transaction_id", "")
    try:
        metadata = await registry.fetch_document_metadata(filing["links"]["document_metadata"])
        document_id = document_id_from_metadata(metadata)
        if not document_id:
            raise DocumentUnavailable("Document metadata has no content link")
        content = await registry.get_document_content(document_id)
        text = extract_pdf_text(content, max_chars=max_chars)
    except (DocumentUnavailable, RegistryRequestFailure) as exc:
        logger.warning("Skipping document for filing %s: %s", transaction_id, exc)
        return None
    return FilingDocument(
        transaction_id=transaction_id,
        description=filing.get("description", ""),
        date=filing.get("date"),
        text=text,
    )


async def collect_filing_documents(
    registry: RegistryClient,
    snapshot: CompanySnapshot,
    *,
    limit: int = 5,
    max_chars: int | None = 20000,
) -> list[FilingDocument]:
    """Fetch and extract the newest ``limit`` filings that have a document.

    A filing whose document cannot be fetched or read is skipped; the
    others are still returned, in filing-history order.
    """
    candidates = [
        f for f in snapshot.filing_history
        if (f.get("links") or {}).get("document_metadata")
    ][:limit]
    if not candidates:
        return []
    results = await asyncio.gather(
        *(_fetch_document(registry, f, max_chars) for f in candidates)
    )
    documents = [d for d in results if d is not None]
    logger.info(
        "Collected %d of %d filing documents for %s",
        len(documents), len(candidates), snapshot.company_number,
    )
    return documents
