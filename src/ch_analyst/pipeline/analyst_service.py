"""Entry points used by the web layer and the CLI."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ch_analyst.clients.chat_client import ChatClient
from ch_analyst.clients.registry_client import RegistryClient
from ch_analyst.config import AppConfig, Credentials
from ch_analyst.errors import AnalystError, RegistryRequestFailure
from ch_analyst.models.analysis import AnalysisResult, OrchestrationState
from ch_analyst.models.registry import CompanySnapshot
from ch_analyst.pipeline.context_builder import build_system_prompt, collect_filing_documents
from ch_analyst.pipeline.functions import FunctionDispatcher
from ch_analyst.pipeline.orchestrator import DEFAULT_MAX_ITERATIONS, FunctionCallingOrchestrator
from ch_analyst.sessions.session_store import SessionStore

logger = logging.getLogger(__name__)


class AnalystService:
    """Search, company bundles and model analysis over shared sessions."""

    def __init__(
        self,
        registry: RegistryClient,
        chat: ChatClient,
        sessions: SessionStore | None = None,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        include_documents: bool = True,
        max_documents: int = 5,
        max_document_chars: int = 20000,
    ):
        self.registry = registry
        self.chat = chat
        self.sessions = sessions if sessions is not None else SessionStore()
        self.include_documents = include_documents
        self.max_documents = max_documents
        self.max_document_chars = max_document_chars
        self.dispatcher = FunctionDispatcher(registry, max_document_chars=max_document_chars)
        self.orchestrator = FunctionCallingOrchestrator(
            chat,
            self.dispatcher,
            max_iterations=max_iterations,
            max_history_messages=self.sessions.max_history_messages,
        )

    @classmethod
    def from_config(cls, config: AppConfig, credentials: Credentials) -> AnalystService:
        return cls(
            RegistryClient.from_config(config.registry, credentials.registry_api_key),
            ChatClient.from_config(config.llm, credentials.model_api_key),
            SessionStore(
                max_sessions=config.sessions.max_sessions,
                max_history_messages=config.sessions.max_history_messages,
            ),
            max_iterations=config.analysis.max_iterations,
            include_documents=config.analysis.include_documents,
            max_documents=config.analysis.max_documents,
            max_document_chars=config.analysis.max_document_chars,
        )

    async def aclose(self) -> None:
        await self.registry.aclose()
        await self.chat.aclose()

    async def search(self, query: str) -> list[dict]:
        """Registry search; a failed search yields no results rather than an error."""
        try:
            return await self.registry.search(query)
        except RegistryRequestFailure:
            logger.error("Search failed for %r", query, exc_info=True)
            return []

    async def get_company_bundle(self, company_number: str) -> CompanySnapshot:
        return await self.registry.get_company_bundle(company_number)

    async def _build_context(self, company_number: str) -> tuple[CompanySnapshot, str]:
        snapshot = await self.registry.get_company_bundle(company_number)
        documents = []
        if self.include_documents and self.max_documents:
            documents = await collect_filing_documents(
                self.registry,
                snapshot,
                limit=self.max_documents,
                max_chars=self.max_document_chars,
            )
        return snapshot, build_system_prompt(snapshot, documents)

    async def open_session(self, company_number: str) -> CompanySnapshot:
        """Load a company and (re)seed its session with a fresh system prompt."""
        snapshot, system_prompt = await self._build_context(company_number)
        await self.sessions.seed(company_number, system_prompt)
        return snapshot

    async def analyze(
        self,
        company_number: str,
        prompt: str,
        *,
        on_step: Callable[[str, str], None] | None = None,
    ) -> AnalysisResult:
        """Run one analysis turn. Failures come back as a FAILED result."""
        if not prompt or not prompt.strip():
            return AnalysisResult(state=OrchestrationState.FAILED, error="Prompt is empty")
        try:
            async with self.sessions.session(company_number) as session:
                if session.system_prompt is None:
                    _, system_prompt = await self._build_context(company_number)
                    session.set_system_prompt(system_prompt)
                return await self.orchestrator.run(session, prompt.strip(), on_step=on_step)
        except AnalystError as exc:
            logger.error("Analysis failed for %s", company_number, exc_info=True)
            return AnalysisResult(
                state=OrchestrationState.FAILED,
                error=f"{exc.__class__.__name__}: {exc}",
            )
