"""FastAPI routes serving HTML fragments for search, company and analysis."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse

from ch_analyst.config import load_config, load_credentials
from ch_analyst.errors import AnalystError
from ch_analyst.pipeline.analyst_service import AnalystService
from ch_analyst.web.renderer import render

logger = logging.getLogger(__name__)

ERROR_LOADING_COMPANY = "<div>Error loading company info</div>"
ERROR_PERFORMING_ANALYSIS = "<div>Error performing analysis</div>"


def get_service(request: Request) -> AnalystService:
    return request.app.state.service


def create_app(service: AnalystService | None = None) -> FastAPI:
    """Build the app. Without a service one is created from config at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.service is None
        if owned:
            app.state.service = AnalystService.from_config(load_config(), load_credentials())
        yield
        if owned:
            await app.state.service.aclose()

    app = FastAPI(title="Companies House Analyst", lifespan=lifespan)
    app.state.service = service

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        return render("index.html")

    @app.get("/search", response_class=HTMLResponse)
    async def search(q: str = "", svc: AnalystService = Depends(get_service)) -> str:
        if not q.strip():
            return ""
        results = await svc.search(q)
        if not results:
            return ""
        return render("partials/results.html", results=results)

    @app.get("/company/{company_number}", response_class=HTMLResponse)
    async def company(company_number: str, svc: AnalystService = Depends(get_service)) -> str:
        try:
            snapshot = await svc.open_session(company_number)
        except AnalystError:
            logger.error("Loading company %s failed", company_number, exc_info=True)
            return ERROR_LOADING_COMPANY
        return render(
            "partials/company.html",
            company=snapshot.profile,
            company_number=snapshot.company_number,
            officers=snapshot.officers,
            shareholders=snapshot.psc_list,
            filing_history=snapshot.filing_history,
        )

    @app.post("/company/{company_number}/analyze", response_class=HTMLResponse)
    async def analyze(
        company_number: str,
        prompt: str = Form(""),
        svc: AnalystService = Depends(get_service),
    ) -> str:
        result = await svc.analyze(company_number, prompt)
        if not result.ok:
            return ERROR_PERFORMING_ANALYSIS
        return render("partials/analysis.html", prompt=prompt, answer=result.answer)

    @app.get("/health")
    async def health(svc: AnalystService = Depends(get_service)) -> dict:
        return {"status": "healthy", "sessions": len(svc.sessions)}

    return app
