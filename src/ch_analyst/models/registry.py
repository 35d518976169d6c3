"""Pydantic models for Companies House registry data."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CompanySnapshot(BaseModel):
    """Profile, officers, PSC and filing history fetched in one bundle."""

    model_config = ConfigDict(frozen=True)

    company_number: str
    profile: dict[str, Any]
    officers: list[dict[str, Any]] = Field(default_factory=list)
    psc_list: list[dict[str, Any]] = Field(default_factory=list)
    filing_history: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def company_name(self) -> str:
        return self.profile.get("company_name", self.company_number)


class FilingDocument(BaseModel):
    """Extracted text of one filing, used as extra chat context."""

    transaction_id: str
    description: str = ""
    date: str | None = None
    text: str
