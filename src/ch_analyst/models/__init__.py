"""Data models for the Companies House analyst."""

from ch_analyst.models.analysis import AnalysisResult, OrchestrationState
from ch_analyst.models.chat import (
    AssistantMessage,
    ChatMessage,
    FunctionCall,
    FunctionCallSpec,
    FunctionResultMessage,
    SystemMessage,
    UserMessage,
)
from ch_analyst.models.registry import CompanySnapshot, FilingDocument

__all__ = [
    "AnalysisResult",
    "AssistantMessage",
    "ChatMessage",
    "CompanySnapshot",
    "FilingDocument",
    "FunctionCall",
    "FunctionCallSpec",
    "FunctionResultMessage",
    "OrchestrationState",
    "SystemMessage",
    "UserMessage",
]
