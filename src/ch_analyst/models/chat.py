"""Pydantic models for the chat transcript and function-calling protocol."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class FunctionCall(BaseModel):
    """A model's request to invoke a named function."""

    name: str
    arguments: str = "{}"  # raw JSON text as sent by the model


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: str

    def to_api(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str

    def to_api(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str | None = None
    function_call: FunctionCall | None = None

    def to_api(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.function_call is not None:
            message["function_call"] = self.function_call.model_dump()
        return message


class FunctionResultMessage(BaseModel):
    role: Literal["function"] = "function"
    name: str
    content: str  # JSON-serialised return value

    def to_api(self) -> dict[str, Any]:
        return {"role": self.role, "name": self.name, "content": self.content}


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, FunctionResultMessage],
    Field(discriminator="role"),
]


class FunctionCallSpec(BaseModel):
    """Name, description and JSON-schema parameters of a callable function."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any]

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def to_api(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }
