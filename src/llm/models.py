# src/llm/models.py — v2
"""LLM-specific types: ModelInvocation and provider outcomes.

A Responses-API payload is classified exactly once, by
`decode_provider_payload`, into one of three outcomes:

  - Completed(text): status "completed" (or absent)
  - Incomplete(reason, text): any other status, with the provider's reason
  - Refused(message): the model refused; the refusal text is kept
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

TOKEN_TRUNCATION_REASON = "max_output_tokens"


class Message(BaseModel):
    """Single input message of a Responses-API request."""

    role: Literal["system", "user"]
    content: str

    def to_input(self) -> dict[str, Any]:
        return {"role": self.role, "content": [{"type": "input_text", "text": self.content}]}


class ModelInvocation(BaseModel):
    """One upstream call: model, prompts, budget and optional JSON schema."""

    model: str
    system_prompt: str
    user_prompt: str
    max_output_tokens: int
    schema_name: str = "easyread_output"
    output_schema: dict[str, Any] | None = None
    use_schema: bool = True
    purpose: str = "explain"
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def schema_enabled(self) -> bool:
        return self.use_schema and self.output_schema is not None

    def to_payload(self) -> dict[str, Any]:
        """Build the Responses-API request body."""
        payload: dict[str, Any] = {
            "model": self.model,
            "store": False,
            "max_output_tokens": self.max_output_tokens,
            "input": [
                Message(role="system", content=self.system_prompt).to_input(),
                Message(role="user", content=self.user_prompt).to_input(),
            ],
        }
        if self.schema_enabled:
            payload["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": self.schema_name,
                    "schema": self.output_schema,
                    "strict": True,
                }
            }
        return payload

    def without_schema(self) -> ModelInvocation:
        return self.model_copy(update={"use_schema": False})


@dataclass(frozen=True)
class Completed:
    text: str


@dataclass(frozen=True)
class Incomplete:
    reason: str
    text: str = ""


@dataclass(frozen=True)
class Refused:
    message: str


ProviderOutcome = Union[Completed, Incomplete, Refused]


def outcome_text(outcome: ProviderOutcome) -> str:
    """Usable text carried by an outcome (empty for refusals)."""
    if isinstance(outcome, Refused):
        return ""
    return outcome.text


def outcome_kind(outcome: ProviderOutcome) -> str:
    return type(outcome).__name__.lower()


def is_token_truncation(outcome: ProviderOutcome) -> bool:
    return isinstance(outcome, Incomplete) and outcome.reason == TOKEN_TRUNCATION_REASON


def extract_output_text(payload: dict[str, Any]) -> str:
    """`output_text` if present, else all `output[].content[].text` joined."""
    output_text = payload.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    parts: list[str] = []
    for item in _as_list(payload.get("output")):
        for content in _as_list(item.get("content") if isinstance(item, dict) else None):
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                parts.append(content["text"])
    return "\n".join(parts).strip()


def extract_refusal(payload: dict[str, Any]) -> str:
    for item in _as_list(payload.get("output")):
        for content in _as_list(item.get("content") if isinstance(item, dict) else None):
            refusal = content.get("refusal") if isinstance(content, dict) else None
            if isinstance(refusal, str) and refusal.strip():
                return refusal.strip()
    return ""


def decode_provider_payload(payload: dict[str, Any]) -> ProviderOutcome:
    """Classify a Responses-API payload into a ProviderOutcome."""
    refusal = extract_refusal(payload)
    if refusal:
        return Refused(message=refusal)

    text = extract_output_text(payload)
    status = payload.get("status")
    if isinstance(status, str) and status and status != "completed":
        details = payload.get("incomplete_details")
        reason = details.get("reason") if isinstance(details, dict) else None
        return Incomplete(reason=reason if isinstance(reason, str) else status, text=text)
    return Completed(text=text)


def describe_no_output(outcome: ProviderOutcome) -> str:
    """Short diagnostic for an outcome that carried no text."""
    if isinstance(outcome, Refused):
        return f"Model refused this request: {outcome.message[:180]}"
    if isinstance(outcome, Incomplete):
        return f"Model returned no text (reason: {outcome.reason})."
    return "Model returned no text."


def _as_list(value: object) -> list[Any]:
    return value if isinstance(value, list) else []
