"""Shared type aliases and typed dictionaries."""

from __future__ import annotations

from typing import TypeAlias, TypedDict

JSONValue: TypeAlias = (
    str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
)
JSONObject: TypeAlias = dict[str, JSONValue]


class SamplePayload(TypedDict):
    """Serialized sample inside the health summary document."""

    value: float
    timestamp: str


class DailyCaloriesPayload(TypedDict):
    """Serialized daily calorie estimate entry."""

    date: str
    calories: float


class ChatMessagePayload(TypedDict):
    """One message of the remote completion request envelope."""

    role: str
    content: str


class CompletionRequestPayload(TypedDict):
    """Remote completion request envelope."""

    messages: list[ChatMessagePayload]
    temperature: float
