"""Chat message storage (append-only within a day)."""

from typing import Any

from .core import collection_path, read_json, write_json


def list_messages() -> list[dict[str, Any]]:
    """Load all messages in posting order. Returns [] if missing."""
    return read_json(collection_path("messages"), [])


def save_messages(messages: list[dict[str, Any]]) -> None:
    write_json(collection_path("messages"), messages)


def add_message(message: dict[str, Any]) -> dict[str, Any]:
    messages = [m for m in list_messages() if m["id"] != message["id"]]
    messages.append(message)
    save_messages(messages)
    return message


def update_message(message_id: str, message: dict[str, Any]) -> dict[str, Any] | None:
    """Replace a stored message. Returns None if not found."""
    messages = list_messages()
    for i, existing in enumerate(messages):
        if existing["id"] == message_id:
            messages[i] = {**message, "id": message_id}
            save_messages(messages)
            return messages[i]
    return None
