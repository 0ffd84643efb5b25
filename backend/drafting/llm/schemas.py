"""JSON schemas for structured model output."""

from typing import Any

DRAFTING_SCHEMA_NAME = "ghostwriting_draft"

# Strict-mode compatible: every property required, optionals expressed as null
DRAFTING_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["markdown", "sections", "summary"],
    "properties": {
        "markdown": {"type": "string"},
        "summary": {"anyOf": [{"type": "string"}, {"type": "null"}]},
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["heading", "content", "status", "order"],
                "properties": {
                    "heading": {"type": "string"},
                    "content": {"type": "string"},
                    "status": {
                        "anyOf": [
                            {
                                "type": "string",
                                "enum": ["drafting", "needs_detail", "complete"],
                            },
                            {"type": "null"},
                        ]
                    },
                    "order": {"anyOf": [{"type": "number"}, {"type": "null"}]},
                },
            },
        },
    },
}
