"""Serialize normalized messages into the summarization request payload."""

from __future__ import annotations

import json
import logging

from chat_digest.models import NormalizedMessageItem
from chat_digest.pipeline.prompts import (
    DEFAULT_SUMMARY_PROMPT,
    CustomizationTemplate,
    build_summary_prompt,
)

logger = logging.getLogger(__name__)


class RequestBuilder:
    """Builds ``<prompt>\\n\\n<{"messageList": [...]}>`` payloads.

    Args:
        prompt: Full instruction prompt; overrides language and template.
        language: Language the summary should be written in.
        template: Optional customization section appended to the prompt.
    """

    def __init__(
        self,
        prompt: str | None = None,
        language: str = "English",
        template: CustomizationTemplate | None = None,
    ):
        if prompt is not None:
            self.prompt = prompt
        elif template is not None or language != "English":
            self.prompt = build_summary_prompt(
                language=language,
                custom_prompt=template.prompt if template else "",
            )
        else:
            self.prompt = DEFAULT_SUMMARY_PROMPT

    def build(self, items: list[NormalizedMessageItem]) -> str:
        try:
            body = serialize_items(items)
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Failed to serialize {len(items)} message items: {e}")
            return self.prompt
        return f"{self.prompt}\n\n{body}"


def serialize_items(items: list[NormalizedMessageItem]) -> str:
    return json.dumps(
        {"messageList": [item.to_dict() for item in items]},
        ensure_ascii=False,
    )
