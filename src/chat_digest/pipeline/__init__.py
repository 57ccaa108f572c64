"""Selection, collection and request construction stages."""

from chat_digest.pipeline.collector import MessageCollector, render_content
from chat_digest.pipeline.prompts import (
    CUSTOMIZATION_TEMPLATES,
    DEFAULT_SUMMARY_PROMPT,
    CustomizationTemplate,
    build_summary_prompt,
    find_template,
)
from chat_digest.pipeline.request import RequestBuilder
from chat_digest.pipeline.selector import ConversationSelector

__all__ = [
    "ConversationSelector",
    "MessageCollector",
    "RequestBuilder",
    "render_content",
    "CUSTOMIZATION_TEMPLATES",
    "DEFAULT_SUMMARY_PROMPT",
    "CustomizationTemplate",
    "build_summary_prompt",
    "find_template",
]
