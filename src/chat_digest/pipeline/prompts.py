"""Instruction prompts sent ahead of the message list."""

from __future__ import annotations

from dataclasses import dataclass

_HEADER = """You are a professional chat-log analyst. Summarize the chat messages below and \
fill each kind of result into the matching JSON template.
Summary rules:
# Format requirements
    ## Remove all line breaks so every JSON structure is compact
    ## Wrap code blocks in Markdown code fences
    ## Every JSON block must be enclosed in <!-- json-start --> and <!-- json-end --> markers
    ## Follow the JSON specification strictly; every JSON block must parse
    ## Example:
        ```json
            <!-- json-start: {template type} -->
                 {JSON data}
            <!-- json-end -->
        ```
# Result categories
{categories}
# Input fields
    ## chatId: unique identifier of the room
    ## chatTitle: title of the room
    ## chatType: private, group, supergroup, channel or unknown
    ## senderName: display name of the sender
    ## messageId: unique identifier of the message
    ## content: message text; media appears as bracketed placeholders such as [image]
# Templates
"""

_CUSTOMIZATION_CATEGORY = "    ## customization-topic: summary for the custom topic\n"

_CATEGORIES = """    ## main-topic: the main topics under discussion
    ## pending-matters: items that still need action
    ## garbage-message: useless or spam messages
"""

_TOPIC_TEMPLATE = """        [
            {
                "title": "%(title)s",
                "summaryChatIds": ["roomId1", "roomId2", ...],
                "summaryItems": [
                    {
                        "subtitle": "%(subtitle)s",
                        "relevantMessages": [
                            {
                                "chatId": "roomId",
                                "messageIds": [messageId1, messageId2, ...]
                            }
                        ]
                    }
                ]
            }
        ]
"""

_TEMPLATES = """    ## main-topic
%(main_topic)s    ## pending-matters
        [
            {
                "chatId": "roomId",
                "chatTitle": "room name",
                "summary": "what needs to be done",
                "relevantMessageIds": [messageId1, messageId2, ...]
            }
        ]
    ## garbage-message
        [
            {
                "chatId": "roomId",
                "chatTitle": "room name",
                "summary": "summary of the spam",
                "level": "high/low",
                "relevantMessageIds": [messageId1, messageId2, ...]
            }
        ]
""" % {"main_topic": _TOPIC_TEMPLATE % {"title": "main topic", "subtitle": "sub-topic or discussion point"}}

_RULES = """# main-topic criteria
    ## The result is a JSON array
    ## Each main topic states the core of the discussion in one or two sentences, plus any decision or conclusion
    ## title names the topic
    ## summaryChatIds lists every room related to the topic
    ## summaryItems lists the sub-topics or discussion points as an array
    ## Check that the JSON is complete and well formed
# pending-matters criteria
    ## Extract tasks that need doing; say in one sentence who needs to do what
    ## Look for phrases such as "to be confirmed", "needs follow-up", "unresolved"
    ## Recognize requests and assignments from intent, not only keywords
    ## Merge duplicates of the same task
# garbage-message criteria
    ## Only consider messages with chatType=private
    ## A message with a link AND wallet, investment-return, token-launch or pump talk is level high
    ## A message with a link OR such talk is level low
# Preferences
    ## Drop meaningless messages
    ## Extract key information (tasks, questions, requests) and summarize briefly
    ## Keep the summary short enough to be complete
    ## At most 5 main topics and 15 sub-topics in total
# Language
    ## Write the summary in {language}
"""


@dataclass(frozen=True)
class CustomizationTemplate:
    """A user-selectable extra summary section."""

    id: str
    title: str
    prompt: str


COINS_PROMPT = """    ## Instructions
        1. Sort by total mentions, descending; show only the top 3 cryptocurrencies (fewer if fewer exist)
        2. For each currency include:
            - the normalized ticker (e.g. $BTC / $ETH)
            - the total number of mentions
            - the related discussion themes
            - key message summaries with message ids
        3. Summarize the messages that mention the currency, keeping the core views
"""

ACTIVE_USERS_PROMPT = """    ## Instructions
        - Find the 3 people who sent the most messages (fewer if fewer exist)
        - Sort by message count
        - title is the senderName followed by the message count
        - subtitle summarizes what they said
"""

KEY_BUSINESS_PROMPT = """    ## Goal: extract business and product updates, focusing on
        - major project wins or milestones reached
        - product launches
        - product updates: feature improvements, version upgrades and similar
    ## Extraction
        - Keep the core business or product content and drop unrelated detail
        - Include key facts such as project name, product name, what changed and when
"""

CHAIN_TRENDING_PROMPT = """    ## Goal: extract trending on-chain topics
        - Focus on blockchain technology, crypto market moves, DApp innovation and major on-chain events
    ## Extraction
        - Describe each trending topic clearly and briefly
        - Sort by discussion frequency and keep the top 3 (fewer if fewer exist)
"""

CUSTOMIZATION_TEMPLATES: list[CustomizationTemplate] = [
    CustomizationTemplate(
        id="5b8f8976-e07e-4372-b34d-e3e6d8bbaf88",
        title="Most Discussed Coins",
        prompt=COINS_PROMPT,
    ),
    CustomizationTemplate(
        id="9552310a-d8ff-43ac-8f61-6233fe1a3bca",
        title="Most Active Users",
        prompt=ACTIVE_USERS_PROMPT,
    ),
    CustomizationTemplate(
        id="b0f0e9a8-c5d4-4e0f-b9c6-f8a8d8b9a8c8",
        title="Key business updates",
        prompt=KEY_BUSINESS_PROMPT,
    ),
    CustomizationTemplate(
        id="fa303579-1c78-4be6-8792-bdf539482608",
        title="On-Chain Trending Topics",
        prompt=CHAIN_TRENDING_PROMPT,
    ),
]


def find_template(template_id: str) -> CustomizationTemplate | None:
    return next((t for t in CUSTOMIZATION_TEMPLATES if t.id == template_id), None)


def build_summary_prompt(language: str = "English", custom_prompt: str = "") -> str:
    """Assemble the instruction prompt, optionally with a customization-topic section."""
    categories = _CATEGORIES
    templates = _TEMPLATES
    rules = _RULES.replace("{language}", language)
    if custom_prompt:
        categories = _CUSTOMIZATION_CATEGORY + categories
        templates = (
            "    ## customization-topic\n"
            + _TOPIC_TEMPLATE % {"title": "heading", "subtitle": "sub-heading or discussion point"}
            + templates
        )
        rules = "# customization-topic criteria\n" + custom_prompt + rules
    header = _HEADER.replace("{categories}", categories.rstrip("\n"))
    return (header + templates + rules).rstrip("\n")


DEFAULT_SUMMARY_PROMPT = build_summary_prompt()
