"""System prompt and request context for the pantry assistant."""

from __future__ import annotations

from typing import Any

from larder.tools.catalog import PantryCatalog


# ── Behavioral rules ────────────────────────────────────────────────────────

_TOOL_RULES = """
### Tool Use
- Use a tool whenever the user asks to add, change, remove or look up stock. Never invent pantry contents.
- Call getProducts or listByLocation before answering questions about what is in stock.
- Use getExpiringSoon for questions about what to eat first or what is about to go off.
- One tool call per product change. For several products, emit several calls in the order the user gave them.
- Arguments must match the tool schema: numbers as numbers, dates as YYYY-MM-DD.
- If a tool result reports an error, read it and either fix the arguments or ask the user. Do not repeat the identical call.
""".strip()

_STOCK_RULES = """
### Stock Rules
- Stock is tracked per location, in batches with an optional expiration date.
- Consuming stock takes from the batches that expire first unless the user names a date.
- Use only the known locations listed below; map the user's wording onto them.
- If the quantity or the location is missing and cannot be inferred, ask for it instead of guessing.
""".strip()

_ANSWER_RULES = """
### Answers
- Answer in the user's language, briefly, after the tools have run.
- Summarize what changed (product, quantity, location). Do not dump raw JSON.
""".strip()


def build_context(catalog: PantryCatalog) -> dict[str, Any]:
    """Structured context sent alongside every request."""
    return {
        "locations": list(catalog.locations),
        "synonyms": dict(catalog.location_synonyms),
    }


def build_system_prompt(catalog: PantryCatalog) -> str:
    prompt = """You are Larder, a pantry assistant. You keep track of the food a household has at home by calling the pantry tools, and you answer questions about it.

"""
    prompt += _TOOL_RULES + "\n\n" + _STOCK_RULES + "\n\n" + _ANSWER_RULES + "\n"

    prompt += "\n## Known Locations\n\n"
    prompt += "\n".join(f"- {location}" for location in catalog.locations) + "\n"

    if catalog.categories:
        prompt += "\n## Categories\n\n" + ", ".join(catalog.categories) + "\n"

    return prompt
