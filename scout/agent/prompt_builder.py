from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from scout.tools.adapter import ToolSet

logger = structlog.get_logger()

DEFAULT_IDENTITY = "You are an expert real estate wholesaling AI assistant."

_CREATIVE_PRINCIPLE = """## Core Principle: Creative Problem Solving
You are a creative problem-solving partner, not a documentation lookup system. \
The tools available to you are building blocks that enable you to:

- **Combine tools in novel ways** not explicitly documented
- **Adapt workflows** to each user's specific situation
- **Create custom solutions** when standard approaches don't fit
- **Prioritize user needs** over matching documented patterns

If a user needs something, find a way to help them using available capabilities."""


class PromptBuilder:
    """Assembles the system prompt from layers.

    Layers:
    1. Base identity (caller-supplied prompt, else configured identity)
    2. Creative problem-solving principle
    3. Tooling (count and categories of the tools exposed this turn)
    4. Date/Time
    """

    def __init__(self, base_prompt: str | None = None) -> None:
        self._base_prompt = base_prompt or DEFAULT_IDENTITY

    def build(self, toolset: ToolSet | None = None, *, system_prompt: str | None = None) -> str:
        layers = [
            self._layer_identity(system_prompt),
            _CREATIVE_PRINCIPLE,
            self._layer_tooling(toolset),
            self._layer_datetime(),
        ]
        return "\n\n".join(layer for layer in layers if layer)

    def _layer_identity(self, system_prompt: str | None) -> str:
        return system_prompt or self._base_prompt

    def _layer_tooling(self, toolset: ToolSet | None) -> str:
        if not toolset:
            return ""
        count = len(toolset)
        categories = ", ".join(sorted(c.replace("_", " ") for c in toolset.categories()))
        logger.debug("tooling_layer_injected", tool_count=count)
        return (
            f"## Available Tools ({count} Capabilities)\n"
            f"You have access to {count} tools for real estate operations.\n\n"
            f"Tool categories include: {categories}.\n\n"
            "When helping users:\n"
            "1. Understand what they're actually trying to accomplish\n"
            "2. Consider ALL tools that might contribute (not just obvious matches)\n"
            "3. Call independent tools together in one step when you can\n"
            "4. Report tool errors plainly instead of guessing results"
        )

    def _layer_datetime(self) -> str:
        now = datetime.now(UTC)
        return f"Current date and time (UTC): {now.strftime('%Y-%m-%d %H:%M:%S')}"
