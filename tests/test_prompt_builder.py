"""Tests for PromptBuilder layering."""

from __future__ import annotations

from scout.agent.prompt_builder import DEFAULT_IDENTITY, PromptBuilder


class TestPromptBuilder:
    def test_default_identity(self) -> None:
        prompt = PromptBuilder().build()
        assert prompt.startswith(DEFAULT_IDENTITY)
        assert "Creative Problem Solving" in prompt
        assert "Current date and time (UTC)" in prompt

    def test_configured_base_prompt(self) -> None:
        prompt = PromptBuilder("You are Scout.").build()
        assert prompt.startswith("You are Scout.")

    def test_caller_prompt_replaces_identity(self) -> None:
        prompt = PromptBuilder("You are Scout.").build(system_prompt="Answer in one line.")
        assert prompt.startswith("Answer in one line.")
        assert "You are Scout." not in prompt

    def test_tooling_layer_counts_exposed_tools(self, adapter, context) -> None:
        toolset = adapter.build_toolset(context, ["deal_analysis", "map"])
        prompt = PromptBuilder().build(toolset)
        assert "## Available Tools (3 Capabilities)" in prompt
        assert "deal analysis, map" in prompt

    def test_empty_toolset_omits_tooling_layer(self, adapter, context) -> None:
        prompt = PromptBuilder().build(adapter.build_toolset(context, []))
        assert "Available Tools" not in prompt
