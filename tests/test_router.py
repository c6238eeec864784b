"""Tests for TaskRouter: determinism, routing rules and degradation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from scout.agent.router import (
    KeywordClassifier,
    ModelClassifier,
    ModelTier,
    TaskCategory,
    TaskClassifier,
    TaskRouter,
    get_routing_rules,
)
from scout.config.settings import RouterSettings, XAISettings
from scout.infra.errors import ClassificationError
from tests.conftest import FakeModelClient

MODELS = {ModelTier.fast: "fast-model", ModelTier.reasoning: "reasoning-model"}


class _FailingClassifier(TaskClassifier):
    async def categorize(self, message: str) -> TaskCategory:
        raise ClassificationError("classifier offline")


def _router(classifier: TaskClassifier | None = None, **kwargs) -> TaskRouter:
    return TaskRouter(classifier or KeywordClassifier(), MODELS, **kwargs)


class TestKeywordClassifier:
    @pytest.mark.parametrize(
        ("message", "category"),
        [
            ("What's the MAO on a house with $200k ARV?", TaskCategory.deal_analysis),
            ("Pull comps for 123 Main St", TaskCategory.property_analysis),
            ("Write an offer letter for the Elm St house", TaskCategory.offer_letter),
            ("Summarize this inspection report", TaskCategory.document_summarization),
            ("Find cash buyers for this duplex", TaskCategory.buyer_matching),
            ("Draft a listing description", TaskCategory.content_generation),
            ("find properties under $500,000 in Miami", TaskCategory.simple_qa),
            ("", TaskCategory.simple_qa),
        ],
    )
    def test_categories(self, message, category):
        assert KeywordClassifier.categorize_text(message) is category


class TestTaskRouter:
    @pytest.mark.asyncio()
    async def test_deterministic(self):
        router = _router()
        message = "Analyze this deal: ARV 300k, repairs 40k"
        first = await router.classify(message)
        second = await router.classify(message)
        assert first is second

    @pytest.mark.asyncio()
    async def test_high_capability_goes_to_reasoning(self):
        decision = await _router().route("What's my ROI on this flip?")
        assert decision.category is TaskCategory.deal_analysis
        assert decision.tier is ModelTier.reasoning
        assert decision.model == "reasoning-model"

    @pytest.mark.asyncio()
    async def test_simple_question_goes_to_fast(self):
        decision = await _router().route("find properties under $500,000 in Miami")
        assert decision.tier is ModelTier.fast
        assert decision.model == "fast-model"

    @pytest.mark.asyncio()
    async def test_prefer_speed_downgrades_high(self):
        decision = await _router(prefer_speed=True).route("What's my ROI on this flip?")
        assert decision.tier is ModelTier.fast

    def test_prefer_quality_raises_low_to_medium(self):
        decision = _router(prefer_quality=True).route_category(TaskCategory.simple_qa)
        assert decision.tier is ModelTier.fast
        assert "medium" in decision.rationale

    def test_conflicting_preferences_rejected(self):
        with pytest.raises(ValueError):
            _router(prefer_speed=True, prefer_quality=True)

    def test_missing_tier_model_rejected(self):
        with pytest.raises(ValueError):
            TaskRouter(KeywordClassifier(), {ModelTier.fast: "fast-model"})

    @pytest.mark.asyncio()
    async def test_classifier_failure_degrades_to_default(self):
        router = _router(_FailingClassifier())
        decision = await router.route("anything")
        assert decision.tier is ModelTier.reasoning
        assert decision.confidence == 0.5
        assert await router.classify("anything") is ModelTier.reasoning

    @pytest.mark.asyncio()
    async def test_configured_default_tier(self):
        router = _router(_FailingClassifier(), default_tier=ModelTier.fast)
        assert await router.classify("anything") is ModelTier.fast

    @pytest.mark.asyncio()
    async def test_unexpected_exception_also_degrades(self):
        classifier = AsyncMock(spec=TaskClassifier)
        classifier.categorize.side_effect = KeyError("boom")
        decision = await _router(classifier).route("anything")
        assert decision.tier is ModelTier.reasoning

    @pytest.mark.asyncio()
    async def test_force_model(self):
        decision = await _router().route("What's my ROI?", force_model="fast-model")
        assert decision.model == "fast-model"
        assert decision.tier is ModelTier.fast
        assert decision.rationale == "Manual model override"

    def test_routing_rules_copy(self):
        rules = get_routing_rules()
        rules.clear()
        assert get_routing_rules()


class TestModelClassifier:
    @pytest.mark.asyncio()
    async def test_parses_category(self):
        client = FakeModelClient(chat_reply="  Deal_Analysis\n")
        category = await ModelClassifier(client, "fast-model").categorize("ROI?")
        assert category is TaskCategory.deal_analysis
        assert "ROI?" in client.chat_calls[0][0]["content"]

    @pytest.mark.asyncio()
    async def test_unknown_answer_falls_back_to_simple_qa(self):
        client = FakeModelClient(chat_reply="I think it's about houses")
        category = await ModelClassifier(client, "fast-model").categorize("hello")
        assert category is TaskCategory.simple_qa

    @pytest.mark.asyncio()
    async def test_transport_error_becomes_classification_error(self):
        client = FakeModelClient()
        client.chat = AsyncMock(side_effect=ConnectionError("down"))
        with pytest.raises(ClassificationError):
            await ModelClassifier(client, "fast-model").categorize("hello")

    @pytest.mark.asyncio()
    async def test_router_with_failing_model_classifier(self):
        client = FakeModelClient()
        client.chat = AsyncMock(side_effect=ConnectionError("down"))
        router = _router(ModelClassifier(client, "fast-model"))
        assert await router.classify("hello") is ModelTier.reasoning


def test_from_settings_builds_model_classifier():
    router = TaskRouter.from_settings(
        RouterSettings(classifier="model", default_tier="fast"),
        XAISettings(api_key="k"),
        FakeModelClient(),
    )
    assert isinstance(router._classifier, ModelClassifier)
    assert router.model_for(ModelTier.reasoning) == "grok-4-1-fast-reasoning"
