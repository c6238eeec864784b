"""Model tier selection for a chat turn.

The latest user message is mapped to a TaskCategory, the category to a
capability level, and the level to a concrete model. Routing never raises:
a failing classifier degrades to the configured default tier.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from scout.infra.errors import ClassificationError

if TYPE_CHECKING:
    from scout.agent.model_client import ModelClient
    from scout.config.settings import RouterSettings, XAISettings

logger = structlog.get_logger()


class ModelTier(StrEnum):
    fast = "fast"
    reasoning = "reasoning"


class CapabilityLevel(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"


class TaskCategory(StrEnum):
    complex_analysis = "complex_analysis"
    content_generation = "content_generation"
    document_summarization = "document_summarization"
    rag_response = "rag_response"
    offer_letter = "offer_letter"
    intent_classification = "intent_classification"
    simple_qa = "simple_qa"
    data_extraction = "data_extraction"
    deal_analysis = "deal_analysis"
    property_analysis = "property_analysis"
    buyer_matching = "buyer_matching"


TASK_ROUTING_RULES: dict[TaskCategory, CapabilityLevel] = {
    TaskCategory.complex_analysis: CapabilityLevel.high,
    TaskCategory.deal_analysis: CapabilityLevel.high,
    TaskCategory.property_analysis: CapabilityLevel.high,
    TaskCategory.content_generation: CapabilityLevel.medium,
    TaskCategory.document_summarization: CapabilityLevel.medium,
    TaskCategory.rag_response: CapabilityLevel.medium,
    TaskCategory.offer_letter: CapabilityLevel.medium,
    TaskCategory.buyer_matching: CapabilityLevel.medium,
    TaskCategory.intent_classification: CapabilityLevel.low,
    TaskCategory.simple_qa: CapabilityLevel.low,
    TaskCategory.data_extraction: CapabilityLevel.low,
}

# Only high-capability work goes to the reasoning model
_LEVEL_TIERS: dict[CapabilityLevel, ModelTier] = {
    CapabilityLevel.high: ModelTier.reasoning,
    CapabilityLevel.medium: ModelTier.fast,
    CapabilityLevel.low: ModelTier.fast,
}


@dataclass(frozen=True)
class RoutingDecision:
    tier: ModelTier
    model: str
    category: TaskCategory
    confidence: float
    rationale: str


class TaskClassifier(ABC):
    """Maps a user message to a TaskCategory.

    Implementations raise ClassificationError (or anything else) on failure;
    TaskRouter turns failures into the default tier.
    """

    @abstractmethod
    async def categorize(self, message: str) -> TaskCategory: ...


# Checked in order; first match wins
_KEYWORD_RULES: list[tuple[TaskCategory, re.Pattern[str]]] = [
    (
        TaskCategory.offer_letter,
        re.compile(r"\b(offer letter|letter of intent|loi|purchase agreement|contract)\b"),
    ),
    (
        TaskCategory.deal_analysis,
        re.compile(
            r"\b(mao|max(imum)? allowable offer|roi|cash[- ]on[- ]cash|cap rate"
            r"|analy[sz]e (this|the|a|my) deal|deal analysis|profit|assignment fee)\b"
        ),
    ),
    (
        TaskCategory.property_analysis,
        re.compile(r"\b(arv|after repair value|comps?|comparables?|repair estimate|valuation)\b"),
    ),
    (
        TaskCategory.complex_analysis,
        re.compile(r"\b(compare|strategy|forecast|trend|step[- ]by[- ]step|pros and cons)\b"),
    ),
    (
        TaskCategory.buyer_matching,
        re.compile(r"\b(buyers? (for|who|that)|match(ing)? buyers?|cash buyers?)\b"),
    ),
    (
        TaskCategory.document_summarization,
        re.compile(r"\b(summari[sz]e|summary|tl;?dr)\b"),
    ),
    (
        TaskCategory.content_generation,
        re.compile(r"\b(write|draft|compose|listing description|email template)\b"),
    ),
    (
        TaskCategory.data_extraction,
        re.compile(r"\b(extract|parse|pull out)\b"),
    ),
    (
        TaskCategory.intent_classification,
        re.compile(r"\b(classify|categori[sz]e|label)\b"),
    ),
    (
        TaskCategory.rag_response,
        re.compile(r"\b(how (do|does|should) (i|we)|what is (a|an|the)|explain)\b"),
    ),
]


class KeywordClassifier(TaskClassifier):
    """Deterministic keyword heuristic. No I/O."""

    async def categorize(self, message: str) -> TaskCategory:
        return self.categorize_text(message)

    @staticmethod
    def categorize_text(message: str) -> TaskCategory:
        text = message.lower()
        for category, pattern in _KEYWORD_RULES:
            if pattern.search(text):
                return category
        return TaskCategory.simple_qa


_CLASSIFICATION_PROMPT = """Classify the following user request into exactly one category.

Categories:
- complex_analysis: Detailed analysis requiring multi-step reasoning
- deal_analysis: Analyzing real estate deals, calculating ROI, evaluating offers
- property_analysis: Deep property evaluation, ARV calculations, comp analysis
- content_generation: Writing descriptions, summaries, or creative content
- document_summarization: Summarizing documents or long text
- rag_response: Answering questions using knowledge base
- offer_letter: Writing offer letters or contracts
- buyer_matching: Matching properties to buyers
- intent_classification: Simple categorization tasks
- simple_qa: Direct questions with straightforward answers
- data_extraction: Extracting structured data from text

User request: "{message}"

Respond with only the category name, nothing else."""


class ModelClassifier(TaskClassifier):
    """Asks the fast model to name a category at temperature 0.

    Answers outside the known categories fall back to simple_qa.
    """

    def __init__(self, model_client: ModelClient, model: str) -> None:
        self._model_client = model_client
        self._model = model

    async def categorize(self, message: str) -> TaskCategory:
        prompt = _CLASSIFICATION_PROMPT.format(message=message)
        try:
            answer = await self._model_client.chat(
                [{"role": "user", "content": prompt}],
                self._model,
                temperature=0,
                max_tokens=50,
            )
        except Exception as e:
            raise ClassificationError(f"Classifier model call failed: {e}") from e
        try:
            return TaskCategory(answer.strip().lower())
        except ValueError:
            logger.debug("classifier_unknown_answer", answer=answer[:80])
            return TaskCategory.simple_qa


class TaskRouter:
    """Chooses the model for a turn from the latest user message."""

    def __init__(
        self,
        classifier: TaskClassifier,
        models: dict[ModelTier, str],
        *,
        default_tier: ModelTier = ModelTier.reasoning,
        prefer_speed: bool = False,
        prefer_quality: bool = False,
    ) -> None:
        missing = [t.value for t in ModelTier if t not in models]
        if missing:
            raise ValueError(f"No model configured for tiers: {missing}")
        if prefer_speed and prefer_quality:
            raise ValueError("prefer_speed and prefer_quality are mutually exclusive")
        self._classifier = classifier
        self._models = dict(models)
        self._default_tier = default_tier
        self._prefer_speed = prefer_speed
        self._prefer_quality = prefer_quality

    @classmethod
    def from_settings(
        cls,
        router_settings: RouterSettings,
        xai_settings: XAISettings,
        model_client: ModelClient,
    ) -> TaskRouter:
        classifier: TaskClassifier
        if router_settings.classifier == "model":
            classifier = ModelClassifier(model_client, xai_settings.fast_model)
        else:
            classifier = KeywordClassifier()
        return cls(
            classifier,
            {
                ModelTier.fast: xai_settings.fast_model,
                ModelTier.reasoning: xai_settings.reasoning_model,
            },
            default_tier=ModelTier(router_settings.default_tier),
            prefer_speed=router_settings.prefer_speed,
            prefer_quality=router_settings.prefer_quality,
        )

    def model_for(self, tier: ModelTier) -> str:
        return self._models[tier]

    def route_category(self, category: TaskCategory) -> RoutingDecision:
        """Apply the routing rules and preference adjustments to a category."""
        level = TASK_ROUTING_RULES[category]
        if self._prefer_speed and level is CapabilityLevel.high:
            level = CapabilityLevel.medium
        elif self._prefer_quality and level is CapabilityLevel.low:
            level = CapabilityLevel.medium
        tier = _LEVEL_TIERS[level]
        return RoutingDecision(
            tier=tier,
            model=self._models[tier],
            category=category,
            confidence=1.0,
            rationale=f"Routed {category.value} to {level.value} capability ({tier.value} tier)",
        )

    async def route(self, message: str, *, force_model: str | None = None) -> RoutingDecision:
        """Pick a model for the message. Never raises."""
        if force_model:
            tier = next(
                (t for t, m in self._models.items() if m == force_model),
                self._default_tier,
            )
            return RoutingDecision(
                tier=tier,
                model=force_model,
                category=TaskCategory.simple_qa,
                confidence=1.0,
                rationale="Manual model override",
            )

        try:
            category = await self._classifier.categorize(message)
            decision = self.route_category(TaskCategory(category))
        except Exception as e:
            logger.warning(
                "task_classification_failed",
                error=str(e),
                default_tier=self._default_tier.value,
            )
            return RoutingDecision(
                tier=self._default_tier,
                model=self._models[self._default_tier],
                category=TaskCategory.simple_qa,
                confidence=0.5,
                rationale="Classification failed, using default model",
            )

        logger.info(
            "task_routed",
            category=decision.category.value,
            tier=decision.tier.value,
            model=decision.model,
        )
        return decision

    async def classify(self, message: str) -> ModelTier:
        """Tier for the message. Never raises."""
        return (await self.route(message)).tier


def get_routing_rules() -> dict[TaskCategory, CapabilityLevel]:
    return dict(TASK_ROUTING_RULES)
