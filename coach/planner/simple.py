"""Rule-based slot-filling planner for workout generation dialogues."""

from __future__ import annotations

import logging
import re

from coach.memory.models import ConversationState, SlotContext, SlotType
from coach.planner.base import Planner
from coach.planner.clarification import ClarificationBuilder
from coach.planner.gaps import ContextGapAnalyzer
from coach.planner.intent import IntentClassifier
from coach.planner.slots import SlotExtractor, is_correction
from coach.planner.types import PlannerAction, PlannerContext, PlannerDecision

logger = logging.getLogger("coach.planner")

RESET_PATTERN = re.compile(r"\b(new\s+conversation|start\s+over|start\s+again|reset)\b", re.IGNORECASE)


class RuleBasedPlanner(Planner):
    """Keyword intent detection with deterministic slot requirements.

    State machine: no intent -> passthrough; intent with gaps -> clarify
    (ask, receive, re-check); intent without gaps -> generate.
    """

    def __init__(
        self,
        classifier: IntentClassifier | None = None,
        extractor: SlotExtractor | None = None,
        analyzer: ContextGapAnalyzer | None = None,
        clarifications: ClarificationBuilder | None = None,
    ) -> None:
        self.classifier = classifier or IntentClassifier()
        self.extractor = extractor or SlotExtractor()
        self.analyzer = analyzer or ContextGapAnalyzer()
        self.clarifications = clarifications or ClarificationBuilder()

    def describe(self) -> str:
        return "Rule-based workout slot-filling planner"

    def decide(self, context: PlannerContext) -> PlannerDecision:
        message = context.turn.content or ""
        state = context.state
        payload: dict[str, object] = {}

        if RESET_PATTERN.search(message):
            state = ConversationState.empty()
            payload["reset"] = True

        question = state.current_question if state.active else None
        if question is not None:
            if self.classifier.is_informational(message):
                # Side question mid-dialogue: answer it as chat, keep the question pending.
                logger.debug("Informational message while %s is pending; passing through", question.value)
                return PlannerDecision(action=PlannerAction.PASSTHROUGH, state=state, payload=payload)

            resolution = self.clarifications.resolve_answer(question, message, context.profile)
            if resolution.understood:
                state = state.answer(question, None if resolution.skipped else resolution.value)
                state = self._merge_mentions(state, message)
                return self._next_step(context, state, payload, answered=question)

            if not self.classifier.classify(message):
                logger.debug("Answer to %s not understood; asking again", question.value)
                payload["reprompt"] = True
                payload["intro"] = "Sorry, I didn't catch that."
                return PlannerDecision(
                    action=PlannerAction.CLARIFY,
                    state=state,
                    missing=state.pending_questions,
                    clarification=self.clarifications.build(question, context.profile),
                    is_generation_request=True,
                    payload=payload,
                )

        elif not self.classifier.classify(message):
            return PlannerDecision(action=PlannerAction.PASSTHROUGH, state=state, payload=payload)

        state = self._merge_mentions(state, message)
        return self._next_step(context, state, payload)

    def _merge_mentions(self, state: ConversationState, message: str) -> ConversationState:
        extracted: SlotContext = self.extractor.extract(message)
        return state.with_context(state.context.merge(extracted, overwrite=is_correction(message)))

    def _next_step(
        self,
        context: PlannerContext,
        state: ConversationState,
        payload: dict[str, object],
        answered: SlotType | None = None,
    ) -> PlannerDecision:
        missing = self.analyzer.missing(context.profile, state)
        if missing:
            state = state.ask(missing)
            payload["intro"] = self.clarifications.intro(missing[0])
            return PlannerDecision(
                action=PlannerAction.CLARIFY,
                state=state,
                missing=tuple(missing),
                clarification=self.clarifications.build(missing[0], context.profile),
                is_generation_request=True,
                answered=answered,
                payload=payload,
            )

        return PlannerDecision(
            action=PlannerAction.GENERATE,
            state=state,
            is_generation_request=True,
            answered=answered,
            payload=payload,
        )
