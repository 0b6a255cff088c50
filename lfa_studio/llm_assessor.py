# lfa_studio/llm_assessor.py

import asyncio
import logging
from typing import Any, Mapping

from langchain_core.messages import HumanMessage, SystemMessage

from lfa_studio.assessment_prompts import (
    CONTEXT_PROMPT,
    CONTEXT_SYSTEM,
    LOGIC_CHAIN_PROMPT,
    LOGIC_CHAIN_SYSTEM,
    QUALITY_PROMPT,
    QUALITY_SYSTEM,
    SMART_PROMPT,
    SMART_SYSTEM,
    numbered,
    unsafe_string_format,
)
from lfa_studio.llm_json import load_fault_tolerant_json
from lfa_studio.validation_models import ProjectAssessmentInput

logger = logging.getLogger("lfa_studio.llm")


class LlmAssessor:
    """
    The four design checks, each one chat call returning parsed JSON.

    The chat client is blocking, so every call runs in a worker thread. Errors
    (MaxRetryErrorsException, JsonParseError, ...) propagate; the aggregator
    decides what to do with them.
    """

    def __init__(self, chat_llm, repair_llm=None) -> None:
        self.chat_llm = chat_llm
        # used by load_fault_tolerant_json as last resort; None disables LLM repair
        self.repair_llm = repair_llm

    def _ask(self, system_prompt: str, prompt: str, check: str) -> Mapping[str, Any]:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=prompt)]
        raw = self.chat_llm.invoke(messages)
        data = load_fault_tolerant_json(raw, llm=self.repair_llm)
        if not isinstance(data, dict):
            raise ValueError(f"{check}: model answered with {type(data).__name__}, expected an object")
        logger.debug(
            "[LLM] %s answered with keys %s (usage so far: %s)",
            check, sorted(data), getattr(self.chat_llm, "last_usage", None),
        )
        return data

    async def assess_logic_chain(
        self, activities: list[str], outputs: list[str], outcomes: list[str], impact: str
    ) -> Mapping[str, Any]:
        prompt = unsafe_string_format(
            LOGIC_CHAIN_PROMPT,
            activities=numbered(activities),
            outputs=numbered(outputs),
            outcomes=numbered(outcomes),
            impact=impact or "(not stated)",
        )
        return await asyncio.to_thread(self._ask, LOGIC_CHAIN_SYSTEM, prompt, "logic_chain")

    async def assess_smart(self, statement: str, context: Mapping[str, str]) -> Mapping[str, Any]:
        prompt = unsafe_string_format(
            SMART_PROMPT,
            statement=statement,
            theme=context.get("theme", ""),
            geography=context.get("geography", ""),
            timeline=context.get("timeline", ""),
        )
        return await asyncio.to_thread(self._ask, SMART_SYSTEM, prompt, "smart")

    async def suggest_context(
        self, theme: str, problem: str, geography: str, stakeholders: list[str]
    ) -> Mapping[str, Any]:
        prompt = unsafe_string_format(
            CONTEXT_PROMPT,
            theme=theme,
            problem=problem or "(not stated)",
            geography=geography,
            stakeholders=", ".join(s for s in stakeholders if s) or "(none mapped)",
        )
        return await asyncio.to_thread(self._ask, CONTEXT_SYSTEM, prompt, "contextual_advice")

    async def assess_quality(self, project: ProjectAssessmentInput) -> Mapping[str, Any]:
        prompt = unsafe_string_format(
            QUALITY_PROMPT,
            problem=project.problem or "(not stated)",
            outcomes="; ".join(project.outcomes),
            stakeholder_count=len(project.stakeholders),
            indicator_count=len(project.indicators),
            activities="; ".join(project.activities),
            geography=project.geography,
            timeline=project.timeline,
        )
        return await asyncio.to_thread(self._ask, QUALITY_SYSTEM, prompt, "quality")
