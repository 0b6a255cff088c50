# lfa_studio/assessment_prompts.py
"""Prompt templates for the four design checks. Placeholders are filled with unsafe_string_format."""

import logging
import re

logger = logging.getLogger("lfa_studio.llm")


LOGIC_CHAIN_SYSTEM = (
    "You are an expert education program design consultant specializing in LFA and Theory of Change validation."
)

LOGIC_CHAIN_PROMPT = """
You are an expert in education program design and Logical Framework Approach (LFA).

Analyze this program's logic chain for coherence and validity:

**Activities:**
{activities}

**Outputs:**
{outputs}

**Outcomes:**
{outcomes}

**Impact:**
{impact}

Validation Criteria:
1. Do activities logically lead to the stated outputs?
2. Do outputs credibly lead to the stated outcomes?
3. Do outcomes plausibly contribute to the impact?
4. Are there missing links or logical leaps?
5. Are assumptions clearly implied or stated?

Respond ONLY with a JSON object, no comments:
{
  "isValid": boolean,
  "score": number (0-100),
  "issues": [
    {
      "severity": "critical" | "high" | "medium" | "low",
      "component": "activity-output" | "output-outcome" | "outcome-impact",
      "message": "description of the issue",
      "suggestion": "how to fix it"
    }
  ],
  "strengths": ["what works well"]
}
"""

SMART_SYSTEM = (
    "You are an M&E expert with deep knowledge of Indian education programs, NIPUN Bharat, and TaRL approaches."
)

SMART_PROMPT = """
You are an M&E expert specializing in education programs in India.

Evaluate this outcome statement against SMART criteria:

**Statement:** {statement}

**Context:**
- Theme: {theme}
- Geography: {geography}
- Timeline: {timeline}

SMART Criteria:
- **Specific:** Clear, unambiguous, well-defined
- **Measurable:** Quantifiable or observable with clear metrics
- **Achievable:** Realistic given Indian education context
- **Relevant:** Aligned with student outcomes and system realities
- **Time-bound:** Has clear timeframe or deadline

Respond ONLY with a JSON object, no comments:
{
  "score": number (0-100, average across dimensions),
  "dimensions": {
    "specific": { "score": 0-100, "feedback": "explanation" },
    "measurable": { "score": 0-100, "feedback": "explanation" },
    "achievable": { "score": 0-100, "feedback": "explanation" },
    "relevant": { "score": 0-100, "feedback": "explanation" },
    "timeBound": { "score": 0-100, "feedback": "explanation" }
  },
  "improvedVersion": "SMART-compliant version of the statement",
  "confidence": number (0-100, your confidence in this assessment)
}
"""

CONTEXT_SYSTEM = (
    "You are an expert on education programs in India, with deep knowledge of FLN, NIPUN Bharat, TaRL, ASER, "
    "and successful NGO interventions."
)

CONTEXT_PROMPT = """
You are a program design expert for education NGOs in India.

Provide contextual suggestions for this program:

**Theme:** {theme}
**Problem:** {problem}
**Geography:** {geography}
**Stakeholders:** {stakeholders}

Based on successful programs in similar contexts (FLN, TaRL, NIPUN Bharat, etc.), suggest:
1. Relevant indicators to track
2. Key stakeholders that might be missing
3. Effective activities from proven approaches
4. Expected practice changes for each stakeholder

Respond ONLY with a JSON object, no comments:
{
  "suggestions": [
    {
      "category": "indicator" | "stakeholder" | "activity" | "practice-change",
      "title": "brief title",
      "description": "detailed description",
      "rationale": "why this is relevant",
      "examples": ["specific examples from real programs"]
    }
  ],
  "relevantPatterns": ["proven approaches that fit this context"],
  "warnings": ["common pitfalls to avoid"]
}
"""

QUALITY_SYSTEM = (
    "You are a senior program officer at a major education foundation, reviewing grant proposals "
    "with expertise in LFA and ToC."
)

QUALITY_PROMPT = """
You are a senior program design reviewer for an education funder.

Assess this program design's quality and readiness:

**Problem Statement:** {problem}

**Outcomes:** {outcomes}

**Stakeholders:** {stakeholder_count} mapped

**Indicators:** {indicator_count} defined

**Activities:** {activities}

**Geography:** {geography}
**Timeline:** {timeline}

Rate on these dimensions (0-100):
1. **Problem Clarity:** Is the problem well-defined and evidence-based?
2. **Logic Coherence:** Does the intervention logic make sense?
3. **Stakeholder Coverage:** Are all relevant actors included?
4. **Measurement Quality:** Are indicators SMART and aligned?
5. **Feasibility:** Is this realistic given timeline and geography?

Respond ONLY with a JSON object, no comments:
{
  "overallScore": number (0-100),
  "readiness": "draft" | "needs-work" | "review-ready" | "funder-ready",
  "dimensionScores": {
    "problemClarity": 0-100,
    "logicCoherence": 0-100,
    "stakeholderCoverage": 0-100,
    "measurementQuality": 0-100,
    "feasibility": 0-100
  },
  "topStrengths": ["what's working well"],
  "criticalGaps": ["what must be fixed before submission"],
  "nextSteps": ["prioritized actions to improve"],
  "estimatedReviewTime": "time estimate for refinement"
}
"""


def numbered(items) -> str:
    items = [str(i) for i in items or []]
    if not items:
        return "(none provided)"
    return "\n".join(f"{n}. {item}" for n, item in enumerate(items, start=1))


def unsafe_string_format(dest_string: str, **kwargs) -> str:
    """
    Replace only the {placeholders} named in kwargs, leaving every other brace
    alone (the JSON examples in the templates). Unfilled placeholders are logged.
    """
    missing_keys = []

    def replacer(match):
        key = match.group(1)
        if key in kwargs:
            return str(kwargs[key])
        missing_keys.append(key)
        return match.group(0)

    result = re.sub(r"\{(\w+)\}", replacer, dest_string)
    if missing_keys:
        logger.debug("Missing keys within string-to-format in unsafe_string_format: %s", ", ".join(missing_keys))
    return result
