"""Prompt templates for grounding and verification requests."""

from __future__ import annotations


GROUNDING_PROMPT = """Give me the grounding coordinates of: {description}

NOTE: The screenshot may contain yellow circle markers. They show where earlier clicks landed and are only a relative-position reference; they are not necessarily correct click targets. Each marker is labelled "#n" with its normalized "[y,x]" coordinate. The markers are NOT part of the interface: ignore them and locate only the real interface element.
{history}
Coordinate format: normalized to 0-1000, as [ymin, xmin, ymax, xmax].

Return JSON only (no markdown):
{{"box_2d": [ymin, xmin, ymax, xmax], "confidence": <0-100>}}"""


VERIFY_PROMPT = """Analyze this GUI screenshot and answer the following question:

{question}

Provide a detailed answer based on what you can see in the image.

IMPORTANT: At the end of your response, you MUST provide a formatted judgment on whether the most recent GUI operation was accurate/successful. Use this exact format:

**Operation Success Judgment:**
- Status: [SUCCESS/FAILURE]
- Reason: [Brief explanation of why the operation succeeded or failed]

Example:
**Operation Success Judgment:**
- Status: SUCCESS
- Reason: The button was clicked correctly in the expected dialog window."""


def build_grounding_prompt(description: str, history_info: str | None = None) -> str:
    history = f"\n{history_info}\n" if history_info else ""
    return GROUNDING_PROMPT.format(description=description.strip(), history=history)


def build_verify_prompt(question: str) -> str:
    return VERIFY_PROMPT.format(question=question.strip())
