"""Headline/content sentiment scoring via a single-number LLM call."""

from __future__ import annotations

import re

from pydantic_ai import Agent

from trendline.core.constants import SENTIMENT_CONTENT_CHARS
from trendline.core.logging import get_logger
from trendline.processing.common.llm import create_text_agent

logger = get_logger(__name__)

SENTIMENT_SYSTEM_PROMPT = """You rate the sentiment of marketplace content.

Reply with ONE number between -1 and 1 and nothing else.
-1 = very negative, 0 = neutral, 1 = very positive."""

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def create_sentiment_agent() -> Agent[None, str]:
    return create_text_agent(SENTIMENT_SYSTEM_PROMPT)


def parse_sentiment(text: str) -> float:
    """Pull the first number out of ``text`` and clamp to [-1, 1]. 0.0 if none."""
    match = _NUMBER_RE.search(text)
    if match is None:
        return 0.0
    return max(-1.0, min(1.0, float(match.group())))


class SentimentScorer:
    """Scores item text in [-1, 1]. Any failure scores neutral (0.0)."""

    def __init__(self) -> None:
        self._agent: Agent[None, str] | None = None

    @property
    def agent(self) -> Agent[None, str]:
        if self._agent is None:
            self._agent = create_sentiment_agent()
        return self._agent

    async def score(self, headline: str, content: str) -> float:
        if not headline and not content:
            return 0.0
        prompt = f"Headline: {headline}\nContent: {content[:SENTIMENT_CONTENT_CHARS]}"
        try:
            result = await self.agent.run(prompt)
        except Exception as e:
            logger.warning("Sentiment scoring failed, using neutral", error=str(e))
            return 0.0
        return parse_sentiment(str(result.output))
