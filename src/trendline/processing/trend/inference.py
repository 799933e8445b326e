"""Trend scoring through the external inference service.

The model is asked for per-factor weights, a 0-100 score, a confidence and a
short reasoning, as a JSON object. Malformed output never raises: it falls
back to DEFAULT_WEIGHTS and a weighted-sum score. Transport failures do raise
(as InferenceError) so the circuit breaker can count them.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

import orjson
from pydantic_ai import Agent

from trendline.core.circuit_breaker import CircuitBreaker
from trendline.core.constants import DEFAULT_CONFIDENCE, DEFAULT_REASONING, FALLBACK_REASONING
from trendline.core.exceptions import InferenceError
from trendline.core.logging import get_logger
from trendline.processing.common.llm import create_text_agent
from trendline.processing.trend.models import (
    DEFAULT_WEIGHTS,
    FACTOR_KEYS,
    MarketContext,
    TrendFactors,
    TrendResult,
    TrendWeights,
)

logger = get_logger(__name__)

INFERENCE_SYSTEM_PROMPT = """You score how strongly a marketplace item is trending.

You receive seven activity factors and the current market context. Decide how
much each factor should matter right now, then score the item.

Respond with a single JSON object and nothing else:
{
  "weights": {
    "sentiment": 0.0-1.0,
    "tradingVelocity": 0.0-1.0,
    "volumeSpike": 0.0-1.0,
    "priceMomentum": 0.0-1.0,
    "socialActivity": 0.0-1.0,
    "holderMomentum": 0.0-1.0,
    "crossMarketCorr": 0.0-1.0
  },
  "score": 0-100,
  "confidence": 0.0-1.0,
  "reasoning": "one or two sentences"
}

Weights must sum to 1.0."""

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def create_inference_agent() -> Agent[None, str]:
    return create_text_agent(INFERENCE_SYSTEM_PROMPT)


def build_prompt(factors: TrendFactors, context: MarketContext) -> str:
    return f"""## Market Context
Time: {context.timestamp.isoformat()}
Volatility: {context.volatility}
Overall sentiment: {context.overall_sentiment}
Active markets: {context.active_markets}

## Factors
sentiment: {factors.sentiment:.3f} (-1 to 1)
tradingVelocity: {factors.trading_velocity:.2f} trades/min
volumeSpike: {factors.volume_spike * 100:.1f}% vs 24h average
priceMomentum: {factors.price_momentum * 100:.2f}% over 24h
socialActivity: {factors.social_activity:.0f} interactions/hour
holderMomentum: {factors.holder_momentum:.2f}
crossMarketCorr: {factors.cross_market_corr:.3f} (-1 to 1)"""


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def fallback_result(
    item_id: str, factors: TrendFactors, timestamp: datetime | None = None
) -> TrendResult:
    """Deterministic score from DEFAULT_WEIGHTS."""
    score = _clamp(factors.weighted_sum(DEFAULT_WEIGHTS) * 100, 0.0, 100.0)
    return TrendResult(
        item_id=item_id,
        score=score,
        factors=factors,
        weights=DEFAULT_WEIGHTS,
        confidence=DEFAULT_CONFIDENCE,
        reasoning=FALLBACK_REASONING,
        timestamp=timestamp or datetime.now(UTC),
        provider="fallback",
    )


def parse_inference_response(
    item_id: str,
    text: str,
    factors: TrendFactors,
    timestamp: datetime | None = None,
) -> TrendResult:
    """Parse the model's JSON reply into a TrendResult, falling back on any defect."""
    match = _JSON_OBJECT_RE.search(text)
    if match is None:
        logger.warning("No JSON object in inference response", item_id=item_id)
        return fallback_result(item_id, factors, timestamp)

    try:
        data = orjson.loads(match.group())
        raw = data["weights"]
        weights = TrendWeights.model_validate(
            {k: _require_number(raw, k) for k in FACTOR_KEYS}
        ).normalized()
    except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Unusable inference response, using fallback", item_id=item_id, error=str(e))
        return fallback_result(item_id, factors, timestamp)

    return TrendResult(
        item_id=item_id,
        score=_clamp(_as_float(data.get("score"), 0.0), 0.0, 100.0),
        factors=factors,
        weights=weights,
        confidence=_clamp(_as_float(data.get("confidence"), DEFAULT_CONFIDENCE), 0.0, 1.0),
        reasoning=str(data.get("reasoning") or DEFAULT_REASONING),
        timestamp=timestamp or datetime.now(UTC),
        provider="inference",
    )


def _require_number(raw: dict[str, Any], key: str) -> float:
    """Read a weight by snake_case or camelCase key; missing or non-numeric raises."""
    camel = TrendWeights.model_fields[key].alias or key
    value = raw[camel] if camel in raw else raw[key]
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError(f"Weight {camel} is not a number")
    return float(value)


class InferenceClient:
    """Scores TrendFactors through the inference service behind a circuit breaker."""

    def __init__(self, breaker: CircuitBreaker) -> None:
        self._breaker = breaker
        self._agent: Agent[None, str] | None = None

    @property
    def agent(self) -> Agent[None, str]:
        if self._agent is None:
            self._agent = create_inference_agent()
        return self._agent

    async def score(
        self, item_id: str, factors: TrendFactors, context: MarketContext
    ) -> TrendResult:
        """Raises ExternalServiceUnavailableError when the service is down or the circuit open."""
        prompt = build_prompt(factors, context)

        async def _run() -> str:
            try:
                result = await self.agent.run(prompt)
            except Exception as e:
                raise InferenceError(f"Inference call failed: {e}") from e
            return str(result.output)

        text = await self._breaker.call(_run)
        result = parse_inference_response(item_id, text, factors)
        logger.debug(
            "Trend scored",
            item_id=item_id,
            score=result.score,
            confidence=result.confidence,
            provider=result.provider,
        )
        return result

    def circuit_status(self) -> dict[str, object]:
        return self._breaker.status()
