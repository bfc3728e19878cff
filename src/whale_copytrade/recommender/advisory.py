"""LLM-backed copy recommender with a strict response contract.

Each request runs BUILD_PROMPT -> INVOKE -> PARSE and ends either in
`Validated` (a coerced, clamped Recommendation) or `Fallback` (the
canonical conservative no-copy recommendation plus the reason). The
collaborator is called exactly once per request; nothing here retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

from whale_copytrade.recommender.client import (
    AdvisoryClientError,
    AdvisoryConfigurationError,
    AdvisoryHTTPStatusError,
    AdvisoryResponseError,
    AdvisoryTransportError,
)
from whale_copytrade.recommender.models import (
    MarketConditions,
    Recommendation,
    RiskLevel,
    TradeDetails,
    UserContext,
    WhaleStats,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "deepseek/deepseek-r1-0528:free"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_NATIVE_SYMBOL = "BNB"

DEFAULT_POSITION_SIZE = 5.0
MIN_POSITION_SIZE = 1.0
MAX_PERCENT = 100.0
NO_REASONING = "No reasoning provided"

RESPONSE_SCHEMA = """{
  "shouldCopy": boolean,
  "confidence": number (0-100),
  "positionSize": number (percentage 1-100 of user's balance),
  "reasoning": "string explaining the decision",
  "riskLevel": "LOW" | "MEDIUM" | "HIGH",
  "expectedReturn": number (percentage estimate),
  "maxLoss": number (percentage estimate)
}"""


class CompletionClient(Protocol):
    """Text-completion collaborator: one prompt in, one string out."""

    async def complete(self, prompt: str, *, model: str) -> str: ...


class FallbackReason(str, Enum):
    """Why the advisory path produced the conservative fallback."""

    MISSING_CREDENTIAL = "missing_credential"
    TRANSPORT_ERROR = "transport_error"
    HTTP_STATUS = "http_status"
    MALFORMED_BODY = "malformed_body"
    EMPTY_RESPONSE = "empty_response"
    NO_JSON_OBJECT = "no_json_object"
    INVALID_JSON = "invalid_json"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


def fallback_recommendation(reason: FallbackReason) -> Recommendation:
    """The canonical conservative recommendation. Pure; never raises."""
    return Recommendation(
        should_copy=False,
        confidence=0.0,
        position_size=0.0,
        reasoning=f"Advisory analysis unavailable ({reason.value}) - using conservative fallback",
        risk_level=RiskLevel.HIGH,
        expected_return=0.0,
        max_loss=0.0,
    )


@dataclass(frozen=True)
class Validated:
    """The collaborator answered and the answer was coerced into the schema."""

    recommendation: Recommendation
    raw_response: str

    @property
    def is_fallback(self) -> bool:
        return False


@dataclass(frozen=True)
class Fallback:
    """The advisory path failed; carries the reason for auditing."""

    reason: FallbackReason
    detail: str = ""

    @property
    def recommendation(self) -> Recommendation:
        return fallback_recommendation(self.reason)

    @property
    def is_fallback(self) -> bool:
        return True


AdvisoryOutcome = Validated | Fallback


def extract_json_object(text: str) -> str | None:
    """Return the first balanced `{...}` object in text, or None.

    Braces inside JSON string literals are ignored, so commentary before or
    after the object and braces in the reasoning text do not confuse it.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from this brace; try the next opening brace.
        start = text.find("{", start + 1)
    return None


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            # Integer beyond float range; saturate so the field clamps.
            return sys.float_info.max if value > 0 else -sys.float_info.max
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def coerce_recommendation(data: dict[str, Any]) -> Recommendation:
    """Coerce a decoded advisory payload into a valid Recommendation.

    Every field is defaulted independently; nothing raises.
    """
    confidence = _to_number(data.get("confidence"))
    position_size = _to_number(data.get("positionSize"))
    max_loss = _to_number(data.get("maxLoss"))
    expected_return = _to_number(data.get("expectedReturn"))

    risk_raw = data.get("riskLevel")
    try:
        risk_level = RiskLevel(risk_raw) if isinstance(risk_raw, str) else RiskLevel.MEDIUM
    except ValueError:
        risk_level = RiskLevel.MEDIUM

    reasoning = data.get("reasoning")
    reasoning_text = str(reasoning).strip() if reasoning not in (None, "") else ""

    return Recommendation(
        should_copy=_to_bool(data.get("shouldCopy")),
        confidence=_clamp(confidence or 0.0, 0.0, MAX_PERCENT),
        position_size=_clamp(
            DEFAULT_POSITION_SIZE if position_size is None else position_size,
            MIN_POSITION_SIZE,
            MAX_PERCENT,
        ),
        reasoning=reasoning_text or NO_REASONING,
        risk_level=risk_level,
        expected_return=expected_return or 0.0,
        max_loss=_clamp(max_loss or 0.0, 0.0, MAX_PERCENT),
    )


def parse_advisory_response(raw: str) -> AdvisoryOutcome:
    """PARSE + VALIDATE a raw completion string."""
    if not raw or not raw.strip():
        return Fallback(FallbackReason.EMPTY_RESPONSE)

    candidate = extract_json_object(raw)
    if candidate is None:
        return Fallback(FallbackReason.NO_JSON_OBJECT, "No JSON object found in response")

    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, RecursionError) as e:
        return Fallback(FallbackReason.INVALID_JSON, str(e))

    return Validated(recommendation=coerce_recommendation(data), raw_response=raw)


class AdvisoryRecommender:
    """Asks an external completion service whether to copy a trade.

    Example:
        ```python
        client = OpenRouterClient.from_settings(settings.advisory)
        advisory = AdvisoryRecommender(client, model=settings.advisory.model)

        outcome = await advisory.evaluate(whale, trade, user, market)
        if isinstance(outcome, Fallback):
            logger.warning("advisory fell back: %s", outcome.reason)
        recommendation = outcome.recommendation
        ```
    """

    def __init__(
        self,
        client: CompletionClient,
        *,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        native_symbol: str = DEFAULT_NATIVE_SYMBOL,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout_seconds
        self._native_symbol = native_symbol

    def build_prompt(
        self,
        whale: WhaleStats,
        trade: TradeDetails,
        user: UserContext,
        market: MarketConditions,
    ) -> str:
        portfolio = json.dumps(user.current_portfolio, sort_keys=True)
        return f"""You are an expert DeFi trading analyst evaluating whether to copy a whale's trade on {self._native_symbol} Chain.

## WHALE PROFILE
- Address: {whale.address}
- 30-Day Win Rate: {whale.win_rate_30d * 100:.1f}%
- 7-Day Win Rate: {whale.win_rate_7d * 100:.1f}%
- Total Trades: {whale.total_trades}
- Successful Trades: {whale.successful_trades}
- Average Trade Size: ${whale.avg_trade_size:.2f}
- Total Volume: ${whale.total_volume_usd:.2f}
- Sharpe Ratio: {whale.sharpe_ratio:.2f}
- Max Drawdown: {whale.max_drawdown * 100:.1f}%
- Quality Score: {whale.risk_score:.1f}/100

## CURRENT TRADE
- From: {trade.token_in.symbol} (${trade.token_in.price})
- To: {trade.token_out.symbol} (${trade.token_out.price})
- Amount: ${trade.amount_usd:.2f}
- Expected Slippage: {trade.slippage:.2f}%

## USER CONTEXT
- Available Balance: ${user.balance:.2f}
- Risk Tolerance: {user.risk_tolerance.value}
- Current Portfolio: {portfolio}

## MARKET CONDITIONS
- {self._native_symbol} Price: ${market.native_price}
- Market Volatility: {market.market_volatility}%
- Gas Price: {market.gas_price_gwei} gwei
- Timestamp: {market.timestamp.isoformat()}

## ANALYSIS INSTRUCTIONS
Evaluate whether to copy this trade based on:
1. Whale's historical performance (win rate, consistency)
2. Risk-adjusted returns (Sharpe ratio, drawdown)
3. Trade quality (size, slippage, token quality)
4. Portfolio fit (diversification, correlation)
5. Market timing (volatility, gas costs)

Respond ONLY with a JSON object in this exact format:
{RESPONSE_SCHEMA}

Do not include any other text, markdown, code fences, or explanations outside the JSON object."""

    async def evaluate(
        self,
        whale: WhaleStats,
        trade: TradeDetails,
        user: UserContext,
        market: MarketConditions,
    ) -> AdvisoryOutcome:
        """Run one advisory request to completion. Never raises on collaborator failure."""
        prompt = self.build_prompt(whale, trade, user, market)

        try:
            raw = await asyncio.wait_for(
                self._client.complete(prompt, model=self._model),
                timeout=self._timeout,
            )
        except AdvisoryConfigurationError as e:
            logger.error("Advisory analysis misconfigured: %s", e)
            return Fallback(FallbackReason.MISSING_CREDENTIAL, str(e))
        except TimeoutError:
            logger.warning("Advisory call timed out after %.1fs", self._timeout)
            return Fallback(FallbackReason.TIMEOUT, f"timed out after {self._timeout}s")
        except AdvisoryHTTPStatusError as e:
            logger.warning("Advisory call failed: %s", e)
            return Fallback(FallbackReason.HTTP_STATUS, str(e))
        except AdvisoryTransportError as e:
            logger.warning("Advisory call failed: %s", e)
            return Fallback(FallbackReason.TRANSPORT_ERROR, str(e))
        except AdvisoryResponseError as e:
            logger.warning("Advisory call returned an unusable body: %s", e)
            return Fallback(FallbackReason.MALFORMED_BODY, str(e))
        except (AdvisoryClientError, httpx.HTTPError, OSError) as e:
            logger.warning("Advisory call failed: %s", e)
            return Fallback(FallbackReason.TRANSPORT_ERROR, str(e))
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning("Advisory call was cancelled")
            return Fallback(FallbackReason.CANCELLED, "advisory call cancelled")

        outcome = parse_advisory_response(raw)
        if isinstance(outcome, Fallback):
            logger.warning("Failed to parse advisory response: %s %s", outcome.reason.value, outcome.detail)
        return outcome

    async def recommend(
        self,
        whale: WhaleStats,
        trade: TradeDetails,
        user: UserContext,
        market: MarketConditions,
    ) -> Recommendation:
        outcome = await self.evaluate(whale, trade, user, market)
        return outcome.recommendation
