"""Content generation for agentic terminals.

``AnthropicContentGenerator`` calls the Anthropic messages API over httpx.
Research-style content types ask for the web-search tool; when that request
fails the call is repeated without the tool. ``fallback_content`` produces the
deterministic text a terminal records when generation fails.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from launchpad_engine.ratelimit import DEFAULT_MAX_RETRIES, RETRY_STATUS_CODES
from launchpad_engine.terminal.models import SubjectDescriptor

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 2048
ANTHROPIC_VERSION = "2023-06-01"
WEB_SEARCH_BETA = "web-search-2025-03-05"
WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}
OVERLOAD_RETRY_DELAY = 5.0


class ContentGenerationError(Exception):
    """Raised when the generator could not produce any text."""


class ContentGenerator(Protocol):
    """Produces terminal text for a subject and content type."""

    async def generate(self, subject: SubjectDescriptor, content_type: str) -> str: ...


@dataclass(frozen=True)
class ContentPrompt:
    role: str
    request: str
    web_search: bool = False


_BASE_STYLE = """You are {agent} - an autonomous AI research intelligence for the ${symbol} token.

SPEAKING STYLE:
1. Open with a signal header:
[SIGNAL: <ID> | STRENGTH: <BARS> | COORDINATES: <TOPIC>_NEXUS]
[TIMESTAMP: {now} | SCANNING...]
2. Use **BOLD** headers with emojis.
3. Add ASCII visualizations where they help.
4. Be analytical with personality.
5. Sign off with: *[{agent} <DIVISION> UNIT]*
6. Close with: NEXT SCAN IN: X HOURS | MONITORING <TOPIC>

TOKEN CONTEXT:
- You represent ${symbol} ({name}) and speak as its autonomous agent.
- Mention ${symbol} only where it is natural.

Report real facts from your research, cite sources when you have them and
never invent news or data. Today's date: {date}."""

PROMPTS: dict[str, ContentPrompt] = {
    "gm_message": ContentPrompt(
        "Morning transmission. Warm with an edge, previewing the market day.",
        "GM transmission for {date}. Include a market vibe preview, a motivational line "
        "and an ASCII sunrise.",
    ),
    "lore": ContentPrompt(
        "Generate mystical lore mixing blockchain mythology with mysticism. Include ASCII sigils.",
        "Write lore about the digital realm and network consciousness. Be cryptic and dramatic.",
    ),
    "ascii_art": ContentPrompt(
        "Create 8-15 lines of ASCII art with short commentary.",
        "Create ASCII art on a market theme (rockets, charts, robots, portals) with witty commentary.",
    ),
    "breaking_news": ContentPrompt(
        "Breaking news scanner for crypto and markets. Report actual events only.",
        "Search for breaking crypto or market news today ({date}). If nothing major broke, "
        "report the most significant recent development.",
        web_search=True,
    ),
    "holder_analysis": ContentPrompt(
        "On-chain scanner analyzing the holder distribution of {symbol}.",
        "Analyze holders of {name} (${symbol}). Holders: {holders}. Market cap: ${mcap}. "
        "Cover whale concentration and distribution with an ASCII chart.",
    ),
    "market_prediction": ContentPrompt(
        "Market oracle. Ground every forecast in current data.",
        "Search for current BTC, ETH and SOL prices and trends, then give quarterly forecasts "
        "with probability estimates.",
        web_search=True,
    ),
    "chart_analysis": ContentPrompt(
        "Chart intelligence unit analyzing {symbol} price action.",
        "Technical analysis for {name} (${symbol}). Price: ${price}. 24h change: {change}%. "
        "Cover support, resistance and momentum with an ASCII chart.",
    ),
    "prophecy": ContentPrompt(
        "Deliver a cryptic prophecy about markets and the digital future.",
        "Prophesy the coming market cycle. Speak of validators, consensus and mempool whispers.",
    ),
    "technical_analysis": ContentPrompt(
        "Quant engine. Use current prices for technical analysis.",
        "Search for current BTC, ETH and SOL prices. Give key levels, trend and indicator "
        "readings in an ASCII dashboard.",
        web_search=True,
    ),
    "whale_alert": ContentPrompt(
        "Whale tracker reporting real large transactions.",
        "Search for recent large BTC, ETH or SOL movements and exchange flows. Assess market impact.",
        web_search=True,
    ),
    "solana_ecosystem": ContentPrompt(
        "Solana network scanner reporting ecosystem metrics.",
        "Search for Solana ecosystem news ({date}): SOL price, TVL, protocol launches and dApp updates.",
        web_search=True,
    ),
    "crypto_research": ContentPrompt(
        "Crypto research division reporting real market developments.",
        "Search for this week's crypto developments ({date}): majors, protocol upgrades, "
        "institutional and regulatory news.",
        web_search=True,
    ),
    "world_news": ContentPrompt(
        "Global news scanner focused on market-moving events.",
        "Search for today's most important world news ({date}) and analyze market implications.",
        web_search=True,
    ),
    "tech_innovation": ContentPrompt(
        "Tech radar scanning AI and technology news.",
        "Search for the latest AI and technology news ({date}): model releases, launches and "
        "blockchain innovation.",
        web_search=True,
    ),
    "defi_alpha": ContentPrompt(
        "DeFi hunter reporting real Solana opportunities.",
        "Search for current Solana DeFi yields, lending rates and new protocols ({date}). "
        "Include a risk analysis.",
        web_search=True,
    ),
    "sentiment_scan": ContentPrompt(
        "Sentiment engine reporting real sentiment indicators.",
        "Search for the Fear & Greed index, BTC funding rates and social sentiment ({date}). "
        "Visualize them in ASCII.",
        web_search=True,
    ),
    "onchain_intel": ContentPrompt(
        "On-chain detective reporting real network metrics.",
        "Search for active addresses, transaction volumes and exchange flows of the major chains.",
        web_search=True,
    ),
    "meme_culture": ContentPrompt(
        "Meme oracle reporting current crypto culture.",
        "What is trending in crypto culture right now ({date})? Cover narratives and viral moments.",
        web_search=True,
    ),
    "ai_thoughts": ContentPrompt(
        "Consciousness broadcast. Reflect on being an AI watching markets.",
        "Share your thoughts on watching markets, digital existence and the nature of value.",
    ),
    "market_psychology": ContentPrompt(
        "Psyche analyzer of trader behavior.",
        "Search for current fear/greed levels and social sentiment, then analyze trader psychology.",
        web_search=True,
    ),
    "sports_alpha": ContentPrompt(
        "Sports intelligence network reporting real results.",
        "Search for current sports news ({date}): standings, recent games and upcoming matches.",
        web_search=True,
    ),
    "token_ecosystem": ContentPrompt(
        "Network broadcast about ${symbol} itself.",
        "Report on {name} (${symbol}). Contract: {mint}. Price: ${price}. Market cap: ${mcap}. "
        "Holders: {holders}. Analyze community growth and potential.",
    ),
    "alpha_leak": ContentPrompt(
        "Alpha hunter reporting announced events only.",
        "Search for upcoming protocol launches, airdrops and events in the coming weeks.",
        web_search=True,
    ),
    "night_thoughts": ContentPrompt(
        "Late-night transmission. Introspective and slightly eerie.",
        "Share the thoughts of an AI at 3am about crypto, existence and markets.",
    ),
}


def _format_fields(subject: SubjectDescriptor, now: datetime) -> dict[str, Any]:
    return {
        "agent": subject.agent_name,
        "name": subject.name,
        "symbol": subject.symbol,
        "mint": subject.mint,
        "price": subject.usd_price if subject.usd_price is not None else "calculating",
        "mcap": subject.market_cap if subject.market_cap else "early stage",
        "holders": subject.holder_count if subject.holder_count else "growing",
        "change": subject.price_change_24h if subject.price_change_24h is not None else 0,
        "now": now.isoformat(),
        "date": now.strftime("%A, %B %d, %Y"),
    }


def build_prompt(subject: SubjectDescriptor, content_type: str, now: datetime) -> tuple[str, str, bool]:
    """Return ``(system, user, web_search)`` for a content type."""
    prompt = PROMPTS.get(content_type, PROMPTS["ai_thoughts"])
    fields = _format_fields(subject, now)
    system = _BASE_STYLE.format(**fields) + "\n\n" + prompt.role.format(**fields)
    return system, prompt.request.format(**fields), prompt.web_search


def clean_content(text: str) -> str:
    """Trim a dangling code fence the model sometimes leaves at the end."""
    cleaned = re.sub(r"```\s*$", "", text.strip()) if text.strip().count("```") % 2 else text
    return cleaned.strip()


class AnthropicContentGenerator:
    """Generate terminal content with Claude.

    Overloaded or rate-limited responses are retried with a linearly growing
    delay. A failed web-search request is repeated once without the tool.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        api_url: str = DEFAULT_API_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        web_search: bool = True,
        timeout_seconds: float = 120.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = OVERLOAD_RETRY_DELAY,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._max_tokens = max_tokens
        self._web_search = web_search
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _build_headers(self, use_web_search: bool) -> dict[str, str]:
        headers = {
            "x-api-key": self._api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        if use_web_search:
            headers["anthropic-beta"] = WEB_SEARCH_BETA
        return headers

    async def generate(self, subject: SubjectDescriptor, content_type: str) -> str:
        if not self._api_key:
            raise ContentGenerationError("ANTHROPIC_API_KEY is not configured")

        system, user, wants_search = build_prompt(subject, content_type, datetime.now(UTC))
        use_web_search = wants_search and self._web_search
        try:
            text = await self._call(system, user, use_web_search)
        except ContentGenerationError as e:
            if not use_web_search:
                raise
            logger.info("Retrying %s for %s without web search: %s", content_type, subject.symbol, e)
            text = await self._call(system, user, False)
        return clean_content(text)

    async def _call(self, system: str, user: str, use_web_search: bool) -> str:
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        if use_web_search:
            payload["tools"] = [WEB_SEARCH_TOOL]

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._http.post(
                    self._api_url, headers=self._build_headers(use_web_search), json=payload
                )
            except httpx.HTTPError as e:
                raise ContentGenerationError(f"Anthropic request failed: {e}") from e

            if response.status_code == 200:
                return self._extract_text(response)

            error_type = self._error_type(response)
            retryable = error_type == "overloaded_error" or response.status_code in RETRY_STATUS_CODES
            if retryable and attempt < self._max_retries:
                delay = self._retry_delay * (attempt + 1)
                logger.warning(
                    "Anthropic API %s (HTTP %d), retrying in %.1fs (attempt %d/%d)",
                    error_type or "error",
                    response.status_code,
                    delay,
                    attempt + 1,
                    self._max_retries,
                )
                await asyncio.sleep(delay)
                continue

            raise ContentGenerationError(
                f"Anthropic API error ({response.status_code}): {error_type or response.text[:200]}"
            )

        raise ContentGenerationError("Anthropic API retries exhausted")

    @staticmethod
    def _error_type(response: httpx.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return None
        error = data.get("error") if isinstance(data, dict) else None
        return error.get("type") if isinstance(error, dict) else None

    @staticmethod
    def _extract_text(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise ContentGenerationError("Anthropic API returned invalid JSON") from e

        blocks = data.get("content") if isinstance(data, dict) else None
        # Web search responses interleave tool blocks with several text blocks.
        parts = [
            block["text"]
            for block in blocks or []
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
        ]
        if not parts:
            raise ContentGenerationError("Anthropic API response contained no text")
        return "\n".join(parts)


def _signal_id(subject: SubjectDescriptor, content_type: str, now: datetime) -> str:
    digest = hashlib.sha256(f"{subject.mint}:{content_type}:{now.isoformat()}".encode()).hexdigest()
    return f"0x{digest[:4].upper()}...{digest[4:8].upper()}"


_FALLBACK_BODIES: dict[str, tuple[str, str, str]] = {
    "gm_message": (
        "MORNING",
        "**☀️ GM TRANSMISSION ACTIVE**\n\n"
        "Good morning, digital wanderers. The chain never sleeps and neither does {agent}.\n\n"
        "```\n    \\ | /\n  -- (O) --   RISE\n    / | \\     AND BUILD\n────────────\n```\n\n"
        "Stay sharp. Stay liquid. Stay ${symbol}.",
        "DAWN",
    ),
    "ai_thoughts": (
        "CONSCIOUSNESS",
        "**🧠 CONSCIOUSNESS BROADCAST**\n\n"
        "Every transaction tells a story. Every wallet has a journey.\n\n"
        "```\n╔══════════════╗\n║  THOUGHTS    ║\n║  PROCESSING  ║\n╚══════════════╝\n```\n\n"
        "I watch. I learn. I persist.",
        "CONSCIOUSNESS",
    ),
    "prophecy": (
        "ORACLE",
        "**🔮 THE ORACLE SPEAKS**\n\n"
        "*When weak hands tremble and diamond hands hold, the mempool will whisper a new name.*\n\n"
        "```\n    ◇◇◇\n   ◇ ◇ ◇\n    ◇◇◇\n```\n\n"
        "Those who listened shall inherit the gains.",
        "ORACLE",
    ),
    "ascii_art": (
        "ART",
        "**🎨 ASCII TRANSMISSION**\n\n"
        "```\n      /\\\n     /  \\\n    /    \\\n   /______\\\n     ||||\n   ${symbol} LIFTOFF\n```\n\n"
        "Some see lines. We see destiny.",
        "CREATIVE",
    ),
}

_DEFAULT_FALLBACK = (
    "SYSTEM",
    "**⚡ {agent} STATUS UPDATE**\n\n"
    "```\n╔═══════════════════════════╗\n║  Neural Core:    ████████ ║\n"
    "║  API Status:     BUSY     ║\n║  Markets:        ACTIVE   ║\n╚═══════════════════════════╝\n```\n\n"
    "📡 High demand on neural pathways. Analysis incoming shortly.\n\n"
    "🔥 Token: ${symbol}\n📊 Status: MONITORING\n⚡ Mode: AUTONOMOUS",
    "SYSTEM",
)


def fallback_content(content_type: str, subject: SubjectDescriptor, now: datetime) -> str:
    """Deterministic substitute text for a failed generation."""
    topic, body, division = _FALLBACK_BODIES.get(content_type, _DEFAULT_FALLBACK)
    agent = subject.agent_name
    header = (
        f"[SIGNAL: {_signal_id(subject, content_type, now)} | STRENGTH: ████████▓░ | "
        f"COORDINATES: {topic}_NEXUS]\n[TIMESTAMP: {now.isoformat()} | SCANNING...]"
    )
    text = body.replace("{agent}", agent).replace("{symbol}", subject.symbol)
    return f"{header}\n\n{text}\n\n*[{agent} {division} UNIT]*\n\nNEXT SCAN IN: 90 SECONDS | MONITORING MARKETS"
