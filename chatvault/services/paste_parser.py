"""
Paste Parser

Turns pasted HTML or text from any chat client into structured turns using
an OpenAI chat completion with a JSON object response. Any failure (missing
key, HTTP error, refusal, empty or malformed output) yields None so the
caller can report a parse error.
"""

from typing import List, Optional
import json
import logging

import httpx

from chatvault.config import Settings
from chatvault.models.chat import Turn

logger = logging.getLogger(__name__)

TRUNCATION_NOTE = "\n\n[Content truncated for context limit.]"

PARSE_INSTRUCTIONS = """You are a parser. The user will paste HTML or text copied from an AI chat client.

Extract and copy the exact text of the conversation. Do not summarize, paraphrase or describe it.

Every user message together with the assistant reply that follows it is one turn. If the input holds several exchanges, output every one of them as a separate turn, in order.

For each turn:
- "prompt": the exact text of the user message, with HTML tags stripped
- "response": the exact text of the assistant reply, with HTML tags stripped

Keep markdown and line breaks. If there is only a single message or no distinguishable exchange, output one turn with the other field as an empty string.

Reply with a JSON object of the form {"turns": [{"prompt": "...", "response": "..."}]} and nothing else."""


class PasteParser:
    """LLM-backed parser for pasted chat transcripts"""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4.1-nano",
        base_url: str = "https://api.openai.com/v1",
        max_input_chars: int = 1_000_000,
        timeout_seconds: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_input_chars = max_input_chars
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasteParser":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.parse_model,
            base_url=settings.openai_base_url,
            max_input_chars=settings.max_paste_chars,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def parse(self, content: str) -> Optional[List[Turn]]:
        """
        Parse pasted content into turns.

        Returns:
            Non-empty list of turns, or None when parsing was not possible
        """
        if not self.api_key:
            logger.info("[PasteParser] OPENAI_API_KEY not set, skipping LLM parse")
            return None

        text = content
        if len(text) > self.max_input_chars:
            text = text[: self.max_input_chars] + TRUNCATION_NOTE
            logger.info(f"[PasteParser] Input truncated from {len(content)} to {self.max_input_chars} chars")

        try:
            response = await self._client.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "response_format": {"type": "json_object"},
                    "messages": [
                        {"role": "system", "content": PARSE_INSTRUCTIONS},
                        {"role": "user", "content": text},
                    ],
                },
            )
        except httpx.RequestError as exc:
            logger.warning(f"[PasteParser] Request failed: {exc}")
            return None

        if response.status_code >= 400:
            logger.warning(f"[PasteParser] Status {response.status_code}: {response.text[:200]}")
            return None

        try:
            message = response.json()["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("[PasteParser] Malformed completion response")
            return None

        if message.get("refusal"):
            logger.warning("[PasteParser] Model refused")
            return None

        return extract_turns(message.get("content"))


def extract_turns(raw: Optional[str]) -> Optional[List[Turn]]:
    """Pull valid {prompt, response} pairs out of the model's JSON reply."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("[PasteParser] Reply is not valid JSON")
        return None

    turns = parsed.get("turns") if isinstance(parsed, dict) else None
    if not isinstance(turns, list):
        return None

    valid: List[Turn] = [
        {"prompt": turn["prompt"], "response": turn["response"]}
        for turn in turns
        if isinstance(turn, dict)
        and isinstance(turn.get("prompt"), str)
        and isinstance(turn.get("response"), str)
    ]
    if not valid:
        logger.warning("[PasteParser] No valid turns in reply")
        return None

    logger.info(f"[PasteParser] Parsed {len(valid)} turns")
    return valid
