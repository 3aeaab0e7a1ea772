"""
OpenAI chat-completion access for the two model-backed collaborators:

  - ingestion/extractor.py   paper text → ExtractedPaper JSON
  - generation/predictor.py  pattern context → predictions JSON

Both ask for a JSON object, so call_gpt() has a json_mode switch and
extract_json() recovers the object from whatever text comes back.

Env: OPENAI_API_KEY, GPT_MODEL (default gpt-4o-mini), GPT_REQUEST_TIMEOUT,
GPT_MAX_RETRIES
"""

import json
import logging
import os
import re
from typing import Dict, List, Optional

from openai import AsyncOpenAI

log = logging.getLogger("generation.pipeline")

GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
GPT_REQUEST_TIMEOUT = float(os.getenv("GPT_REQUEST_TIMEOUT", "300"))
GPT_MAX_RETRIES = int(os.getenv("GPT_MAX_RETRIES", "0"))

DEFAULT_SYSTEM_PROMPT = "You are an academic exam assistant. Output only what is asked."

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\s*```$", re.MULTILINE)

_client: Optional[AsyncOpenAI] = None


def _get_client() -> AsyncOpenAI:
    """Created on first use so importing the app never needs an API key."""
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is not set. Add it to your .env file.")
        _client = AsyncOpenAI(
            api_key=api_key,
            timeout=GPT_REQUEST_TIMEOUT,
            max_retries=GPT_MAX_RETRIES,
        )
    return _client


def _messages(prompt: str, system: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]


async def call_gpt(
    prompt: str,
    system: str = DEFAULT_SYSTEM_PROMPT,
    temperature: float = 0.4,
    max_tokens: int = 4096,
    json_mode: bool = False,
) -> str:
    """
    Send one prompt and return the assistant text ("" when the model sent none).

    json_mode sets response_format=json_object; the prompt must still say JSON.
    """
    options = {"response_format": {"type": "json_object"}} if json_mode else {}
    response = await _get_client().chat.completions.create(
        model=GPT_MODEL,
        messages=_messages(prompt, system),
        temperature=temperature,
        max_tokens=max_tokens,
        **options,
    )

    choice = response.choices[0]
    usage = response.usage
    if usage is not None:
        log.info(
            "[GPT] model=%s prompt_tokens=%s completion_tokens=%s",
            GPT_MODEL, usage.prompt_tokens, usage.completion_tokens,
        )
    if choice.finish_reason == "length":
        # JSON cut off at max_tokens will not parse
        log.warning("[GPT] Response truncated at max_tokens=%s", max_tokens)
    return choice.message.content or ""


def extract_json(raw: str) -> dict:
    """
    Parse the outermost JSON object in a model response.

    Markdown fences and chatter around the object are ignored.
    Raises ValueError (json.JSONDecodeError included) when there is no object.
    """
    text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", (raw or "").strip()))
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise ValueError(f"No JSON object found in model response: {text[:200]}")
    return json.loads(text[start:end + 1])
