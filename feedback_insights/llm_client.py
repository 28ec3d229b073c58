"""Inference service client and response parsing helpers."""
import asyncio
import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """The inference service could not be reached or failed to answer."""


# Ordered list of places a completion's text may live, depending on the
# provider and client version. "*" fans out over a list and joins the
# non-empty matches with newlines; integers index into lists.
RESPONSE_TEXT_PATHS = (
    (("choices", 0, "message", "content"), "chat completion message"),
    (("choices", 0, "text"), "legacy completion text"),
    (("result", "response"), "wrapped response"),
    (("result", "output_text"), "wrapped output_text"),
    (("result", "text"), "wrapped text"),
    (("result", "outputs", "*", "text"), "wrapped list of outputs"),
    (("response",), "response"),
    (("output_text",), "output_text"),
    (("text",), "text"),
    (("result",), "plain result"),
    (("output",), "output"),
    (("content",), "content"),
    (("messages", -1, "content"), "last chat message"),
)


def _resolve(payload: Any, path: tuple) -> Optional[str]:
    current = payload
    for position, key in enumerate(path):
        if key == "*":
            if not isinstance(current, list):
                return None
            rest = path[position + 1:]
            parts = [_resolve(item, rest) for item in current]
            joined = "\n".join(part for part in parts if part)
            return joined or None
        if isinstance(key, int):
            if not isinstance(current, list) or not current:
                return None
            try:
                current = current[key]
            except IndexError:
                return None
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
    if isinstance(current, str) and current.strip():
        return current
    return None


def pick_response_text(response: Any) -> Optional[str]:
    """Return the first non-empty text found in a completion response.

    Args:
        response: A plain string, or a dict in one of the shapes listed in
            RESPONSE_TEXT_PATHS

    Returns:
        The text, or None when no known shape matches
    """
    if response is None:
        return None
    if isinstance(response, str):
        return response if response.strip() else None
    if hasattr(response, "model_dump"):
        response = response.model_dump()

    for path, description in RESPONSE_TEXT_PATHS:
        text = _resolve(response, path)
        if text is not None:
            logger.debug(f"Response text found under {description}")
            return text
    return None


def extract_json_object(text: str) -> Optional[dict]:
    """Find and parse the first balanced {...} JSON object in free text.

    Commentary before or after the object is ignored. Candidates that fail to
    parse or never close are skipped in favour of the next opening brace.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escape_next = False
        end = -1

        for i in range(start, len(text)):
            char = text[i]
            if escape_next:
                escape_next = False
                continue
            if char == "\\" and in_string:
                escape_next = True
                continue
            if char == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break

        if end == -1:
            start = text.find("{", start + 1)
            continue

        try:
            parsed = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed

        start = text.find("{", start + 1)

    return None


class InferenceClient:
    """Wrapper around the OpenAI chat API with timeout and optional retries.

    A single attempt is made by default. With max_retries > 1 failed attempts
    are retried after 1s, 2s, 4s, ...
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = 10,
        max_retries: int = 1,
        client: Optional[AsyncOpenAI] = None
    ):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.timeout = timeout_seconds
        self.max_retries = max(1, max_retries)

    @classmethod
    def from_config(cls, settings) -> Optional["InferenceClient"]:
        """Build a client, or return None when inference is not configured."""
        if not settings.inference_configured:
            return None
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=settings.AI_MODEL,
            timeout_seconds=settings.AI_TIMEOUT_SECONDS,
            max_retries=settings.AI_MAX_RETRIES
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 400,
        temperature: float = 0.2
    ) -> Any:
        """Run one completion and return the raw response as a dict.

        Raises:
            InferenceError: On timeout or any provider/transport failure
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        last_error: Optional[InferenceError] = None
        for attempt in range(self.max_retries):
            try:
                async with asyncio.timeout(self.timeout):
                    response = await self.client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        temperature=temperature,
                        max_tokens=max_tokens
                    )
                return response.model_dump() if hasattr(response, "model_dump") else response

            except asyncio.TimeoutError as e:
                last_error = InferenceError(f"AI provider timeout after {self.timeout}s")
                last_error.__cause__ = e
            except Exception as e:
                last_error = InferenceError(f"AI provider error: {str(e)}")
                last_error.__cause__ = e

            if attempt < self.max_retries - 1:
                logger.warning(f"{last_error}; retrying (attempt {attempt + 2}/{self.max_retries})")
                await asyncio.sleep(2 ** attempt)

        raise last_error
