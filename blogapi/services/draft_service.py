"""
Draft service - asks an external chat-completion endpoint to draft an
article from a title and optional keywords.

The endpoint is treated as an opaque collaborator: one user message goes
out, and the reply is read defensively.  Known reply shapes are tried in
order by ``extract_message_text``; when none matches, the whole reply is
used as text.  The text is expected to be a JSON object with ``summary``
and ``content``; when it is not, it becomes the content as-is.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from blogapi.config import Settings, settings
from blogapi.exceptions import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """\
You are a blog writing assistant. Draft a blog article for the title and keywords below, \
and give a short summary.
Requirements:
- Aim the article at general readers and keep the style plain and easy to follow
- Structure: introduction, 2-3 sections, short conclusion
- Length: 600 to 1200 words
- Summary: 1-2 sentences
- Output strictly valid JSON and nothing else

Title: {title}
Keywords: {keywords}

Output JSON structure:
{{
  "summary": "the article summary",
  "content": "the article body, paragraphs separated by newlines"
}}"""

NO_KEYWORDS = "(no specific keywords)"

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class DraftResult:
    summary: str
    content: str
    raw: str


def build_prompt(title: str, keywords: str | None = None) -> str:
    return PROMPT_TEMPLATE.format(
        title=title.strip(),
        keywords=(keywords or "").strip() or NO_KEYWORDS,
    )


# ---------------------------------------------------------------------------
# Reply shape matchers
# ---------------------------------------------------------------------------

def _message_content(choices: Any) -> str | None:
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict) or not isinstance(first.get("message"), dict):
        return None
    content = first["message"].get("content")
    if content is None:
        return ""
    # Structured content (a list of parts) is left to the whole-reply fallback
    return content if isinstance(content, str) else None


def _chat_completion_shape(reply: dict) -> str | None:
    """``{"choices": [{"message": {"content": ...}}]}``"""
    return _message_content(reply.get("choices"))


def _wrapped_output_shape(reply: dict) -> str | None:
    """``{"output": {"choices": [{"message": {"content": ...}}]}}``"""
    output = reply.get("output")
    if not isinstance(output, dict):
        return None
    return _message_content(output.get("choices"))


SHAPE_MATCHERS: list[Callable[[dict], str | None]] = [
    _chat_completion_shape,
    _wrapped_output_shape,
]


def extract_message_text(reply: Any) -> str:
    """Return the model's message text, or the whole reply re-serialized."""
    if isinstance(reply, dict):
        for matcher in SHAPE_MATCHERS:
            text = matcher(reply)
            if text is not None:
                return text
    return json.dumps(reply, ensure_ascii=False)


def parse_draft(text: str) -> DraftResult:
    """
    Read ``{"summary", "content"}`` out of the model's text.

    A Markdown code fence around the JSON is tolerated.  Anything that is
    not a JSON object becomes the content with an empty summary.
    """
    stripped = text.strip()
    fenced = _CODE_FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        parsed = json.loads(stripped)
    except ValueError:
        parsed = None
    if not isinstance(parsed, dict):
        return DraftResult(summary="", content=text.strip(), raw=text)
    return DraftResult(
        summary=str(parsed.get("summary") or "").strip(),
        content=str(parsed.get("content") or "").strip(),
        raw=text,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DraftGenerator:
    """
    Thin client for the configured text-generation endpoint.

    *transport* lets tests plug in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings
        self._transport = transport

    def _check_configured(self) -> tuple[str, str]:
        url, key = self._config.AI_API_URL, self._config.AI_API_KEY
        if not url or not key:
            raise ConfigurationError("AI_API_URL or AI_API_KEY is not configured")
        return url, key

    async def _post(self, url: str, key: str, body: dict) -> dict:
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._config.AI_TIMEOUT
            ) as client:
                resp = await client.post(
                    url,
                    json=body,
                    headers={"Authorization": f"Bearer {key}"},
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Draft endpoint request failed: %s", exc)
            raise UpstreamError(error=str(exc)) from exc

        try:
            return resp.json()
        except ValueError as exc:
            logger.error("Draft endpoint returned non-JSON body: %.200s", resp.text)
            raise UpstreamError(error=f"unparseable upstream response: {resp.text[:200]}") from exc

    async def generate(self, title: str, keywords: str | None = None) -> DraftResult:
        """
        Draft an article for *title*.

        Raises ConfigurationError before any request when the endpoint URL
        or key is missing, and UpstreamError when the call fails or the
        reply is not JSON.
        """
        url, key = self._check_configured()
        body = {
            "model": self._config.AI_MODEL,
            "messages": [{"role": "user", "content": build_prompt(title, keywords)}],
        }
        reply = await self._post(url, key, body)
        logger.debug("Draft endpoint reply: %s", reply)
        return parse_draft(extract_message_text(reply))


draft_generator = DraftGenerator()


def get_draft_generator() -> DraftGenerator:
    """FastAPI dependency; tests override it with a mocked transport."""
    return draft_generator
