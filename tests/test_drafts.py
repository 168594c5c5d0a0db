"""
Draft generation tests - the external endpoint is replaced by an
``httpx.MockTransport`` so request shape, reply parsing and failure
handling can be checked without network access.
"""
import json

import httpx
import pytest
from httpx import AsyncClient

from blogapi.config import Settings
from blogapi.exceptions import ConfigurationError, UpstreamError
from blogapi.main import app
from blogapi.services.draft_service import (
    DraftGenerator,
    build_prompt,
    extract_message_text,
    get_draft_generator,
    parse_draft,
)

API_URL = "https://llm.example.com/api/v3/chat/completions"

DRAFT_JSON = json.dumps({"summary": " A short summary. ", "content": "Intro\n\nBody\n\nEnd"})


def _settings(**overrides) -> Settings:
    values = {"AI_API_URL": API_URL, "AI_API_KEY": "test-key", "AI_MODEL": "test-model"}
    values.update(overrides)
    return Settings(**values)


def _generator(handler, **overrides) -> DraftGenerator:
    return DraftGenerator(_settings(**overrides), transport=httpx.MockTransport(handler))


def _reply(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


# ---------------------------------------------------------------------------
# Prompt and parsing helpers
# ---------------------------------------------------------------------------

def test_build_prompt_embeds_title_and_keywords():
    prompt = build_prompt("  Caching 101 ", " redis, etag ")
    assert "Title: Caching 101\n" in prompt
    assert "Keywords: redis, etag\n" in prompt
    assert '"summary"' in prompt and '"content"' in prompt


def test_build_prompt_without_keywords():
    assert "Keywords: (no specific keywords)" in build_prompt("Caching 101")


def test_extract_message_text_shapes():
    assert extract_message_text(_reply("first")) == "first"
    assert extract_message_text({"output": {"choices": [{"message": {"content": "second"}}]}}) == "second"
    assert extract_message_text({"choices": [{"message": {}}]}) == ""


def test_extract_message_text_falls_back_to_whole_reply():
    reply = {"error": {"code": "quota"}}
    assert json.loads(extract_message_text(reply)) == reply
    assert extract_message_text([1, 2]) == "[1, 2]"


def test_extract_message_text_structured_content_falls_back():
    reply = _reply("unused")
    reply["choices"][0]["message"]["content"] = [{"type": "text", "text": DRAFT_JSON}]
    assert json.loads(extract_message_text(reply)) == reply


def test_parse_draft_json():
    draft = parse_draft(DRAFT_JSON)
    assert draft.summary == "A short summary."
    assert draft.content == "Intro\n\nBody\n\nEnd"
    assert draft.raw == DRAFT_JSON


def test_parse_draft_code_fence():
    draft = parse_draft(f"```json\n{DRAFT_JSON}\n```")
    assert draft.summary == "A short summary."


def test_parse_draft_plain_text_becomes_content():
    draft = parse_draft("  Just prose, no JSON.  ")
    assert draft.summary == ""
    assert draft.content == "Just prose, no JSON."


# ---------------------------------------------------------------------------
# DraftGenerator
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_sends_single_user_message():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_reply(DRAFT_JSON))

    draft = await _generator(handler).generate("Caching 101", "redis")

    assert draft.summary == "A short summary."
    assert draft.content == "Intro\n\nBody\n\nEnd"
    request = seen[0]
    assert str(request.url) == API_URL
    assert request.headers["authorization"] == "Bearer test-key"
    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert len(body["messages"]) == 1
    assert body["messages"][0]["role"] == "user"
    assert "Caching 101" in body["messages"][0]["content"]


@pytest.mark.asyncio
async def test_generate_wrapped_output_shape():
    def handler(request):
        return httpx.Response(200, json={"output": {"choices": [{"message": {"content": DRAFT_JSON}}]}})

    draft = await _generator(handler).generate("T")
    assert draft.content == "Intro\n\nBody\n\nEnd"


@pytest.mark.asyncio
async def test_generate_non_json_message_text():
    def handler(request):
        return httpx.Response(200, json=_reply("Here is your article: ..."))

    draft = await _generator(handler).generate("T")
    assert draft.summary == ""
    assert draft.content == "Here is your article: ..."


@pytest.mark.asyncio
async def test_generate_structured_content_does_not_crash():
    reply = {"choices": [{"message": {"content": [{"type": "text", "text": "Hello"}]}}]}

    def handler(request):
        return httpx.Response(200, json=reply)

    draft = await _generator(handler).generate("T")
    assert (draft.summary, draft.content) == ("", "")
    assert json.loads(draft.raw) == reply


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [{"AI_API_URL": None}, {"AI_API_KEY": None}, {"AI_API_KEY": ""}])
async def test_missing_configuration_fails_before_any_request(overrides):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=_reply(DRAFT_JSON))

    with pytest.raises(ConfigurationError):
        await _generator(handler, **overrides).generate("T")
    assert calls == []


@pytest.mark.asyncio
async def test_transport_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError) as excinfo:
        await _generator(handler).generate("T")
    assert "connection refused" in excinfo.value.error


@pytest.mark.asyncio
async def test_error_status_is_upstream_error():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(UpstreamError):
        await _generator(handler).generate("T")


@pytest.mark.asyncio
async def test_non_json_body_is_upstream_error():
    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(UpstreamError) as excinfo:
        await _generator(handler).generate("T")
    assert "<html>oops</html>" in excinfo.value.error


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@pytest.fixture
def override_generator():
    def install(generator: DraftGenerator):
        app.dependency_overrides[get_draft_generator] = lambda: generator

    yield install
    app.dependency_overrides.pop(get_draft_generator, None)


@pytest.mark.asyncio
async def test_ai_generate_endpoint(async_client: AsyncClient, user_headers: dict, override_generator):
    override_generator(_generator(lambda request: httpx.Response(200, json=_reply(DRAFT_JSON))))

    resp = await async_client.post(
        "/api/posts/ai-generate",
        json={"title": "Caching 101", "keywords": "redis"},
        headers=user_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {"summary": "A short summary.", "content": "Intro\n\nBody\n\nEnd"}


@pytest.mark.asyncio
async def test_ai_generate_requires_login(async_client: AsyncClient):
    resp = await async_client.post("/api/posts/ai-generate", json={"title": "T"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_ai_generate_requires_title(async_client: AsyncClient, user_headers: dict):
    resp = await async_client.post("/api/posts/ai-generate", json={"title": "   "}, headers=user_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_ai_generate_unconfigured(async_client: AsyncClient, user_headers: dict, override_generator):
    override_generator(DraftGenerator(_settings(AI_API_URL=None)))
    resp = await async_client.post("/api/posts/ai-generate", json={"title": "T"}, headers=user_headers)
    assert resp.status_code == 500
    assert "not configured" in resp.json()["message"]


@pytest.mark.asyncio
async def test_ai_generate_upstream_failure(async_client: AsyncClient, user_headers: dict, override_generator):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    override_generator(_generator(handler))
    resp = await async_client.post("/api/posts/ai-generate", json={"title": "T"}, headers=user_headers)
    assert resp.status_code == 500
    body = resp.json()
    assert body["message"] == "draft generation failed"
    assert "connection refused" in body["error"]
