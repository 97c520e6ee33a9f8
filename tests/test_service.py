import base64
import json

import httpx
import pytest

from article_digest.config import Settings
from article_digest.errors import (
    ConfigurationError,
    ContentError,
    ProvidersUnavailableError,
    TransportError,
    UpstreamStatusError,
)
from article_digest.fetcher import Fetcher, build_http_client
from article_digest.service import create_illustration, extract_article, generate_text

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
ARTICLE_HTML = """
<html><head><title>Site</title>
<meta property="og:title" content="Real Title"></head>
<body><article><h1>Short</h1><p>""" + "word " * 30 + """</p></article></body></html>
"""


def make_settings(**overrides) -> Settings:
    values = {
        "openrouter_api_key": "or-key",
        "huggingface_api_key": "hf-key",
        "image_endpoint_templates": ["https://hf.test/models/{model}"],
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def completion(content: str) -> dict:
    return {
        "id": "cmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "m",
        "choices": [
            {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}
        ],
    }


class RecordingTransport(httpx.MockTransport):
    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)


@pytest.mark.asyncio
async def test_extract_article_fetches_with_browser_identity():
    transport = RecordingTransport(lambda request: httpx.Response(200, html=ARTICLE_HTML))
    settings = make_settings()

    doc = await extract_article("https://news.test/story", settings=settings, transport=transport)

    assert doc.title == "Real Title"
    assert doc.body == " ".join(["word"] * 30)
    assert transport.requests[0].headers["user-agent"] == settings.user_agent


@pytest.mark.asyncio
async def test_extract_article_surfaces_upstream_status():
    transport = RecordingTransport(lambda request: httpx.Response(404, text="missing"))

    with pytest.raises(UpstreamStatusError) as excinfo:
        await extract_article("https://news.test/gone", settings=make_settings(), transport=transport)

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_fetcher_maps_connection_errors_to_transport_error():
    def handler(request):
        raise httpx.ConnectError("dns failure", request=request)

    async with build_http_client(make_settings(), httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError):
            await Fetcher(client).fetch_text("https://unreachable.test/")


@pytest.mark.asyncio
async def test_generate_text_rejects_empty_body_before_network():
    transport = RecordingTransport(lambda request: httpx.Response(500))

    with pytest.raises(ContentError):
        await generate_text("summarize", "   ", settings=make_settings(), transport=transport)

    assert transport.requests == []


@pytest.mark.asyncio
async def test_generate_text_requires_credentials_before_network():
    transport = RecordingTransport(lambda request: httpx.Response(500))

    with pytest.raises(ConfigurationError):
        await generate_text(
            "thesis", "body", settings=make_settings(openrouter_api_key=None), transport=transport
        )

    assert transport.requests == []


@pytest.mark.asyncio
async def test_generate_text_uses_openrouter_endpoint():
    transport = RecordingTransport(lambda request: httpx.Response(200, json=completion("Перевод")))

    text = await generate_text("translate", "Hello", settings=make_settings(), transport=transport)

    assert text == "Перевод"
    request = transport.requests[0]
    assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer or-key"
    assert json.loads(request.content)["model"] == "deepseek/deepseek-r1:free"


@pytest.mark.asyncio
async def test_generate_text_all_failing_is_aggregate_failure():
    transport = RecordingTransport(lambda request: httpx.Response(500, json={"error": {"message": "x"}}))

    with pytest.raises(ProvidersUnavailableError):
        await generate_text("summarize", "body", settings=make_settings(), transport=transport)

    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_illustration_checks_both_credentials_first():
    transport = RecordingTransport(lambda request: httpx.Response(500))

    with pytest.raises(ConfigurationError):
        await create_illustration(
            "body", settings=make_settings(huggingface_api_key=None), transport=transport
        )

    assert transport.requests == []


@pytest.mark.asyncio
async def test_illustration_composes_prompt_and_image():
    def handler(request):
        if request.url.host == "openrouter.ai":
            return httpx.Response(200, json=completion("A lighthouse in a storm"))
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)

    transport = RecordingTransport(handler)

    result = await create_illustration("Article body", settings=make_settings(), transport=transport)

    assert result.prompt == "A lighthouse in a storm"
    assert result.image == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    image_request = transport.requests[1]
    assert str(image_request.url) == "https://hf.test/models/stabilityai/sdxl"
    assert image_request.headers["authorization"] == "Bearer hf-key"
    assert json.loads(image_request.content) == {"inputs": "A lighthouse in a storm"}
