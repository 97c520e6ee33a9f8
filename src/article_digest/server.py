"""FastAPI service exposing extraction, text tasks and illustrations."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, NoReturn

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from . import service
from .config import configure_logging
from .errors import (
    AccountError,
    ConfigurationError,
    ContentError,
    ProvidersUnavailableError,
    RateLimitError,
    TransportError,
    UpstreamStatusError,
)
from .tasks import ILLUSTRATION_PROMPT, get_task

logger = logging.getLogger(__name__)

BODY_REQUIRED = "Текст статьи обязателен."
URL_REQUIRED = "Укажите URL статьи."
FETCH_FAILED = "Не удалось загрузить страницу статьи."
IMAGE_FAILED = "Не удалось сгенерировать изображение. Все модели недоступны."
ACCOUNT_REJECTED = (
    "Провайдер изображений отклонил запрос: проверьте API-ключ и тарифный план."
)
UNEXPECTED = "Внутренняя ошибка сервиса. Попробуйте позже."


def rate_limit_message(retry_after: int) -> str:
    return f"Превышен лимит запросов. Попробуйте позже через {retry_after} секунд."


def warmup_message(retry_after: int) -> str:
    return f"Модель загружается. Подождите примерно {retry_after} секунд и попробуйте снова."


def configuration_message(setting: str) -> str:
    return f"Сервис не настроен: не задана переменная окружения {setting}."


app = FastAPI(title="Article Digest")


def _add_cors(app: FastAPI) -> None:
    """Allow the browser front-end to call the API during local development."""
    allow_all = os.getenv("CORS_ALLOW_ALL", "true").lower() == "true"
    origins_env = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [o.strip() for o in origins_env.split(",") if o.strip()]
    allow_credentials = (
        os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    )
    if allow_all or not origins:
        origins = ["*"]
    if origins == ["*"] and allow_credentials:
        # Starlette/FastAPI disallow wildcard origins when credentials are enabled.
        allow_credentials = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )


_add_cors(app)


def _raise_http(exc: Exception, failure_message: str) -> NoReturn:
    """Translate a pipeline failure into a localized HTTP error."""
    if isinstance(exc, RateLimitError):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=rate_limit_message(exc.retry_after),
            headers={"Retry-After": str(exc.retry_after)},
        ) from exc
    if isinstance(exc, ProvidersUnavailableError):
        logger.warning("%s", exc)
        if exc.retry_after is not None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=warmup_message(exc.retry_after),
                headers={"Retry-After": str(exc.retry_after)},
            ) from exc
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=failure_message
        ) from exc
    if isinstance(exc, ConfigurationError):
        logger.error("%s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=configuration_message(exc.setting),
        ) from exc
    if isinstance(exc, AccountError):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=ACCOUNT_REJECTED
        ) from exc
    if isinstance(exc, ContentError):
        logger.warning("%s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=failure_message
        ) from exc
    logger.exception("Unexpected failure")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=UNEXPECTED
    ) from exc


def _required_text(payload: Dict[str, Any], key: str, message: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
    return value


def _optional_text(payload: Dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/extract")
async def extract_article(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fetch the page and return ``{title, publishedAt, body}`` with nulls for gaps."""
    url = _required_text(payload, "url", URL_REQUIRED).strip()
    try:
        document = await service.extract_article(url)
    except UpstreamStatusError as exc:
        logger.warning("Fetching %s failed: %s", url, exc)
        raise HTTPException(
            status_code=exc.status_code,
            detail=f"{FETCH_FAILED} (HTTP {exc.status_code})",
        ) from exc
    except TransportError as exc:
        logger.warning("Fetching %s failed: %s", url, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=FETCH_FAILED
        ) from exc
    return document.to_payload()


@app.post("/generate/{kind}")
async def generate(kind: str, payload: Dict[str, Any]) -> Dict[str, str]:
    """
    Run one text task (translate, summarize, thesis, social-post/telegram).

    Accepts `body` (or legacy `content`); social posts also merge optional
    `title`, `publishedAt` and `sourceUrl` into the prompt.
    """
    try:
        task = get_task(kind)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown task: {kind}"
        ) from exc

    if "body" not in payload and "content" in payload:
        payload = {**payload, "body": payload["content"]}
    body = _required_text(payload, "body", BODY_REQUIRED)
    context = {
        "title": _optional_text(payload, "title"),
        "published_at": _optional_text(payload, "publishedAt", "date"),
        "source_url": _optional_text(payload, "sourceUrl", "url"),
    }
    try:
        text = await service.generate_text(task, body, context)
    except Exception as exc:
        _raise_http(exc, task.failure_message)
    return {task.field_name: text}


@app.post("/illustration")
async def illustration(payload: Dict[str, Any]) -> Dict[str, str]:
    """Author a prompt from the article and render it; returns ``{image, prompt}``."""
    if "body" not in payload and "content" in payload:
        payload = {**payload, "body": payload["content"]}
    body = _required_text(payload, "body", BODY_REQUIRED)
    try:
        result = await service.create_illustration(body)
    except ProvidersUnavailableError as exc:
        message = (
            ILLUSTRATION_PROMPT.failure_message
            if exc.task == ILLUSTRATION_PROMPT.kind
            else IMAGE_FAILED
        )
        _raise_http(exc, message)
    except Exception as exc:
        _raise_http(exc, IMAGE_FAILED)
    return {"image": result.image, "prompt": result.prompt}


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(
        "article_digest.server:app",
        host=os.getenv("DIGEST_HOST", "0.0.0.0"),
        port=int(os.getenv("DIGEST_PORT", "8000")),
        reload=os.getenv("DIGEST_RELOAD", "false").lower() == "true",
    )
