"""Generation tasks: prompt templates bound to ordered model candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Tuple

PromptBuilder = Callable[[str, Mapping[str, Any]], str]

REASONING_MODELS = (
    "deepseek/deepseek-r1:free",
    "deepseek/deepseek-chat:free",
)
WRITING_MODELS = REASONING_MODELS + ("Xiaomi/MiMo-V2-Flash:free",)
PROMPT_AUTHOR_MODELS = ("nvidia/nemotron-3-nano-30b-a3b:free",)
IMAGE_MODELS = (
    "stabilityai/sdxl",
    "stabilityai/stable-diffusion-xl-base-1.0",
    "stabilityai/stable-diffusion-2-1",
    "runwayml/stable-diffusion-v1-5",
    "CompVis/stable-diffusion-v1-4",
)


@dataclass(frozen=True)
class GenerationTask:
    kind: str
    field_name: str
    prompt_builder: PromptBuilder
    candidates: Tuple[str, ...]
    failure_message: str

    def build_prompt(self, body: str, context: Mapping[str, Any] | None = None) -> str:
        return self.prompt_builder(body, context or {})


def _instruction_prompt(instruction: str) -> PromptBuilder:
    def build(body: str, context: Mapping[str, Any]) -> str:
        return f"{instruction}:\n\n{body}"

    return build


def build_social_post_prompt(body: str, context: Mapping[str, Any]) -> str:
    """Telegram post prompt; title, date and source link are optional extras."""
    parts = [
        "Создай пост для Telegram на русском языке на основе этой статьи. "
        "Пост должен быть кратким, информативным и привлекательным. "
        "Используй эмодзи для оформления. Включи основные идеи и призыв к действию. "
        "В конце поста обязательно добавь ссылку на источник статьи."
    ]
    if context.get("title"):
        parts.append(f"Заголовок статьи: {context['title']}")
    if context.get("published_at"):
        parts.append(f"Дата публикации: {context['published_at']}")
    parts.append(f"Содержание статьи:\n{body}")
    if context.get("source_url"):
        parts.append(f"Ссылка на источник: {context['source_url']}")
    return "\n\n".join(parts)


TRANSLATE = GenerationTask(
    kind="translate",
    field_name="translation",
    prompt_builder=_instruction_prompt(
        "Переведи следующую статью на русский язык. "
        "Сохрани структуру и форматирование текста"
    ),
    candidates=REASONING_MODELS,
    failure_message="Не удалось перевести статью. Все модели недоступны. Попробуйте позже.",
)

SUMMARIZE = GenerationTask(
    kind="summarize",
    field_name="summary",
    prompt_builder=_instruction_prompt(
        "Опиши кратко, о чем эта статья на русском языке. "
        "Ответ должен быть кратким и информативным"
    ),
    candidates=WRITING_MODELS,
    failure_message=(
        "Не удалось создать краткое описание. Все модели недоступны. Попробуйте позже."
    ),
)

THESIS = GenerationTask(
    kind="thesis",
    field_name="thesis",
    prompt_builder=_instruction_prompt(
        "Создай тезисы этой статьи на русском языке. "
        "Выдели основные пункты и идеи в виде структурированного списка"
    ),
    candidates=WRITING_MODELS,
    failure_message="Не удалось создать тезисы. Все модели недоступны. Попробуйте позже.",
)

SOCIAL_POST = GenerationTask(
    kind="social-post",
    field_name="post",
    prompt_builder=build_social_post_prompt,
    candidates=WRITING_MODELS,
    failure_message=(
        "Не удалось создать пост для Telegram. Все модели недоступны. Попробуйте позже."
    ),
)

ILLUSTRATION_PROMPT = GenerationTask(
    kind="illustration-prompt",
    field_name="prompt",
    prompt_builder=_instruction_prompt(
        "Создай детальный промпт на английском языке для генерации изображения, "
        "которое иллюстрирует эту статью. Промпт должен быть конкретным, описательным "
        "и подходящим для генерации изображения через Stable Diffusion. "
        "Ответ должен содержать только промпт, без дополнительных объяснений"
    ),
    candidates=PROMPT_AUTHOR_MODELS,
    failure_message="Не удалось создать промпт. Все модели недоступны. Попробуйте позже.",
)

TEXT_TASKS: Dict[str, GenerationTask] = {
    task.kind: task for task in (TRANSLATE, SUMMARIZE, THESIS, SOCIAL_POST)
}
TASK_ALIASES = {"telegram": "social-post", "summary": "summarize"}


def get_task(kind: str) -> GenerationTask:
    """Look up a text task by kind or alias; raise KeyError when unknown."""
    normalized = kind.strip().lower()
    normalized = TASK_ALIASES.get(normalized, normalized)
    return TEXT_TASKS[normalized]
