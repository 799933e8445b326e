"""PydanticAI model and agent factory.

Both LLM consumers (sentiment and trend inference) want a plain-text reply
they parse themselves, so they share one agent shape: ``str`` output, a
system prompt, and low-temperature settings from configuration.
"""

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from trendline.config import Settings, get_settings
from trendline.core.logging import get_logger

logger = get_logger(__name__)


def create_model(settings: Settings | None = None) -> str | Model:
    """Resolve the configured provider into a PydanticAI model.

    Anthropic models are passed by name (``anthropic:<model>``); anything
    else goes through the OpenAI-compatible provider, optionally pointed at
    ``openai_base_url``.
    """
    settings = settings or get_settings()

    if settings.llm_provider == "anthropic":
        return f"anthropic:{settings.llm_model}"

    api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
    provider = OpenAIProvider(base_url=settings.openai_base_url, api_key=api_key)
    logger.debug(
        "Using OpenAI-compatible model",
        model=settings.llm_model,
        base_url=settings.openai_base_url or "default",
    )
    return OpenAIChatModel(settings.llm_model, provider=provider)


def create_text_agent(system_prompt: str, settings: Settings | None = None) -> Agent[None, str]:
    settings = settings or get_settings()
    return Agent(
        create_model(settings),
        output_type=str,
        system_prompt=system_prompt,
        model_settings=ModelSettings(
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout_seconds,
        ),
    )
