"""
LLM Client Abstraction
Single entry point for all AI calls in the cost dashboard.
Primary: Gemini 2.5 Flash (narrative reports, project assistant)
Fallback: Groq LLaMA 3.1 70B
"""
import logging
from typing import AsyncIterator
import litellm

from app import config

logger = logging.getLogger("locoman-api")

# Suppress litellm verbose logging
litellm.set_verbose = False


async def complete(
    messages: list,
    temperature: float = config.LLM_TEMPERATURE,
    max_tokens: int = config.LLM_MAX_TOKENS,
) -> str:
    """
    Call the primary LLM. Falls back to the secondary model on rate limit or error.
    Returns the response content string.
    """
    kwargs = {
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }

    try:
        response = await litellm.acompletion(model=config.LLM_PRIMARY_MODEL, **kwargs)
        return response.choices[0].message.content or ""
    except litellm.RateLimitError:
        logger.warning("Primary LLM rate limit hit — falling back")
    except litellm.AuthenticationError:
        logger.warning("Primary LLM auth error — falling back")
    except Exception as e:
        logger.warning(f"Primary LLM error ({type(e).__name__}: {e}) — falling back")

    try:
        response = await litellm.acompletion(model=config.LLM_FALLBACK_MODEL, **kwargs)
        return response.choices[0].message.content or ""
    except Exception as e:
        logger.error(f"Both LLMs failed. Fallback error: {e}")
        raise RuntimeError(f"All LLM providers failed. Last error: {e}")


async def _stream_model(model: str, messages: list, temperature: float, max_tokens: int) -> AsyncIterator[str]:
    response = await litellm.acompletion(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
        stream=True,
    )
    async for chunk in response:
        text = chunk.choices[0].delta.content
        if text:
            yield text


async def stream_complete(
    messages: list,
    temperature: float = config.LLM_TEMPERATURE,
    max_tokens: int = config.LLM_MAX_TOKENS,
) -> AsyncIterator[str]:
    """
    Stream text chunks from the primary LLM. Falls back to the secondary model
    only if the primary fails before emitting anything.
    """
    emitted = False
    try:
        async for text in _stream_model(config.LLM_PRIMARY_MODEL, messages, temperature, max_tokens):
            emitted = True
            yield text
        return
    except Exception as e:
        if emitted:
            logger.error(f"Primary LLM stream broke mid-response: {e}")
            raise RuntimeError(f"LLM stream interrupted: {e}")
        logger.warning(f"Primary LLM stream error ({type(e).__name__}: {e}) — falling back")

    try:
        async for text in _stream_model(config.LLM_FALLBACK_MODEL, messages, temperature, max_tokens):
            yield text
    except Exception as e:
        logger.error(f"Both LLM streams failed. Fallback error: {e}")
        raise RuntimeError(f"All LLM providers failed. Last error: {e}")


class LLMClient:
    """
    Class-based wrapper around the module-level complete() / stream_complete() functions.
    Injected into the report engine so tests can substitute a fake.
    """

    async def chat(
        self,
        messages: list,
        temperature: float = config.LLM_TEMPERATURE,
        max_tokens: int = config.LLM_MAX_TOKENS,
    ) -> str:
        return await complete(messages, temperature=temperature, max_tokens=max_tokens)

    def stream(self, messages: list, **kwargs) -> AsyncIterator[str]:
        return stream_complete(messages, **kwargs)


def get_system_prompt(role: str, language: str = "de") -> str:
    """Standard system prompts for the dashboard's AI roles."""
    prompts = {
        "report_analyst": {
            "de": "Sie sind ein KI-Assistent, der in eine Logistikmanagement-Anwendung integriert ist.",
            "en": "You are an AI assistant embedded in a logistics-management application.",
        },
        "project_assistant": {
            "de": (
                "Sie sind ein hilfreicher Assistent, der in eine Kostenanalyseplattform eingebettet ist. "
                "Beantworten Sie Fragen zu den Prozesskosten eines Logistikprojekts."
            ),
            "en": (
                "You are a helpful assistant embedded in a cost-analysis platform. "
                "Answer questions about the process costs of a logistics project."
            ),
        },
    }
    by_language = prompts.get(role, prompts["report_analyst"])
    return by_language.get(language, by_language["de"])
