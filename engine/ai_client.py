"""AI generators for articles and topic variations (OpenAI, Anthropic)."""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import anthropic
import openai
from pydantic import BaseModel, ValidationError as PydanticValidationError

from api.models.site import AIProviderModel
from engine.dependencies import GenerationResult
from shared.config import Settings, settings as default_settings
from shared.errors import CollaboratorError, ValidationError

logger = logging.getLogger(__name__)


# USD per million tokens: (input, output)
MODEL_PRICES: Dict[str, Tuple[float, float]] = {
    "gpt-5.2": (1.75, 14.00),
    "gpt-5-mini": (0.25, 2.00),
    "gpt-5-nano": (0.05, 0.40),
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4.1": (2.00, 8.00),
    "gpt-4.1-mini": (0.40, 1.60),
    "claude-sonnet-4-20250514": (3.00, 15.00),
    "claude-3-5-sonnet-20241022": (3.00, 15.00),
    "claude-3-5-haiku-20241022": (0.80, 4.00),
}

ARTICLE_INSTRUCTIONS = (
    "Respond with a single JSON object only, with the keys "
    '"title", "excerpt" and "content" (HTML). No markdown, no code fence, no explanation.'
)

VARIATION_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates creative topic variations. "
    "Each variation should be unique but related to the original topic.\n\n"
    'Respond with a single JSON object only: {"variations": ["variation 1", "variation 2"]}'
)


class GeneratedArticle(BaseModel):
    title: str
    excerpt: str = ""
    content: str


class TopicVariations(BaseModel):
    variations: List[str]


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD of a call; unknown models cost nothing."""
    prices = MODEL_PRICES.get(model)
    if prices is None:
        return 0.0
    input_price, output_price = prices
    return (input_tokens / 1_000_000) * input_price + (output_tokens / 1_000_000) * output_price


def parse_json_response(raw: str, schema: type) -> BaseModel:
    """Parse a JSON answer, tolerating a surrounding markdown code fence."""
    text = raw.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```\s*$", "", text)
    try:
        return schema.model_validate(json.loads(text))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise CollaboratorError("ai", f"unparseable response: {e}") from e


class BaseGenerator(ABC):
    """Shared prompting and accounting; subclasses only talk to their SDK."""

    provider_name = "ai"

    def __init__(self, model: str, max_tokens: int, temperature: float = 0.7):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Tuple[str, int, int]:
        """Return (text, input tokens, output tokens)."""

    async def generate_article(self, system_prompt: str, user_prompt: str) -> GenerationResult:
        system = f"{system_prompt}\n\n{ARTICLE_INSTRUCTIONS}".strip()
        text, input_tokens, output_tokens = await self._complete(system, user_prompt, self.max_tokens)
        article = parse_json_response(text, GeneratedArticle)
        cost = calculate_cost(self.model, input_tokens, output_tokens)
        logger.info(
            f"{self.provider_name}/{self.model}: generated '{article.title}' "
            f"({input_tokens}+{output_tokens} tokens, ${cost:.4f})"
        )
        return GenerationResult(
            title=article.title,
            excerpt=article.excerpt,
            content=article.content,
            tokens_used=input_tokens + output_tokens,
            cost_usd=cost,
            model=self.model
        )

    async def generate_topic_variations(self, seed_title: str, count: int) -> List[str]:
        user_prompt = (
            f"Generate {count} variations of the following topic:\n\n'{seed_title}'\n\n"
            "Each variation should be unique, related to the original topic, suitable "
            "for a blog article and written without quotation marks."
        )
        text, _, _ = await self._complete(VARIATION_SYSTEM_PROMPT, user_prompt, 1024)
        result = parse_json_response(text, TopicVariations)
        return result.variations[:count]

    async def close(self) -> None:
        """Release the SDK client and its connection pool."""
        client = getattr(self, "_client", None)
        if client is not None:
            await client.close()


class OpenAIGenerator(BaseGenerator):
    """OpenAI chat completion backend."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        max_tokens: int = 8192,
        temperature: float = 0.7,
        timeout: float = 120.0
    ):
        super().__init__(model, max_tokens, temperature)
        self._client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Tuple[str, int, int]:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_completion_tokens=max_tokens,
                temperature=self.temperature,
            )
        except openai.APIStatusError as e:
            raise CollaboratorError(self.provider_name, str(e), e.status_code) from e
        except openai.APIError as e:
            raise CollaboratorError(self.provider_name, str(e)) from e

        if not response.choices:
            raise CollaboratorError(self.provider_name, "no response from API")
        text = response.choices[0].message.content or ""
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        return text, input_tokens, output_tokens


class AnthropicGenerator(BaseGenerator):
    """Anthropic messages backend."""

    provider_name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 8192,
        temperature: float = 0.7,
        timeout: float = 120.0
    ):
        super().__init__(model, max_tokens, temperature)
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def _complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Tuple[str, int, int]:
        try:
            message = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIStatusError as e:
            raise CollaboratorError(self.provider_name, str(e), e.status_code) from e
        except anthropic.APIError as e:
            raise CollaboratorError(self.provider_name, str(e)) from e

        text = next((block.text for block in message.content if block.type == "text"), "")
        if not text:
            raise CollaboratorError(self.provider_name, "no response from API")
        return text, message.usage.input_tokens, message.usage.output_tokens


def create_generator(provider: AIProviderModel, settings: Optional[Settings] = None) -> BaseGenerator:
    """Build the generator for a provider configuration."""
    settings = settings or default_settings
    kwargs = {
        "api_key": provider.api_key or None,
        "model": provider.model,
        "max_tokens": provider.max_tokens or settings.ai_max_tokens,
        "temperature": provider.temperature,
        "timeout": settings.ai_request_timeout,
    }
    kind = provider.provider.lower()
    if kind == "openai":
        return OpenAIGenerator(**kwargs)
    if kind == "anthropic":
        return AnthropicGenerator(**kwargs)
    raise ValidationError(f"unsupported AI provider: {provider.provider}")
