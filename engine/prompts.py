"""Prompt template rendering."""
import logging
import re
from typing import Dict, List, Tuple

from shared.errors import NotFoundError

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


def substitute(template: str, values: Dict[str, str]) -> str:
    """Replace `{{name}}` with `values[name]`; unknown names are left as they are."""
    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in values:
            return str(values[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def find_placeholders(template: str) -> List[str]:
    """Names of all placeholders in a template, in order of first appearance."""
    seen = []
    for name in PLACEHOLDER_PATTERN.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


class PromptRenderer:
    """Loads prompt templates and fills in their placeholders."""

    def __init__(self, prompts):
        self.prompts = prompts

    async def render(self, prompt_id: str, placeholders: Dict[str, str]) -> Tuple[str, str]:
        """Return the rendered (system prompt, user prompt)."""
        prompt = await self.prompts.get(prompt_id)
        if prompt is None:
            raise NotFoundError("prompt", prompt_id)

        system_prompt = substitute(prompt.system_prompt, placeholders)
        user_prompt = substitute(prompt.user_prompt, placeholders)

        missing = find_placeholders(user_prompt)
        if missing:
            logger.warning(f"Prompt {prompt_id}: unresolved placeholders {missing}")

        return system_prompt, user_prompt
