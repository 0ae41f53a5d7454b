"""LLM collaborator: prompt string in, completion string out (or ProviderFailure)."""

import logging
from pathlib import Path
from typing import Any, Callable

import litellm
import yaml

from semantic_assembly.config import LLMConfig
from semantic_assembly.errors import ProviderFailure

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"

# Anything that maps a prompt to a completion and raises ProviderFailure on failure.
Completer = Callable[[str], str]


def render_prompt(template_path: Path, **kwargs: Any) -> str:
    """Render a YAML prompt template (``template`` key) with keyword substitutions."""
    raw = yaml.safe_load(template_path.read_text()) or {}
    template = raw.get("template")
    if not template:
        raise ValueError(f"Prompt template has no 'template' key: {template_path}")
    return template.format(**kwargs).strip()


class LLMClient:
    """Chat-completion client behind the ``complete(prompt) -> str`` boundary."""

    def __init__(self, config: LLMConfig | None = None) -> None:
        self.config = config or LLMConfig()

    def complete(self, prompt: str) -> str:
        logger.info("LLM query (%s): %s...", self.config.model, prompt[:100])
        try:
            response = litellm.completion(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                top_p=self.config.top_p,
                timeout=self.config.timeout,
            )
        except Exception as exc:
            # litellm raises provider-specific types (timeouts, auth, non-2xx)
            raise ProviderFailure(f"{self.config.model} call failed: {exc}") from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise ProviderFailure("Malformed completion response") from exc

        if not content or not content.strip():
            raise ProviderFailure("Empty completion response")

        result = content.strip()
        logger.debug("LLM response: %s...", result[:100])
        return result

    __call__ = complete
