import logging
from typing import Dict

from .templates import DEFAULT_TEMPLATES, PromptTemplateKey

logger = logging.getLogger(__name__)


class PromptTemplateStore:
    """Prompt templates with optional per-key overrides.

    Overrides live in memory; an empty override reverts to the built-in default.
    """

    def __init__(self, overrides: Dict[PromptTemplateKey, str] | None = None) -> None:
        self._overrides: Dict[PromptTemplateKey, str] = {}
        for key, value in (overrides or {}).items():
            self.set_override(key, value)

    def template(self, key: PromptTemplateKey) -> str:
        override = self._overrides.get(key)
        if override:
            return override
        return DEFAULT_TEMPLATES[key]

    def set_override(self, key: PromptTemplateKey, value: str | None) -> None:
        if value:
            self._overrides[key] = value
            logger.info("Prompt template %s overridden", key.value)
        else:
            self._overrides.pop(key, None)

    def has_override(self, key: PromptTemplateKey) -> bool:
        return key in self._overrides

    def reset_to_default(self, key: PromptTemplateKey) -> None:
        self._overrides.pop(key, None)

    def render(self, key: PromptTemplateKey, variables: Dict[str, str] | None = None) -> str:
        """Return the template with every ``{{name}}`` placeholder replaced from ``variables``.

        Placeholders without a value are left in place.
        """
        text = self.template(key)
        for name, value in (variables or {}).items():
            text = text.replace("{{" + name + "}}", value)
        return text
