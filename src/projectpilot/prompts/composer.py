from typing import Dict

from ..models import SessionMode, SessionSubMode
from .store import PromptTemplateStore
from .templates import PromptTemplateKey

LAYER_SEPARATOR = "\n\n---\n\n"

_MODE_KEYS = {
    SessionMode.EXPLORATION: PromptTemplateKey.EXPLORATION,
    SessionMode.DEFINITION: PromptTemplateKey.DEFINITION,
    SessionMode.PLANNING: PromptTemplateKey.PLANNING,
    SessionMode.EXECUTION_SUPPORT: PromptTemplateKey.EXECUTION_SUPPORT,
}

_SUB_MODE_KEYS = {
    SessionSubMode.CHECK_IN: PromptTemplateKey.EXECUTION_SUPPORT_CHECK_IN,
    SessionSubMode.RETURN_BRIEFING: PromptTemplateKey.EXECUTION_SUPPORT_RETURN_BRIEFING,
    SessionSubMode.PROJECT_REVIEW: PromptTemplateKey.EXECUTION_SUPPORT_PROJECT_REVIEW,
    SessionSubMode.RETROSPECTIVE: PromptTemplateKey.EXECUTION_SUPPORT_RETROSPECTIVE,
}


class PromptComposer:
    """Builds the system prompt from the foundation layer and the mode layer.

    Project context is not part of the system prompt; the context assembler
    adds it separately.
    """

    def __init__(self, store: PromptTemplateStore | None = None) -> None:
        self._store = store or PromptTemplateStore()

    def compose(
        self,
        mode: SessionMode,
        sub_mode: SessionSubMode | None = None,
        variables: Dict[str, str] | None = None,
    ) -> str:
        foundation = self._store.render(PromptTemplateKey.FOUNDATION, variables)
        return foundation + LAYER_SEPARATOR + self.mode_layer(mode, sub_mode, variables)

    def mode_layer(
        self,
        mode: SessionMode,
        sub_mode: SessionSubMode | None = None,
        variables: Dict[str, str] | None = None,
    ) -> str:
        text = self._store.render(_MODE_KEYS[mode], variables)
        if mode == SessionMode.EXECUTION_SUPPORT and sub_mode is not None:
            text += "\n\n" + self._store.render(_SUB_MODE_KEYS[sub_mode], variables)
        return text
