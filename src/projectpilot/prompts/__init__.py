from .composer import LAYER_SEPARATOR, PromptComposer
from .deliverables import DeliverableTemplate, all_templates, catalogue_summary, deliverable_template
from .store import PromptTemplateStore
from .templates import PromptTemplateKey

__all__ = [
    "LAYER_SEPARATOR",
    "DeliverableTemplate",
    "PromptComposer",
    "PromptTemplateKey",
    "PromptTemplateStore",
    "all_templates",
    "catalogue_summary",
    "deliverable_template",
]
