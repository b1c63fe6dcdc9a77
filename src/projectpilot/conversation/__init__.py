from .manager import ConversationConfig, ConversationManager, ConversationResult, prompt_variables

__all__ = ["ConversationConfig", "ConversationManager", "ConversationResult", "prompt_variables"]
