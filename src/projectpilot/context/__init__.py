from .assembler import (
    TRUNCATION_NOTICE,
    ContextAssembler,
    ContextPayload,
    PortfolioData,
    PortfolioProject,
    ProjectData,
    estimate_tokens,
)
from .configuration import ComponentKind, ContextConfiguration, context_configuration
from .patterns import CrossSessionPatterns, DeferredTask, EngagementTrend, compute_patterns

__all__ = [
    "TRUNCATION_NOTICE",
    "ComponentKind",
    "ContextAssembler",
    "ContextConfiguration",
    "ContextPayload",
    "CrossSessionPatterns",
    "DeferredTask",
    "EngagementTrend",
    "PortfolioData",
    "PortfolioProject",
    "ProjectData",
    "compute_patterns",
    "context_configuration",
    "estimate_tokens",
]
