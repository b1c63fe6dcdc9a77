"""Deliverable templates used by exploration and definition prompts."""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..models import DeliverableType


@dataclass(frozen=True)
class DeliverableTemplate:
    type: DeliverableType
    purpose: str
    when_useful: str
    information_requirements: Tuple[str, ...] = field(default_factory=tuple)
    # (heading, description)
    document_structure: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def formatted_requirements(self) -> str:
        return "\n".join(f"{i}. {req}" for i, req in enumerate(self.information_requirements, start=1))

    def formatted_structure(self) -> str:
        return "\n\n".join(f"**{heading}**: {description}" for heading, description in self.document_structure)


_TEMPLATES: Dict[DeliverableType, DeliverableTemplate] = {
    DeliverableType.VISION_STATEMENT: DeliverableTemplate(
        type=DeliverableType.VISION_STATEMENT,
        purpose="Articulates what a project is: its intent, principles, boundaries, and definition of done.",
        when_useful="Almost always. Any project that isn't immediately obvious in scope and intent.",
        information_requirements=(
            "Core intent: what is this project, in the user's own words?",
            "Motivation and personal significance: why does this matter?",
            "Target audience or beneficiary: who is this for?",
            "Scope boundaries: what's explicitly in and what's explicitly out?",
            "Design principles: values and priorities that guide decisions.",
            "Definition of done: what does finished look like, concretely?",
        ),
        document_structure=(
            ("Intent", "Clear, concise statement of what this project is and aims to achieve."),
            ("Motivation", "Why this project exists and why the user cares."),
            ("Audience", "Who this is for and what they need."),
            ("Scope", "What's included and what's explicitly excluded."),
            ("Design Principles", "Guiding values for decision-making."),
            ("Definition of Done", "Concrete, verifiable criteria for completion."),
        ),
    ),
    DeliverableType.TECHNICAL_BRIEF: DeliverableTemplate(
        type=DeliverableType.TECHNICAL_BRIEF,
        purpose="Documents the technical architecture, technology choices, and implementation approach.",
        when_useful="Software projects almost always. Any project where technology choices have cascading consequences.",
        information_requirements=(
            "Technology stack and the rationale for each choice.",
            "Architecture overview: system structure and component relationships.",
            "Data model: what data exists and how it is persisted.",
            "Integration points: external systems, APIs and services.",
            "Technical constraints: platform limits, performance, accessibility.",
            "Known risks needing prototyping or validation.",
        ),
        document_structure=(
            ("Technology Stack", "Each technology choice with rationale."),
            ("Architecture", "How components relate."),
            ("Data Model", "What data exists and how it's stored."),
            ("Integration Points", "External connections and dependencies."),
            ("Constraints", "Technical limitations and requirements."),
            ("Risks and Uncertainties", "Known unknowns and areas requiring validation."),
        ),
    ),
    DeliverableType.SETUP_SPECIFICATION: DeliverableTemplate(
        type=DeliverableType.SETUP_SPECIFICATION,
        purpose="Documents physical, equipment, or environmental requirements for tangible projects.",
        when_useful="Event planning, hardware projects, music production, anything involving physical resources.",
        information_requirements=(
            "Equipment and materials needed.",
            "How the pieces connect and fit together.",
            "Venue or environment requirements.",
            "Sourcing, procurement and budget.",
            "Setup and teardown sequence.",
            "Contingencies and minimum viable setup.",
        ),
        document_structure=(
            ("Equipment and Materials", "Everything needed, with specifics where known."),
            ("Configuration", "How everything connects physically."),
            ("Environment Requirements", "What the space must provide."),
            ("Procurement", "What to acquire, from where, at what cost."),
            ("Setup Process", "Step-by-step sequence for getting operational."),
            ("Contingencies", "Backup plans and minimum viable configuration."),
        ),
    ),
    DeliverableType.RESEARCH_PLAN: DeliverableTemplate(
        type=DeliverableType.RESEARCH_PLAN,
        purpose="Structures an inquiry-driven project around clear questions, sources, and methodology.",
        when_useful="Learning, investigation and decision-making projects where the output is knowledge.",
        information_requirements=(
            "Central question or objective.",
            "Sub-questions that build toward the central inquiry.",
            "Sources and methods of investigation.",
            "Existing knowledge and starting point.",
            "Success criteria for 'done enough'.",
            "How the findings will be applied.",
        ),
        document_structure=(
            ("Central Question", "The core inquiry, stated clearly."),
            ("Sub-Questions", "Component questions building toward the central one."),
            ("Existing Knowledge", "What the user already knows."),
            ("Sources and Methods", "Where and how to investigate."),
            ("Success Criteria", "How to know when enough has been learned."),
            ("Application", "What the knowledge will be used for."),
        ),
    ),
    DeliverableType.CREATIVE_BRIEF: DeliverableTemplate(
        type=DeliverableType.CREATIVE_BRIEF,
        purpose="Captures artistic or creative intent, guiding the work without over-constraining it.",
        when_useful="Music, visual art, writing, any creative work involving intuition and discovery.",
        information_requirements=(
            "Artistic intent: what the work should express or evoke.",
            "Aesthetic references: works, styles or artists in conversation with it.",
            "Medium and materials.",
            "Context: where and how the work will be experienced.",
            "Constraints: duration, format, budget, timeline.",
            "Open questions the user hopes to discover.",
        ),
        document_structure=(
            ("Intent", "What the work aims to express or evoke."),
            ("References", "Works, styles and artists that inform it."),
            ("Medium and Materials", "Tools, instruments, software, physical materials."),
            ("Context", "Where and how the work will be experienced."),
            ("Constraints", "Duration, format, budget, timeline."),
            ("Open Questions", "What the user wants to discover."),
        ),
    ),
}


def deliverable_template(deliverable_type: DeliverableType) -> DeliverableTemplate:
    return _TEMPLATES[deliverable_type]


def all_templates() -> List[DeliverableTemplate]:
    return [_TEMPLATES[t] for t in DeliverableType]


def catalogue_summary() -> str:
    """One bullet per deliverable type, for the exploration prompt."""
    return "\n".join(
        f"- **{t.type.value}**: {t.purpose} Useful when: {t.when_useful}" for t in all_templates()
    )
