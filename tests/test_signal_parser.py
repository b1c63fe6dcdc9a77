from projectpilot.parsing.actions import ActionKind
from projectpilot.parsing.signals import ResponseSignal, ResponseSignalParser, SignalKind

TASK_ID = "3f2b8c1e-5d4a-4e6b-9c7d-1a2b3c4d5e6f"


def test_line_signal_removed_from_text() -> None:
    parsed = ResponseSignalParser().parse("Before [MODE_COMPLETE: planning] After")
    assert parsed.natural_language == "Before  After"
    assert parsed.signals == [ResponseSignal(SignalKind.MODE_COMPLETE, "planning")]
    assert parsed.actions == []


def test_document_draft_block() -> None:
    text = "Here you go.\n[DOCUMENT_DRAFT: visionStatement]\n# Vision\nBody\n[/DOCUMENT_DRAFT]\nThoughts?"
    parsed = ResponseSignalParser().parse(text)
    assert parsed.signals == [
        ResponseSignal(SignalKind.DOCUMENT_DRAFT, "# Vision\nBody", document_type="visionStatement")
    ]
    assert parsed.natural_language == "Here you go.\n\nThoughts?"


def test_document_draft_without_type_is_unknown() -> None:
    parsed = ResponseSignalParser().parse("[DOCUMENT_DRAFT]text[/DOCUMENT_DRAFT]")
    assert parsed.signals[0].document_type == "unknown"
    assert parsed.signals[0].value == "text"
    assert parsed.natural_language == ""


def test_structure_proposal_block() -> None:
    parsed = ResponseSignalParser().parse("[STRUCTURE_PROPOSAL]\nPhase 1\n[/STRUCTURE_PROPOSAL]")
    assert parsed.signals == [ResponseSignal(SignalKind.STRUCTURE_PROPOSAL, "Phase 1")]


def test_exploration_completion_signals() -> None:
    text = (
        "Sounds right.\n"
        "[MODE_COMPLETE: exploration]\n"
        "[PROCESS_RECOMMENDATION: visionStatement, technicalBrief]\n"
        "[PLANNING_DEPTH: milestone_plan]\n"
        "[PROJECT_SUMMARY: A budgeting app for freelancers]"
    )
    parsed = ResponseSignalParser().parse(text)
    kinds = [s.kind for s in parsed.signals]
    assert kinds == [
        SignalKind.MODE_COMPLETE,
        SignalKind.PROCESS_RECOMMENDATION,
        SignalKind.PLANNING_DEPTH,
        SignalKind.PROJECT_SUMMARY,
    ]
    assert parsed.signals_of(SignalKind.PROCESS_RECOMMENDATION)[0].value == "visionStatement, technicalBrief"
    assert parsed.natural_language == "Sounds right."


def test_session_end_has_no_value() -> None:
    parsed = ResponseSignalParser().parse("Good luck!\n[SESSION_END]")
    assert parsed.signals == [ResponseSignal(SignalKind.SESSION_END)]
    assert parsed.natural_language == "Good luck!"


def test_same_tag_reported_in_document_order() -> None:
    parsed = ResponseSignalParser().parse("[FIRST_ACTION: a] x [FIRST_ACTION: b]")
    assert [s.value for s in parsed.signals] == ["a", "b"]


def test_unknown_and_malformed_brackets_stay_in_text() -> None:
    text = "See [NOT_A_SIGNAL: x] and [MODE_COMPLETE] and [DOCUMENT_DRAFT: t] unterminated"
    parsed = ResponseSignalParser().parse(text)
    assert parsed.signals == []
    assert parsed.natural_language == text


def test_excess_blank_lines_collapsed() -> None:
    parsed = ResponseSignalParser().parse("  Top\n\n[MODE_COMPLETE: definition]\n\n\nBottom  ")
    assert parsed.natural_language == "Top\n\nBottom"


def test_actions_only_when_requested() -> None:
    text = f"Done.\n[ACTION: COMPLETE_TASK] taskId: {TASK_ID} [/ACTION]"
    parser = ResponseSignalParser()

    without = parser.parse(text)
    assert without.actions == []
    assert "[ACTION: COMPLETE_TASK]" in without.natural_language

    with_actions = parser.parse(text, parse_actions=True)
    assert [a.kind for a in with_actions.actions] == [ActionKind.COMPLETE_TASK]
    assert with_actions.natural_language == "Done."
