from __future__ import annotations

import pytest

from parse.references import extract_reference
from parse.scanner import find_candidates
from patch.planner import Edit, apply_edits, plan_edit, plan_edits
from settings.config import MacroSpec

MACROS = [MacroSpec(module="log", name=name) for name in ("info", "warn", "error")]


def _patched(text: str, reference: int, *, structured: bool = False) -> str:
    [candidate] = find_candidates(text, MACROS)
    extraction = extract_reference(candidate, text, structured=structured)
    return apply_edits(text, [plan_edit(extraction, reference)])


@pytest.mark.parametrize(
    ("text", "structured", "expected"),
    [
        ('info!("Unready");', False, 'info!("[ref: 1] Unready");'),
        ('info!(r#"raw"#);', False, 'info!(r#"[ref: 1] raw"#);'),
        ('info!("");', False, 'info!("[ref: 1] ");'),
        ('info!("[ref: 0] zero");', False, 'info!("[ref: 1] zero");'),
        ('info!("x");', True, 'info!(ref = 1; "x");'),
        ('info!(user = 2; "x");', True, 'info!(ref = 1, user = 2; "x");'),
        (
            'info!(target: "t", "x");',
            True,
            'info!(target: "t", ref = 1; "x");',
        ),
    ],
)
def test_plan_and_apply_single_edit(text: str, structured: bool, expected: str) -> None:
    assert _patched(text, 1, structured=structured) == expected


def test_duplicate_reference_is_rewritten_in_place() -> None:
    text = 'warn!(ref = 7; "x");\n'
    [candidate] = find_candidates(text, MACROS)
    extraction = extract_reference(candidate, text, structured=True).as_duplicate()

    edit = plan_edit(extraction, 12)

    assert edit == Edit(offset=12, text="12", length=1)
    assert apply_edits(text, [edit]) == 'warn!(ref = 12; "x");\n'


def test_present_reference_cannot_be_planned() -> None:
    text = 'info!("[ref: 3] ok");'
    [candidate] = find_candidates(text, MACROS)
    extraction = extract_reference(candidate, text, structured=False)

    with pytest.raises(ValueError, match="present"):
        plan_edit(extraction, 4)


def test_multiple_edits_in_one_pass() -> None:
    text = 'info!("a");\nwarn!("b");\nerror!("c");\n'
    extractions = [
        extract_reference(candidate, text, structured=False)
        for candidate in find_candidates(text, MACROS)
    ]

    edits = plan_edits(reversed(list(zip(extractions, [1, 2, 3]))))

    assert [edit.offset for edit in edits] == sorted(edit.offset for edit in edits)
    assert apply_edits(text, edits) == (
        'info!("[ref: 1] a");\nwarn!("[ref: 2] b");\nerror!("[ref: 3] c");\n'
    )


def test_apply_edits_preserves_crlf() -> None:
    text = 'fn f() {\r\n    info!("x");\r\n}\r\n'

    assert _patched(text, 5) == 'fn f() {\r\n    info!("[ref: 5] x");\r\n}\r\n'


def test_apply_edits_without_edits_returns_text() -> None:
    assert apply_edits("unchanged", []) == "unchanged"


@pytest.mark.parametrize(
    "edits",
    [
        [Edit(offset=20, text="x")],
        [Edit(offset=0, text="x", length=3), Edit(offset=2, text="y")],
    ],
)
def test_apply_edits_rejects_bad_offsets(edits: list[Edit]) -> None:
    with pytest.raises(ValueError, match="outside|overlaps"):
        apply_edits("short text", edits)
