"""Tests for tag extraction."""

from __future__ import annotations

import json

import pytest

from chatstream.models import ArtifactType
from chatstream.parser import (
    detect_language,
    extract_artifacts,
    extract_clarify_questions,
    extract_edits,
    extract_legal_references,
    has_legal_references,
    strip_tags,
)


def _edit_block(payload) -> str:
    return f"<sanbao-edit>{json.dumps(payload)}</sanbao-edit>"


class TestExtractArtifacts:
    def test_single_code_artifact(self):
        result = extract_artifacts('<sanbao-doc type="CODE" title="Foo">print(1)</sanbao-doc>')

        assert len(result.artifacts) == 1
        artifact = result.artifacts[0]
        assert artifact.type == ArtifactType.CODE
        assert artifact.title == "Foo"
        assert artifact.content == "print(1)"
        assert artifact.language == "python"
        assert result.clean_content == ""

    def test_multiple_artifacts_across_lines(self):
        text = (
            "Here you go.\n"
            '<sanbao-doc type="contract" title="Lease">\n  Party A\n  Party B\n</sanbao-doc>\n'
            "and\n"
            '<sanbao-doc title="Notes" type="ANALYSIS">Risks</sanbao-doc>\n'
            "Done."
        )
        result = extract_artifacts(text)

        assert [a.id for a in result.artifacts] == ["artifact_0", "artifact_1"]
        assert [a.title for a in result.artifacts] == ["Lease", "Notes"]
        assert result.artifacts[0].type == ArtifactType.CONTRACT
        assert result.artifacts[0].content == "Party A\n  Party B"
        assert result.artifacts[1].type == ArtifactType.ANALYSIS
        assert all(a.language is None for a in result.artifacts)
        assert "sanbao-doc" not in result.clean_content
        assert result.clean_content.startswith("Here you go.")
        assert result.clean_content.endswith("Done.")

    def test_unknown_type_and_empty_title(self):
        result = extract_artifacts('<sanbao-doc type="SPREADSHEET" title="  ">x</sanbao-doc>')
        artifact = result.artifacts[0]
        assert artifact.type == ArtifactType.DOCUMENT
        assert artifact.title == "Document"

    def test_no_tags_returns_text_unchanged(self):
        text = "  plain answer with <b>html</b>  "
        result = extract_artifacts(text)
        assert result.artifacts == []
        assert result.clean_content == text

    def test_unclosed_tag_is_left_alone(self):
        text = '<sanbao-doc type="CODE" title="Foo">print(1)'
        result = extract_artifacts(text)
        assert result.artifacts == []
        assert result.clean_content == text

    def test_idempotent_on_clean_content(self):
        text = 'A <sanbao-doc type="CODE" title="Foo">def f(): pass</sanbao-doc> B'
        first = extract_artifacts(text)
        second = extract_artifacts(first.clean_content)
        assert second.artifacts == []
        assert second.clean_content == first.clean_content


class TestDetectLanguage:
    @pytest.mark.parametrize(
        "body, expected",
        [
            ("<!DOCTYPE html><html></html>", "html"),
            ("<html><body/></html>", "html"),
            ("import React from 'react'", "jsx"),
            ('import { useState } from "react"', "jsx"),
            ("def main():\n    pass", "python"),
            ("import os", "python"),
            ("print(1)", "python"),
            ("const x = 1;", "javascript"),
        ],
    )
    def test_code_heuristics(self, body, expected):
        assert detect_language(ArtifactType.CODE, body) == expected

    def test_non_code_has_no_language(self):
        assert detect_language(ArtifactType.DOCUMENT, "def main(): pass") is None


class TestExtractEdits:
    def test_valid_edit_removed(self):
        payload = {"target": "Lease", "replacements": [{"oldText": "A", "newText": "B"}]}
        result = extract_edits(f"Updated the lease.\n{_edit_block(payload)}")

        assert len(result.edits) == 1
        edit = result.edits[0]
        assert edit.target == "Lease"
        assert edit.replacements[0].old_text == "A"
        assert edit.replacements[0].new_text == "B"
        assert result.clean_content == "Updated the lease."

    def test_alternate_payload_keys_and_array(self):
        payload = [
            {"title": "One", "edits": [{"old": "x", "new": "y"}]},
            {"target": "Two", "replacements": [{"old_text": "p", "new_text": "q"}]},
        ]
        result = extract_edits(_edit_block(payload))
        assert [e.target for e in result.edits] == ["One", "Two"]
        assert result.edits[0].edit_count == 1
        assert result.clean_content == ""

    def test_malformed_block_left_verbatim(self):
        bad = "<sanbao-edit>{not json</sanbao-edit>"
        good = _edit_block({"target": "Doc", "replacements": []})
        result = extract_edits(f"{bad}\n{good}")

        assert [e.target for e in result.edits] == ["Doc"]
        assert result.clean_content == bad

    def test_block_missing_target_is_malformed(self):
        text = _edit_block({"replacements": [{"oldText": "a", "newText": "b"}]})
        result = extract_edits(text)
        assert result.edits == []
        assert result.clean_content == text

    def test_no_blocks(self):
        result = extract_edits("  nothing here ")
        assert result.edits == []
        assert result.clean_content == "  nothing here "


class TestExtractClarify:
    def test_questions_extracted_and_block_removed(self):
        payload = [
            {"id": "q1", "question": "Which city?", "options": ["Almaty", "Astana"]},
            {"id": "q2", "question": "Any details?", "type": "text", "placeholder": "..."},
        ]
        text = f"I need more info.\n<sanbao-clarify>{json.dumps(payload)}</sanbao-clarify>"
        result = extract_clarify_questions(text)

        assert [q.id for q in result.questions] == ["q1", "q2"]
        assert result.questions[0].is_select
        assert result.questions[1].is_text_input
        assert result.clean_content == "I need more info."

    @pytest.mark.parametrize(
        "payload",
        ["not json", '{"id": "q1"}', '[{"id": ["bad"]}]'],
    )
    def test_malformed_block_leaves_text_unchanged(self, payload):
        text = f"Intro <sanbao-clarify>{payload}</sanbao-clarify>"
        result = extract_clarify_questions(text)
        assert result.questions == []
        assert result.clean_content == text

    def test_only_first_block_is_used(self):
        first = '<sanbao-clarify>[{"id": "a", "question": "A?"}]</sanbao-clarify>'
        second = '<sanbao-clarify>[{"id": "b", "question": "B?"}]</sanbao-clarify>'
        result = extract_clarify_questions(f"{first} {second}")
        assert [q.id for q in result.questions] == ["a"]
        assert result.clean_content == second


class TestLegalReferences:
    def test_extracts_references_in_order(self):
        text = (
            "See [ст. 15 ГК РК](article://gk_rk/15) and "
            "[Article 9](article://tk_rk/9-1) for details."
        )
        refs = extract_legal_references(text)

        assert has_legal_references(text)
        assert [(r.label, r.code, r.article) for r in refs] == [
            ("ст. 15 ГК РК", "gk_rk", "15"),
            ("Article 9", "tk_rk", "9-1"),
        ]
        assert all(r.scheme == "article" for r in refs)

    def test_ordinary_links_ignored(self):
        text = "[docs](https://example.com/page)"
        assert not has_legal_references(text)
        assert extract_legal_references(text) == []

    def test_references_inside_tags_ignored(self):
        text = '<sanbao-doc type="CONTRACT" title="Lease">[ст. 1](article://gk_rk/1)</sanbao-doc>'
        assert not has_legal_references(text)
        assert extract_legal_references(text) == []


def test_strip_tags_removes_all_families():
    text = (
        'A <sanbao-doc type="CODE" title="x">y</sanbao-doc> '
        "B <sanbao-edit>{}</sanbao-edit> "
        "C <sanbao-clarify>[]</sanbao-clarify>"
    )
    cleaned = strip_tags(text)
    assert "sanbao" not in cleaned
    assert cleaned.startswith("A")
    assert cleaned.endswith("C")
