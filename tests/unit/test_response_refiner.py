"""
Response refiner tests: sectioning, per-type layouts and HTML rendering.
"""
import pytest

from services.response_refiner import (
    DEFAULT_NEXT_STEPS,
    categorize_section,
    clean_text,
    extract_key_takeaways,
    extract_next_steps,
    parse_into_sections,
    refine_response,
    render_html,
)

LESSON = """Fractions come up everywhere.

## Overview
A fraction describes a part of a whole. The top number counts parts and the bottom number names them.

## Example: halves
Cut a pizza into 2 equal slices; one slice is 1/2.

## Practice Problems
- Shade 3/4 of a square
- Compare 2/3 and 3/5
"""


class TestCleanAndSections:

    def test_clean_collapses_blank_runs_and_strips_templates(self):
        raw = "  Hello {{name}}\n\n\n\nWorld [[ref]]\n  \t\nEnd  "
        assert clean_text(raw) == "Hello \n\nWorld \n\nEnd"

    def test_no_headings_yields_single_untitled_section(self):
        text = "Just a plain answer.\nWith two lines."
        sections = parse_into_sections(clean_text(text))
        assert len(sections) == 1
        assert sections[0].heading == ""
        assert sections[0].content == clean_text(text)

    def test_preamble_becomes_introduction(self):
        sections = parse_into_sections(clean_text(LESSON))
        assert [s.heading for s in sections] == ["Introduction", "Overview", "Example: halves", "Practice Problems"]
        assert [s.section_type for s in sections] == ["text", "concept", "example", "practice"]

    @pytest.mark.parametrize("heading,section_type", [
        ("Key Formula", "math"),
        ("Common Mistakes", "error"),
        ("The Correct Answer", "solution"),
        ("Suggested Strategy", "approach"),
        ("Further Reading", "resource"),
        ("Final Thoughts", "text"),
    ])
    def test_categorize_first_match_wins(self, heading, section_type):
        assert categorize_section(heading) == section_type


class TestExtraction:

    def test_takeaways_from_explicit_section(self):
        sections = parse_into_sections("## Key Takeaways\n- one\n- two\n* three")
        assert extract_key_takeaways(sections) == ["one", "two", "three"]

    def test_takeaways_fall_back_to_concept_sentences(self):
        sections = parse_into_sections(clean_text(LESSON))
        takeaways = extract_key_takeaways(sections)
        assert takeaways == [
            "A fraction describes a part of a whole",
            "The top number counts parts and the bottom number names them",
        ]

    def test_next_steps_from_practice_bullets(self):
        sections = parse_into_sections(clean_text(LESSON))
        assert extract_next_steps(sections, "teach") == ["Shade 3/4 of a square", "Compare 2/3 and 3/5"]

    def test_next_steps_defaults_by_type(self):
        sections = parse_into_sections("Nothing structured here.")
        assert extract_next_steps(sections, "review") == DEFAULT_NEXT_STEPS["review"]
        assert extract_next_steps(sections, "question") == []

    def test_lists_capped_at_five(self):
        body = "\n".join(f"- step {i}" for i in range(9))
        sections = parse_into_sections(f"## Next Steps\n{body}")
        assert len(extract_next_steps(sections, "teach")) == 5


class TestLayouts:

    def test_teach_layout(self):
        result = refine_response(LESSON, "teach")
        text = result.refined_text
        assert text.startswith("# Fractions come up everywhere.\n\n## Core Concepts\n")
        assert "## Worked Examples\n### Example 1\nCut a pizza" in text
        assert text.index("## Worked Examples") < text.index("## Practice Problems")
        assert result.title == "Fractions come up everywhere."

    def test_hint_always_has_reminder_footer(self):
        result = refine_response("Think about what the denominator means.", "hint")
        assert result.refined_text.startswith("# Working Through This Problem")
        assert "**Remember:** Try to solve it yourself first." in result.refined_text
        assert result.refined_text.endswith("I can help with the next hint!\n")

    def test_question_leads_with_answer(self):
        result = refine_response("## Background\nSome context.\n\n## Answer\n42.", "question")
        assert result.refined_text.startswith("## Answer\n42.\n\n## Background\nSome context.")

    def test_review_layout(self):
        raw = "## Assessment\nSolid work.\n\n## Mistake in step 2\nSign flipped.\n\n## Feedback\nKeep going!"
        text = refine_response(raw, "review").refined_text
        assert text.startswith("# Solution Review\n\n## Overall Assessment\nSolid work.")
        assert "## ❌ Errors Found\nSign flipped." in text
        assert text.endswith("## Encouragement\nKeep going!\n")

    def test_unknown_type_passes_cleaned_text_through(self):
        result = refine_response("  plain text  ", "poetry")
        assert result.refined_text == "plain text"

    def test_wire_shape(self):
        out = refine_response(LESSON, "teach").to_dict()
        assert set(out) == {"raw", "refined", "formattedHtml", "requestType", "structure"}
        assert out["structure"]["sections"][1] == {
            "heading": "Overview",
            "content": "A fraction describes a part of a whole. The top number counts parts and the bottom number names them.",
            "type": "concept",
        }


class TestRenderHtml:

    def test_headings(self):
        assert render_html("# Title") == "<h1>Title</h1>"
        assert render_html("## Sub\ntext").startswith("<h2>Sub</h2><br>text")

    def test_inline_formatting(self):
        html = render_html("Use **bold** and *em* and `x = 1`")
        assert html == "<p>Use <strong>bold</strong> and <em>em</em> and <code>x = 1</code></p>"

    def test_list_items_wrapped_in_ul(self):
        html = render_html("- one\n- two")
        assert "<ul><li>one</li><br><li>two</li></ul>" in html

    def test_code_block_language_class(self):
        html = render_html("```python\nprint(1)\n```")
        assert '<pre><code class="language-python">print(1)' in html

    def test_links(self):
        assert '<a href="https://example.org">docs</a>' in render_html("see [docs](https://example.org)")
