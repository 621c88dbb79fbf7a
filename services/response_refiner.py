"""
Response refinement (post-stage of the enhanced chat path).

Splits model markdown into headed sections, tags each section by keyword,
reassembles them into a per-request-type layout and renders simple HTML.
Input is always model-generated text, so a small regex cascade is used
instead of a full markdown parser; nested lists and tables are not handled.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger("tutor-router.refiner")

# Checked in this order; first match wins (substring match on the lowered heading)
SECTION_TYPE_KEYWORDS = {
    "concept": ["concept", "overview", "introduction", "what is", "definition"],
    "math": ["math", "equation", "formula", "calculation", "mathematical"],
    "example": ["example", "worked", "demonstration", "illustration", "case study"],
    "error": ["error", "wrong", "mistake", "incorrect"],
    "solution": ["correct", "solution", "answer", "result"],
    "misconception": ["misconception", "common mistake", "pitfall", "confusion"],
    "practice": ["practice", "exercise", "problem", "challenge", "quiz"],
    "resource": ["resource", "further reading", "reference", "learn more"],
    "understanding": ["understanding", "clarification", "explanation"],
    "approach": ["approach", "strategy", "method", "technique", "step"],
    "assessment": ["assessment", "evaluation", "grade", "score", "rating"],
    "strength": ["strength", "well done", "correct", "good", "excellent"],
    "improvement": ["improve", "area", "work on", "suggestion", "recommend"],
    "feedback": ["feedback", "comment", "note", "encouragement"],
}

HEADING_RE = re.compile(r"^(#{1,3})\s+(.+)$", re.M)
BULLET_RE = re.compile(r"^[-*•]\s*(.+)$", re.M)

MAX_LIST_ITEMS = 5

DEFAULT_NEXT_STEPS = {
    "teach": ["Try the practice problems above", "Review the worked examples"],
    "hint": ["Attempt the problem with the hints provided", "Ask for another hint if still stuck"],
    "review": ["Address the errors identified", "Resubmit for another review"],
}


@dataclass
class ResponseSection:
    heading: str
    content: str
    section_type: str = "text"


@dataclass
class RefinedResponse:
    raw_text: str
    refined_text: str
    html_text: str
    request_type: str
    sections: List[ResponseSection] = field(default_factory=list)
    key_takeaways: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    title: Optional[str] = None
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw": self.raw_text,
            "refined": self.refined_text,
            "formattedHtml": self.html_text,
            "requestType": self.request_type,
            "structure": {
                "title": self.title,
                "summary": self.summary,
                "sections": [
                    {"heading": s.heading, "content": s.content, "type": s.section_type} for s in self.sections
                ],
                "keyTakeaways": list(self.key_takeaways),
                "nextSteps": list(self.next_steps),
            },
        }


def categorize_section(heading: str) -> str:
    lower = heading.lower()
    for section_type, keywords in SECTION_TYPE_KEYWORDS.items():
        if any(k in lower for k in keywords):
            return section_type
    return "text"


def clean_text(text: str) -> str:
    text = text.strip()
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"\{\{.*?\}\}", "", text)
    text = re.sub(r"\[\[.*?\]\]", "", text)
    text = re.sub(r"^[ \t]+$", "", text, flags=re.M)
    return text.strip()


def parse_into_sections(text: str) -> List[ResponseSection]:
    """
    One section per level 1-3 heading, running to the next heading.
    Text before the first heading becomes an "Introduction" section;
    text with no headings at all becomes a single untitled section.
    """
    matches = list(HEADING_RE.finditer(text))
    if not matches:
        return [ResponseSection(heading="", content=text.strip())] if text.strip() else []

    sections = []
    preamble = text[: matches[0].start()].strip()
    if preamble:
        sections.append(ResponseSection(heading="Introduction", content=preamble))

    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        heading = m.group(2).strip()
        sections.append(
            ResponseSection(
                heading=heading,
                content=text[m.end():end].strip(),
                section_type=categorize_section(heading),
            )
        )
    return sections


# ---------- Helpers ----------
def _first(sections: List[ResponseSection], section_type: str) -> Optional[ResponseSection]:
    return next((s for s in sections if s.section_type == section_type), None)


def _all(sections: List[ResponseSection], section_type: str) -> List[ResponseSection]:
    return [s for s in sections if s.section_type == section_type]


def _bullets(content: str) -> List[str]:
    return [b.strip() for b in BULLET_RE.findall(content)]


def _heading_contains(section: ResponseSection, needles) -> bool:
    lower = section.heading.lower()
    return any(n in lower for n in needles)


def extract_title(sections: List[ResponseSection]) -> Optional[str]:
    if not sections:
        return None
    heading = sections[0].heading
    if heading and "introduction" not in heading.lower():
        return heading
    first_line = sections[0].content.split("\n")[0]
    if first_line and len(first_line) < 100:
        return first_line
    return None


def extract_key_takeaways(sections: List[ResponseSection]) -> List[str]:
    takeaways: List[str] = []
    explicit = next(
        (s for s in sections if _heading_contains(s, ("takeaway", "key point", "summary"))), None
    )
    if explicit:
        takeaways = _bullets(explicit.content)

    if not takeaways:
        concept = _first(sections, "concept")
        if concept:
            sentences = [s.strip() for s in re.split(r"[.!?]+", concept.content) if len(s.strip()) > 20]
            takeaways = sentences[:3]

    return takeaways[:MAX_LIST_ITEMS]


def extract_next_steps(sections: List[ResponseSection], request_type: str) -> List[str]:
    steps: List[str] = []
    explicit = next(
        (s for s in sections if _heading_contains(s, ("next step", "further", "resource", "practice"))), None
    )
    if explicit:
        steps = _bullets(explicit.content)

    if not steps:
        steps = list(DEFAULT_NEXT_STEPS.get(request_type, []))

    return steps[:MAX_LIST_ITEMS]


def _render_rest(sections: List[ResponseSection], skip, keep_untitled: bool = True) -> str:
    out = ""
    for s in sections:
        if any(s is k for k in skip) or not s.content:
            continue
        if s.heading:
            out += f"## {s.heading}\n{s.content}\n\n"
        elif keep_untitled:
            out += f"{s.content}\n\n"
    return out


# ---------- Per-type layouts ----------
def _format_teach(sections: List[ResponseSection]) -> str:
    title = extract_title(sections) or "Lesson"
    concept = _first(sections, "concept")
    math = _first(sections, "math")
    examples = _all(sections, "example")
    misconceptions = _first(sections, "misconception")
    practice = _first(sections, "practice")
    resources = _first(sections, "resource")
    placed = ("concept", "math", "example", "misconception", "practice", "resource")

    out = f"# {title}\n\n"
    if concept:
        out += f"## Core Concepts\n{concept.content}\n\n"
    if math:
        out += f"## Mathematical Framework\n{math.content}\n\n"
    if examples:
        out += "## Worked Examples\n"
        for i, ex in enumerate(examples, 1):
            out += f"### Example {i}\n{ex.content}\n\n"
    if misconceptions:
        out += f"## Common Misconceptions\n{misconceptions.content}\n\n"
    others = [s for s in sections if s.section_type not in placed]
    out += _render_rest(others, (), keep_untitled=False)
    if practice:
        out += f"## Practice Problems\n{practice.content}\n\n"
    if resources:
        out += f"## Further Resources\n{resources.content}\n\n"
    return out


def _format_question(sections: List[ResponseSection]) -> str:
    answer = next(
        (s for s in sections if s.section_type == "solution" or "answer" in s.heading.lower()), None
    )
    out = f"## Answer\n{answer.content}\n\n" if answer else ""
    out += _render_rest(sections, (answer,) if answer else ())
    return out or "\n\n".join(s.content for s in sections)


def _format_hint(sections: List[ResponseSection]) -> str:
    understanding = _first(sections, "understanding")
    concept = _first(sections, "concept")
    approach = _first(sections, "approach")
    steps = [s for s in sections if _heading_contains(s, ("step", "hint"))]

    out = "# Working Through This Problem\n\n"
    if understanding:
        out += f"## Understanding the Problem\n{understanding.content}\n\n"
    if concept:
        out += f"## Key Concepts Involved\n{concept.content}\n\n"
    if approach:
        out += f"## Suggested Approach\n{approach.content}\n\n"
    if steps:
        out += "## Step-by-Step Hints\n"
        for i, step in enumerate(steps, 1):
            out += f"### {step.heading or f'Step {i}'}\n{step.content}\n\n"

    placed = [s for s in (understanding, concept, approach) if s] + steps
    out += _render_rest(sections, placed)
    out += "\n> ⚠️ **Remember:** Try to solve it yourself first. These are hints, not solutions!\n\n"
    out += "## Next Step\nTry the approach above. When you get stuck, I can help with the next hint!\n"
    return out


def _format_review(sections: List[ResponseSection]) -> str:
    assessment = _first(sections, "assessment")
    strengths = _all(sections, "strength")
    errors = _all(sections, "error")
    solution = _first(sections, "solution")
    improvement = _first(sections, "improvement")
    feedback = _first(sections, "feedback")

    out = "# Solution Review\n\n"
    if assessment:
        out += f"## Overall Assessment\n{assessment.content}\n\n"
    if strengths:
        out += "## ✅ What You Did Well\n" + "".join(f"{s.content}\n" for s in strengths) + "\n"
    if errors:
        out += "## ❌ Errors Found\n" + "".join(f"{e.content}\n" for e in errors) + "\n"
    if solution:
        out += f"## Correct Solution\n{solution.content}\n\n"
    if improvement:
        out += f"## How to Improve\n{improvement.content}\n\n"

    placed = [s for s in (assessment, solution, improvement, feedback) if s] + strengths + errors
    out += _render_rest(sections, placed, keep_untitled=False)
    if feedback:
        out += f"## Encouragement\n{feedback.content}\n"
    return out


def _format_explanation(sections: List[ResponseSection]) -> str:
    out = ""
    for s in sections:
        out += f"## {s.heading}\n{s.content}\n\n" if s.heading else f"{s.content}\n\n"
    return out or "\n\n".join(s.content for s in sections)


FORMATTERS = {
    "teach": _format_teach,
    "question": _format_question,
    "hint": _format_hint,
    "review": _format_review,
    "explanation": _format_explanation,
}


# ---------- HTML ----------
_HTML_RULES = [
    (re.compile(r"^### (.+)$", re.M), r"<h3>\1</h3>"),
    (re.compile(r"^## (.+)$", re.M), r"<h2>\1</h2>"),
    (re.compile(r"^# (.+)$", re.M), r"<h1>\1</h1>"),
    (re.compile(r"\*\*(.+?)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"\*(.+?)\*"), r"<em>\1</em>"),
    (re.compile(r"```(\w+)?\n([\s\S]+?)```"), r'<pre><code class="language-\1">\2</code></pre>'),
    (re.compile(r"`([^`]+)`"), r"<code>\1</code>"),
    (re.compile(r"^[-*•]\s+(.+)$", re.M), r"<li>\1</li>"),
    (re.compile(r"^\d+\.\s+(.+)$", re.M), r"<li>\1</li>"),
    (re.compile(r"\[([^\]]+)\]\(([^)]+)\)"), r'<a href="\2">\1</a>'),
    (re.compile(r"^>\s+(.+)$", re.M), r"<blockquote>\1</blockquote>"),
    (re.compile(r"\n\n"), "</p><p>"),
    (re.compile(r"\n"), "<br>"),
]
_LI_RUN = re.compile(r"(?:<li>.*?</li>(?:<br>)?)+")


def render_html(markdown: str) -> str:
    """Ordered regex cascade; swap for a markdown library behind this same signature if ever needed."""
    html = markdown
    for pattern, repl in _HTML_RULES:
        html = pattern.sub(repl, html)

    if not html.startswith("<h") and not html.startswith("<p>"):
        html = f"<p>{html}</p>"

    return _LI_RUN.sub(lambda m: f"<ul>{m.group(0)}</ul>", html)


def refine_response(raw_text: str, request_type: str) -> RefinedResponse:
    cleaned = clean_text(raw_text)
    sections = parse_into_sections(cleaned)
    logger.debug(f"Parsed {len(sections)} sections from response")

    formatter = FORMATTERS.get(request_type)
    refined = formatter(sections) if formatter else cleaned

    result = RefinedResponse(
        raw_text=raw_text,
        refined_text=refined,
        html_text=render_html(refined),
        request_type=request_type,
        sections=sections,
        key_takeaways=extract_key_takeaways(sections),
        next_steps=extract_next_steps(sections, request_type),
        title=extract_title(sections),
        summary=sections[0].content[:200] if sections else None,
    )
    logger.info(
        f"Response refined: type={request_type} raw_len={len(raw_text)} refined_len={len(refined)} "
        f"sections={len(sections)} takeaways={len(result.key_takeaways)}"
    )
    return result
