"""
Prompt enhancement (pre-stage of the enhanced chat path).

Validates the raw request, sanitizes the caller-supplied learning profile,
detects intent and builds the augmented prompt plus system instructions.
Nothing here does I/O; validation failures are raised before any provider
is contacted.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple

from graph.classifier import count_words, estimate_complexity
from graph.errors import PromptValidationError
from services.system_prompts import get_system_prompt

logger = logging.getLogger("tutor-router.enhancer")

MAX_MESSAGE_LENGTH = 10000
MAX_CONTEXT_STRING_LENGTH = 500
MAX_ARRAY_LENGTH = 50
MAX_USER_ID_LENGTH = 100

FALLBACK_MESSAGE = "I'm having trouble thinking right now. Please try again."

LEARNING_STYLES = ("visual", "textual", "kinesthetic", "auditory")
KNOWLEDGE_LEVELS = ("beginner", "intermediate", "advanced")
PACES = ("fast", "moderate", "slow")
DETAIL_LEVELS = ("brief", "moderate", "detailed")

# Checked in this order; first match wins
INTENT_KEYWORDS = {
    "teach": ["teach", "learn", "explain how", "show me how", "help me understand",
              "introduction to", "tutorial", "guide me through", "what is"],
    "question": ["what", "why", "how", "when", "where", "which", "is it", "does",
                 "can", "should", "would", "could"],
    "hint": ["hint", "clue", "help me solve", "stuck on", "don't understand",
             "give me a tip", "point me", "guide"],
    "review": ["review", "check", "evaluate", "grade", "feedback", "correct",
               "is this right", "did i do this correctly", "assess"],
    "explanation": ["explain", "clarify", "define", "meaning of", "difference between",
                    "elaborate", "break down"],
}


def _compile(keywords: List[str]) -> Pattern[str]:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b({alternatives})\b", re.I)


INTENT_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    (intent, _compile(kws)) for intent, kws in INTENT_KEYWORDS.items()
]


@dataclass
class LearningPreferences:
    includeExamples: bool = True
    includeFormulas: bool = True
    detailLevel: str = "moderate"
    codeExamples: bool = True
    historicalContext: bool = False


@dataclass
class UserLearningContext:
    userId: str = ""
    learningStyle: str = "textual"
    knowledgeLevel: str = "beginner"
    preferredPace: str = "moderate"
    previousTopics: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    preferences: LearningPreferences = field(default_factory=LearningPreferences)


@dataclass
class PromptEnhancement:
    original_request: str
    enhanced_request: str
    system_prompt: str
    user_profile: str
    instructions: str
    request_type: str
    detected_intent: str
    estimated_complexity: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnhanceResult:
    """Tagged result of safe_enhance_prompt: exactly one of enhancement/error is set."""
    success: bool
    enhancement: Optional[PromptEnhancement] = None
    error: Optional[PromptValidationError] = None
    fallback_message: str = FALLBACK_MESSAGE


# ---------- Validation ----------
def validate_request(user_request: Any) -> str:
    """Fail-fast validation; returns the trimmed request."""
    if user_request is None:
        raise PromptValidationError("User request is required", "MISSING_REQUEST", "userRequest")
    if not isinstance(user_request, str):
        raise PromptValidationError("User request must be a string", "INVALID_TYPE", "userRequest")

    trimmed = user_request.strip()
    if not trimmed:
        raise PromptValidationError("User request cannot be empty", "EMPTY_REQUEST", "userRequest")
    if len(trimmed) > MAX_MESSAGE_LENGTH:
        raise PromptValidationError(
            f"User request exceeds maximum length of {MAX_MESSAGE_LENGTH} characters",
            "REQUEST_TOO_LONG",
            "userRequest",
        )
    return trimmed


def _pick(value: Any, allowed: Tuple[str, ...], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def _flag(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [s for s in value if isinstance(s, str)][:MAX_ARRAY_LENGTH]
    return [s[:MAX_CONTEXT_STRING_LENGTH] for s in items]


def sanitize_context(raw: Optional[Dict[str, Any]]) -> UserLearningContext:
    """
    Validate each profile field against its allow-list, replacing anything
    invalid or absent with the default. Never raises.
    """
    defaults = UserLearningContext()
    if not isinstance(raw, dict):
        return defaults

    prefs_raw = raw.get("preferences") if isinstance(raw.get("preferences"), dict) else {}
    dp = defaults.preferences
    preferences = LearningPreferences(
        includeExamples=_flag(prefs_raw.get("includeExamples"), dp.includeExamples),
        includeFormulas=_flag(prefs_raw.get("includeFormulas"), dp.includeFormulas),
        detailLevel=_pick(prefs_raw.get("detailLevel"), DETAIL_LEVELS, dp.detailLevel),
        codeExamples=_flag(prefs_raw.get("codeExamples"), dp.codeExamples),
        historicalContext=_flag(prefs_raw.get("historicalContext"), dp.historicalContext),
    )

    user_id = raw.get("userId")
    ctx = UserLearningContext(
        userId=user_id[:MAX_USER_ID_LENGTH] if isinstance(user_id, str) else defaults.userId,
        learningStyle=_pick(raw.get("learningStyle"), LEARNING_STYLES, defaults.learningStyle),
        knowledgeLevel=_pick(raw.get("knowledgeLevel"), KNOWLEDGE_LEVELS, defaults.knowledgeLevel),
        preferredPace=_pick(raw.get("preferredPace"), PACES, defaults.preferredPace),
        previousTopics=_string_list(raw.get("previousTopics")),
        strengths=_string_list(raw.get("strengths")),
        weaknesses=_string_list(raw.get("weaknesses")),
        preferences=preferences,
    )
    logger.debug(
        f"Sanitized context: style={ctx.learningStyle} level={ctx.knowledgeLevel} "
        f"pace={ctx.preferredPace} topics={len(ctx.previousTopics)}"
    )
    return ctx


# ---------- Intent & rendering ----------
def detect_intent(user_request: str) -> str:
    for intent, pattern in INTENT_PATTERNS:
        m = pattern.search(user_request)
        if m:
            logger.debug(f"Detected intent: {intent} (keyword: {m.group(1).lower()})")
            return intent
    return "question" if count_words(user_request) < 10 else "teach"


def _joined(items: List[str]) -> str:
    return ", ".join(items) if items else "Not specified"


def _bool(value: bool) -> str:
    return "true" if value else "false"


def build_user_profile(ctx: UserLearningContext) -> str:
    p = ctx.preferences
    return "\n".join([
        "Learning Profile:",
        f"- Learning Style: {ctx.learningStyle}",
        f"- Level: {ctx.knowledgeLevel}",
        f"- Pace: {ctx.preferredPace}",
        f"- Strengths: {_joined(ctx.strengths)}",
        f"- Areas to improve: {_joined(ctx.weaknesses)}",
        f"- Previous knowledge: {_joined(ctx.previousTopics)}",
        "- Preferences:",
        f"  - Detail level: {p.detailLevel}",
        f"  - Include worked examples: {_bool(p.includeExamples)}",
        f"  - Include code examples: {_bool(p.codeExamples)}",
        f"  - Include formulas: {_bool(p.includeFormulas)}",
        f"  - Historical context: {_bool(p.historicalContext)}",
        "",
        "Please tailor your response to this profile.",
    ])


def build_instructions(request_type: str, ctx: UserLearningContext) -> str:
    level = ctx.knowledgeLevel
    pace = ctx.preferredPace
    p = ctx.preferences

    if request_type == "teach":
        style = {"fast": "concise", "slow": "detailed with many examples"}.get(pace, "balanced")
        lines = [
            "TEACHING INSTRUCTIONS:",
            f"- Adapt content to {level} level",
            f"- Use {style} explanations",
            p.includeExamples and "- Include worked examples with step-by-step solutions",
            p.includeFormulas and "- Include mathematical formulas with explanations",
            p.codeExamples and "- Include relevant code examples where applicable",
            "- Structure with clear sections and headers",
            "- End with practice problems or next steps",
        ]
    elif request_type == "question":
        tone = {"beginner": "simple and accessible", "advanced": "detailed and thorough"}.get(level, "clear")
        lines = [
            "QUESTION ANSWERING INSTRUCTIONS:",
            f"- Give a direct, {tone} answer",
            f"- Explain reasoning appropriate for {level} level",
            p.includeExamples and "- Include a concrete example",
            "- Point out any assumptions made",
            "- Suggest follow-up topics if relevant",
        ]
    elif request_type == "hint":
        lines = [
            "HINT INSTRUCTIONS:",
            "- Do NOT solve the problem completely",
            "- Break down into smaller steps the user can attempt",
            "- Ask guiding questions to lead them to understanding",
            "- Suggest relevant concepts/formulas without applying them",
            "- Encourage independent thinking",
            '- Say "Try this next..." and let them work',
        ]
    elif request_type == "review":
        lines = [
            "REVIEW INSTRUCTIONS:",
            "- Identify what's correct first (be encouraging)",
            "- Find and explain errors clearly",
            "- Provide the correct approach",
            "- Give constructive suggestions for improvement",
            "- Rate the work fairly (be honest but supportive)",
            "- End with encouragement and next steps",
        ]
    elif request_type == "explanation":
        definition = {"beginner": "simple, everyday", "advanced": "precise, technical"}.get(level, "clear")
        analogy = "relatable analogies" if level == "beginner" else "appropriate technical comparisons"
        lines = [
            "EXPLANATION INSTRUCTIONS:",
            f"- Start with a {definition} definition",
            "- Build up complexity gradually",
            f"- Use {analogy}",
            p.includeExamples and "- Provide concrete examples",
            "- Distinguish from similar concepts if relevant",
            "- Highlight key takeaways",
        ]
    else:
        return ""

    return "\n".join(line for line in lines if line)


# ---------- Entry points ----------
def enhance_prompt(
    user_request: Any,
    request_type: Optional[str] = None,
    user_context: Optional[Dict[str, Any]] = None,
) -> PromptEnhancement:
    """Raises PromptValidationError on the first violated validation rule."""
    trimmed = validate_request(user_request)
    ctx = sanitize_context(user_context)

    detected = detect_intent(trimmed)
    final_type = request_type or detected
    complexity = estimate_complexity(trimmed)

    instructions = build_instructions(final_type, ctx)
    profile = build_user_profile(ctx)
    enhanced = f"{instructions}\n\nUSER CONTEXT:\n{profile}\n\nUSER REQUEST:\n{trimmed}"

    logger.info(
        f"Prompt enhanced: type={final_type} intent={detected} complexity={complexity} "
        f"original_len={len(trimmed)} enhanced_len={len(enhanced)}"
    )
    return PromptEnhancement(
        original_request=trimmed,
        enhanced_request=enhanced,
        system_prompt=get_system_prompt(final_type),
        user_profile=profile,
        instructions=instructions,
        request_type=final_type,
        detected_intent=detected,
        estimated_complexity=complexity,
    )


def safe_enhance_prompt(
    user_request: Any,
    request_type: Optional[str] = None,
    user_context: Optional[Dict[str, Any]] = None,
) -> EnhanceResult:
    """Never raises on bad input: validation failures come back as a tagged result."""
    try:
        return EnhanceResult(success=True, enhancement=enhance_prompt(user_request, request_type, user_context))
    except PromptValidationError as e:
        # Metadata only; the request text itself is not logged
        logger.warning(
            f"Prompt validation failed: code={e.code} field={e.field} "
            f"type={type(user_request).__name__} "
            f"length={len(user_request) if isinstance(user_request, str) else 'N/A'}"
        )
        return EnhanceResult(success=False, error=e)
