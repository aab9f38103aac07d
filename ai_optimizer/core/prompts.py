"""
Optimized prompt templates for AI operations.

Each feature has two tiers: ``short`` (the more detailed wording) and
``concise`` (the terse one). Everything here is pure and stateless.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .token_counter import estimate_tokens

SHORT = "short"
CONCISE = "concise"
VERSIONS = (SHORT, CONCISE)

# Content below this many words gets the concise tier
CONCISE_WORD_THRESHOLD = 200

PROMPT_TEMPLATES: Dict[str, Dict[str, str]] = {
    "flashcards": {
        SHORT: """Generate {{count}} flashcards from this text. Each flashcard must have:
- id: kebab-case identifier
- front: key term or question
- back: definition or answer
- cloze: fill-in-the-blank sentence with ____
- source_info: optional source

Format as JSON array. Use only information from the text.

Text: {{text}}""",
        CONCISE: """Create {{count}} flashcards:
- id (kebab-case)
- front (term/question)
- back (definition/answer)
- cloze (____ sentence)
- source_info (optional)

JSON array. Text facts only.

Text: {{text}}""",
    },
    "summary": {
        SHORT: """Summarize this text in {{length}} bullet points. Focus on key facts and main ideas.

Text: {{text}}""",
        CONCISE: """{{length}} bullet summary of key points:

Text: {{text}}""",
    },
    "quiz": {
        SHORT: """Create a {{difficulty}} quiz with {{questions}} multiple-choice questions about this topic.

Each question must have:
- question: the question text
- options: array of 4 choices (A, B, C, D)
- correctAnswer: the correct option letter
- explanation: why it's correct

Format as JSON array.

Topic: {{topic}}
Text: {{text}}""",
        CONCISE: """{{questions}} multiple-choice questions ({{difficulty}}):

Format: {question, options: [A,B,C,D], correctAnswer, explanation}

JSON array.

Topic: {{topic}}
Text: {{text}}""",
    },
    "notes": {
        SHORT: """Create structured notes from this text. Organize into logical sections with headings and bullet points.

Text: {{text}}""",
        CONCISE: """Structured notes with headings and bullets:

Text: {{text}}""",
    },
    "keywords": {
        SHORT: """Extract {{count}} most important keywords from this text. Return as JSON array of strings.

Text: {{text}}""",
        CONCISE: """{{count}} keywords (JSON array):

Text: {{text}}""",
    },
    "questions": {
        SHORT: """Generate {{count}} study questions from this text. Mix factual and conceptual questions.

Text: {{text}}""",
        CONCISE: """{{count}} study questions:

Text: {{text}}""",
    },
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class PromptComparison:
    original_tokens: int
    optimized_tokens: int
    savings: int
    percentage: float


@dataclass(frozen=True)
class BatchPrompt:
    combined_prompt: str
    total_tokens: int
    individual_tokens: List[int]


def fill_template(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as is."""
    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def get_optimized_prompt(
    feature: str,
    variables: Mapping[str, Any],
    version: str = SHORT
) -> str:
    """Render the template for a feature and tier.

    Raises:
        ValueError: If no template exists for the feature or version
    """
    templates = PROMPT_TEMPLATES.get(feature)
    if templates is None:
        raise ValueError(f"No template found for feature: {feature}")
    template = templates.get(version)
    if template is None:
        raise ValueError(f"No {version!r} template found for feature: {feature}")

    return fill_template(template, variables)


def compare_prompts(original: str, optimized: str) -> PromptComparison:
    """Estimated token savings of an optimized prompt over the original."""
    original_tokens = estimate_tokens(original)
    optimized_tokens = estimate_tokens(optimized)
    savings = original_tokens - optimized_tokens
    percentage = (savings / original_tokens) * 100 if original_tokens > 0 else 0.0

    return PromptComparison(
        original_tokens=original_tokens,
        optimized_tokens=optimized_tokens,
        savings=savings,
        percentage=round(percentage, 2),
    )


def optimize_batch_prompts(operations: Sequence[Mapping[str, Any]]) -> BatchPrompt:
    """Combine several template renders into one prompt.

    Each operation is a mapping with ``feature``, ``variables`` and an
    optional ``version`` (default concise).
    """
    prompts = []
    token_counts = []

    for operation in operations:
        feature = operation["feature"]
        prompt = get_optimized_prompt(
            feature,
            operation.get("variables", {}),
            operation.get("version") or CONCISE,
        )
        prompts.append(f"{feature.upper()}:\n{prompt}")
        token_counts.append(estimate_tokens(prompt))

    combined = "\n\n---\n\n".join(prompts)
    return BatchPrompt(
        combined_prompt=combined,
        total_tokens=estimate_tokens(combined),
        individual_tokens=token_counts,
    )


def select_prompt_version(content: str, feature: Optional[str] = None) -> str:
    """Pick the template tier from input size alone.

    Short content gets the concise prompt, longer content the detailed one.
    """
    word_count = len(content.split())
    return CONCISE if word_count < CONCISE_WORD_THRESHOLD else SHORT
