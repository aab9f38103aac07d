"""
Local processing fallbacks for common AI operations.

Deterministic text transforms that avoid a provider call for simple input.
A result with ``success=False`` means the caller should fall through to the
AI path.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

SIMPLE_MAX_WORDS = 100
SIMPLE_MAX_SENTENCES = 5
LOCAL_KEYWORD_MAX_WORDS = 200
LOCAL_FLASHCARD_MAX_CHARS = 500
LOCAL_FLASHCARD_MAX_CARDS = 5

STOPWORDS = frozenset({
    "that", "this", "with", "from", "they", "have", "been", "were",
    "which", "their", "there", "these", "those",
})

_SENTENCE_END = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class ProcessingResult:
    success: bool
    data: Any = None
    used_ai: bool = False
    reason: str = ""


@dataclass(frozen=True)
class TextComplexity:
    is_simple: bool
    word_count: int
    sentence_count: int
    reason: str


def _sentences(text: str) -> List[str]:
    return _SENTENCE_END.split(text)


def simple_summarize(text: str, max_sentences: int = 3) -> ProcessingResult:
    """Extractive summary: the first ``max_sentences`` sentences."""
    if not text or len(text) < 50:
        return ProcessingResult(success=False, reason="Text too short for summarization")

    sentences = [s.strip() for s in _sentences(text) if s.strip()]
    if not sentences:
        return ProcessingResult(success=False, reason="No sentences found")

    summary = ". ".join(sentences[:max_sentences]) + "."
    return ProcessingResult(success=True, data=summary, reason="Extractive summarization")


def extract_keywords(text: str, max_keywords: int = 5) -> ProcessingResult:
    """Frequency-based keywords, ties kept in order of first appearance."""
    if not text or len(text) < 20:
        return ProcessingResult(success=False, reason="Text too short for keyword extraction")

    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    counts = Counter(word for word in words if len(word) > 3 and word not in STOPWORDS)
    keywords = [word for word, _ in counts.most_common(max_keywords)]

    return ProcessingResult(success=True, data=keywords, reason="Frequency-based keyword extraction")


def keyword_flashcards(text: str, count: int = 5) -> ProcessingResult:
    """Term cards from the top keywords and the first sentence using each.

    Cards have the same fields the flashcard prompt asks for: ``id``,
    ``front`` (the term), ``back`` (its sentence) and ``cloze`` (the sentence
    with the term blanked out).
    """
    keywords = extract_keywords(text, count)
    if not keywords.success:
        return keywords

    sentences = [s.strip() for s in _sentences(text) if s.strip()]
    cards = []
    for keyword in keywords.data:
        pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
        sentence = next((s for s in sentences if pattern.search(s)), None)
        if sentence is None:
            continue
        cards.append({
            "id": keyword.replace("_", "-"),
            "front": keyword,
            "back": f"{sentence}.",
            "cloze": f"{pattern.sub('____', sentence, count=1)}.",
            "source_info": None,
        })

    if not cards:
        return ProcessingResult(success=False, reason="Could not build flashcards from text")

    return ProcessingResult(success=True, data=cards, reason="Keyword flashcards")


def check_text_complexity(text: str) -> TextComplexity:
    """Classify text as simple (short, few sentences) or needing AI."""
    word_count = len(text.split())
    sentence_count = len(_sentences(text))
    is_simple = word_count < SIMPLE_MAX_WORDS and sentence_count < SIMPLE_MAX_SENTENCES

    reasons = []
    if word_count < SIMPLE_MAX_WORDS:
        reasons.append("Short text.")
    if sentence_count < SIMPLE_MAX_SENTENCES:
        reasons.append("Few sentences.")
    if not reasons:
        reasons.append("Complex text requiring AI processing.")

    return TextComplexity(
        is_simple=is_simple,
        word_count=word_count,
        sentence_count=sentence_count,
        reason=" ".join(reasons),
    )


def simple_question_generation(text: str, count: int = 3) -> ProcessingResult:
    """Turn the leading sentences of simple text into "What ...?" questions."""
    complexity = check_text_complexity(text)
    if not complexity.is_simple:
        return ProcessingResult(
            success=False,
            data=complexity,
            reason="Text too complex for simple question generation",
        )

    sentences = [s for s in _sentences(text) if len(s.strip()) > 10]
    questions = []
    for sentence in sentences[:count]:
        sentence = sentence.strip()
        if len(sentence) > 20:
            questions.append(f"What {sentence[0].lower()}{sentence[1:]}?")

    if not questions:
        return ProcessingResult(success=False, reason="Could not generate questions from text")

    return ProcessingResult(
        success=True,
        data=questions,
        reason="Simple question generation from sentences",
    )


def format_text(text: str) -> ProcessingResult:
    """Normalize whitespace and punctuation spacing, capitalize sentences."""
    formatted = re.sub(r"\s+", " ", text)
    formatted = re.sub(r"\s+([.!?,:;])", r"\1", formatted)
    formatted = re.sub(r"([.!?,:;])(?=\S)", r"\1 ", formatted)
    formatted = re.sub(r"(^\s*\w|[.!?]\s*\w)", lambda m: m.group(0).upper(), formatted)

    return ProcessingResult(success=True, data=formatted.strip(), reason="Text formatting and cleanup")


def find_duplicates(items: Sequence[str]) -> ProcessingResult:
    """Items repeated case- and whitespace-insensitively, each reported once."""
    seen = set()
    duplicates: List[str] = []
    for item in items:
        normalized = item.lower().strip()
        if normalized not in seen:
            seen.add(normalized)
        elif item not in duplicates:
            duplicates.append(item)

    return ProcessingResult(success=True, data=duplicates, reason="Simple duplicate detection")


class SmartProcessor:
    """Chooses local processing when the input is simple enough."""

    def summarize(self, text: str, max_length: Optional[int] = None) -> ProcessingResult:
        complexity = check_text_complexity(text)
        if complexity.is_simple:
            max_sentences = math.ceil(max_length / 50) if max_length else 3
            return simple_summarize(text, max_sentences)

        return ProcessingResult(
            success=False,
            data=complexity,
            reason="Text requires AI processing",
        )

    def extract_keywords(self, text: str, count: int = 5) -> ProcessingResult:
        complexity = check_text_complexity(text)
        if complexity.word_count < LOCAL_KEYWORD_MAX_WORDS:
            return extract_keywords(text, count)

        return ProcessingResult(
            success=False,
            data=complexity,
            reason="Text requires AI processing for keyword extraction",
        )

    def generate_flashcards(self, text: str, count: int = 10) -> ProcessingResult:
        """Keyword flashcards for short text, at most five cards."""
        if len(text) < LOCAL_FLASHCARD_MAX_CHARS:
            return keyword_flashcards(text, min(count, LOCAL_FLASHCARD_MAX_CARDS))

        return ProcessingResult(
            success=False,
            reason="Text requires AI processing for flashcard generation",
        )

    def generate_questions(self, text: str, count: int = 3) -> ProcessingResult:
        complexity = check_text_complexity(text)
        if complexity.is_simple:
            return simple_question_generation(text, count)

        return ProcessingResult(
            success=False,
            data=complexity,
            reason="Text requires AI processing for question generation",
        )

    def format(self, text: str) -> ProcessingResult:
        return format_text(text)

    def find_duplicates(self, items: Sequence[str]) -> ProcessingResult:
        return find_duplicates(items)
