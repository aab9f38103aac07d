"""
Unit tests for the local (non-AI) fallbacks.
"""

from ai_optimizer.core.fallbacks import (
    SmartProcessor,
    TextComplexity,
    check_text_complexity,
    extract_keywords,
    find_duplicates,
    format_text,
    keyword_flashcards,
    simple_question_generation,
    simple_summarize,
)

BIOLOGY = (
    "The cell is the basic unit of life. Cells contain organelles and membranes! "
    "Ribosomes build proteins?"
)

SENTENCE = "The mitochondria is the powerhouse of the cell and it produces energy for the organism daily. "
COMPLEX = SENTENCE * 8  # 128 words, 8 sentences


class TestSimpleSummarize:

    def test_first_sentences(self):
        result = simple_summarize(BIOLOGY, max_sentences=2)
        assert result.success is True
        assert result.used_ai is False
        assert result.data == "The cell is the basic unit of life. Cells contain organelles and membranes."

    def test_too_short(self):
        result = simple_summarize("Too short.")
        assert result.success is False
        assert result.reason == "Text too short for summarization"

    def test_no_sentences(self):
        result = simple_summarize("." * 60)
        assert result.success is False
        assert result.reason == "No sentences found"


class TestExtractKeywords:

    def test_frequency_order(self):
        result = extract_keywords("Python python PYTHON code code testing, with this", 2)
        assert result.success is True
        assert result.data == ["python", "code"]

    def test_ties_keep_first_appearance(self):
        result = extract_keywords("alpha beta gamma alpha beta gamma", 3)
        assert result.data == ["alpha", "beta", "gamma"]

    def test_skips_short_words_and_stopwords(self):
        result = extract_keywords("the cat sat with those their animals", 5)
        assert result.data == ["animals"]

    def test_too_short(self):
        result = extract_keywords("tiny")
        assert result.success is False


class TestTextComplexity:

    def test_simple_text(self):
        complexity = check_text_complexity("One. Two.")
        assert complexity.is_simple is True
        assert complexity.word_count == 2
        assert complexity.reason == "Short text. Few sentences."

    def test_complex_text(self):
        complexity = check_text_complexity(COMPLEX)
        assert complexity.is_simple is False
        assert complexity.word_count == 128
        assert complexity.reason == "Complex text requiring AI processing."

    def test_long_single_sentence(self):
        complexity = check_text_complexity(" ".join(["word"] * 120))
        assert complexity.is_simple is False
        assert complexity.reason == "Few sentences."


class TestQuestionGeneration:

    def test_what_questions(self):
        text = "Photosynthesis converts light into energy. Plants release oxygen during the day."
        result = simple_question_generation(text)
        assert result.success is True
        assert result.data == [
            "What photosynthesis converts light into energy?",
            "What plants release oxygen during the day?",
        ]

    def test_count_limits_questions(self):
        text = "Photosynthesis converts light into energy. Plants release oxygen during the day."
        assert len(simple_question_generation(text, count=1).data) == 1

    def test_complex_text_needs_ai(self):
        result = simple_question_generation(COMPLEX)
        assert result.success is False
        assert isinstance(result.data, TextComplexity)

    def test_no_usable_sentences(self):
        result = simple_question_generation("Short one. Tiny.")
        assert result.success is False
        assert result.reason == "Could not generate questions from text"


class TestKeywordFlashcards:

    def test_cards_use_first_sentence_with_term(self):
        result = keyword_flashcards(BIOLOGY, 5)

        assert result.success is True
        assert [card["front"] for card in result.data] == ["cell", "basic", "unit", "life", "cells"]
        assert result.data[0] == {
            "id": "cell",
            "front": "cell",
            "back": "The cell is the basic unit of life.",
            "cloze": "The ____ is the basic unit of life.",
            "source_info": None,
        }
        assert result.data[4]["back"] == "Cells contain organelles and membranes."
        assert result.data[4]["cloze"] == "____ contain organelles and membranes."

    def test_no_keywords(self):
        result = keyword_flashcards("It is a cat. It is on a mat. Go to it.")
        assert result.success is False
        assert result.reason == "Could not build flashcards from text"

    def test_too_short(self):
        assert keyword_flashcards("short").success is False


class TestFormattingAndDuplicates:

    def test_format_text(self):
        result = format_text("hello   world .this is  fine")
        assert result.data == "Hello world. This is fine"

    def test_find_duplicates(self):
        result = find_duplicates(["Math", "math", "Math", "Bio", "math"])
        assert result.success is True
        assert result.data == ["math", "Math"]

    def test_no_duplicates(self):
        assert find_duplicates(["a", "b"]).data == []


class TestSmartProcessor:
    """Local processing is chosen only for simple input."""

    def test_summarize_simple_text_locally(self):
        result = SmartProcessor().summarize(BIOLOGY)
        assert result.success is True
        assert result.used_ai is False

    def test_summarize_max_length_controls_sentences(self):
        result = SmartProcessor().summarize(BIOLOGY, max_length=50)
        assert result.data == "The cell is the basic unit of life."

    def test_summarize_complex_text_needs_ai(self):
        result = SmartProcessor().summarize(COMPLEX)
        assert result.success is False
        assert result.reason == "Text requires AI processing"
        assert result.data.word_count == 128

    def test_keywords_local_below_200_words(self):
        assert SmartProcessor().extract_keywords(COMPLEX).success is True
        assert SmartProcessor().extract_keywords(COMPLEX * 2).success is False

    def test_generate_questions(self):
        assert SmartProcessor().generate_questions(BIOLOGY).success is True
        assert SmartProcessor().generate_questions(COMPLEX).success is False

    def test_flashcards_capped_at_five_locally(self):
        result = SmartProcessor().generate_flashcards(BIOLOGY, count=10)
        assert result.success is True
        assert len(result.data) == 5

    def test_flashcards_long_text_needs_ai(self):
        result = SmartProcessor().generate_flashcards(COMPLEX)
        assert result.success is False
        assert result.reason == "Text requires AI processing for flashcard generation"

    def test_delegates(self):
        processor = SmartProcessor()
        assert processor.format("a  b").data == "A b"
        assert processor.find_duplicates(["x", "X"]).data == ["X"]
