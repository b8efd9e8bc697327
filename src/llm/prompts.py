# src/llm/prompts.py — v1
"""Prompt templates for the explain, vocabulary and repair calls."""

from __future__ import annotations

import json

CORE_SYSTEM_PROMPT = """\
You are EasyRead, a reading helper for English learners.
Always output valid JSON only.
Write clear and natural English that is easy to understand.
Give enough detail so the learner can understand difficult text without opening another tab.
Stay faithful to the selected text and do not invent details.
Identify words above B1 (B2/C1/C2) in the selected text and return short clear meanings and examples.
If the input is unclear or too long, explain that in notes and lower confidence.
"""

VOCABULARY_SYSTEM_PROMPT = """\
You extract difficult words and explain them for learners.
Return JSON only.
Return only words above B1 (B2, C1, C2).
Include any part of speech: noun, verb, adjective, adverb, preposition, pronoun, determiner, conjunction.
"""

REPAIR_SYSTEM_PROMPT = """\
You repair output into valid JSON for EasyRead.
Return valid JSON only and match the required schema exactly.
If source text is incomplete, infer best-effort missing fields and lower confidence.
"""

# Correction hints appended to the user prompt on a retry.
HINT_NO_TEXT = "Previous answer returned no text. Return complete JSON with clear explanation now."
HINT_EMPTY_EXPLANATION = (
    "explanation was empty. Return a non-empty explanation with at least 2 clear "
    "sentences in easy words."
)
HINT_INVALID_JSON = "Your previous answer was not valid JSON. Return JSON only, no markdown, no extra text."
HINT_NO_COPY = (
    "Do not copy the selected text. Rewrite the meaning in easier words and "
    "different sentence form."
)

_STYLE_GUIDANCE = {
    "simple": "Use very easy words and short direct sentences.",
    "balanced": "Use easy but natural words and include enough detail for a learner to follow each main idea.",
    "detailed": "Use clear learner-friendly words and include key details, links, and reasons from the text.",
}

# (max selection length, sentence guidance); the last row has no upper bound.
_LENGTH_GUIDANCE: dict[str, list[tuple[int | None, str]]] = {
    "simple": [
        (120, "Write 2 to 3 short sentences."),
        (320, "Write 3 to 4 short sentences."),
        (700, "Write 4 to 5 short sentences."),
        (None, "Write 5 to 6 short sentences."),
    ],
    "balanced": [
        (120, "Write 3 to 4 short sentences."),
        (320, "Write 4 to 6 sentences."),
        (700, "Write 6 to 8 sentences."),
        (None, "Write 7 to 9 sentences."),
    ],
    "detailed": [
        (120, "Write 3 to 4 sentences with key detail."),
        (320, "Write 5 to 7 sentences."),
        (700, "Write 7 to 9 sentences."),
        (None, "Write 8 to 10 sentences."),
    ],
}


def style_guidance(mode: str) -> str:
    return _STYLE_GUIDANCE.get(mode, _STYLE_GUIDANCE["balanced"])


def length_guidance(selection_length: int, mode: str) -> str:
    for limit, text in _LENGTH_GUIDANCE.get(mode, _LENGTH_GUIDANCE["balanced"]):
        if limit is None or selection_length <= limit:
            return text
    return ""


def _header(selected_text: str, mode: str) -> str:
    return (
        "Return JSON only that follows the schema.\n"
        "Write a useful explanation for learners.\n"
        f"Requested explanation mode: {mode}.\n"
        f"{style_guidance(mode)}\n"
        f"{length_guidance(len(selected_text), mode)}\n\n"
        f'Selected text:\n"""{selected_text}"""\n'
    )


def build_explain_prompt(
    selected_text: str, candidates: list[str], word_limit: int, mode: str,
) -> str:
    """Combined prompt: explanation plus vocabulary in one answer."""
    return (
        _header(selected_text, mode)
        + "\nCandidate words that may be above B1:\n"
        + json.dumps(candidates)
        + "\n\nRules:\n"
        "1) Put the full explanation in explanation.\n"
        "2) Keep the explanation strictly grounded in the selected text; do not add outside facts.\n"
        "3) Follow the same idea order as the selected text.\n"
        "4) Include only words above B1 in vocabulary (B2/C1/C2 only), "
        f"with at most {word_limit} entries.\n"
        '5) Do not include A1, A2, or B1 words (for example do not include common words like "has" or "been").\n'
        "6) Cover difficult words from all parts of speech, not only nouns.\n"
        "7) Use part_of_speech values from: noun, verb, adjective, adverb, preposition, "
        "pronoun, determiner, conjunction, other.\n"
        "8) Every vocabulary item must have a non-empty definition and example.\n"
        "9) confidence must be 0.0 to 1.0.\n"
        "10) Keep notes short, only when needed.\n"
        "11) Do not copy full sentences from the selected text. Paraphrase in easier words.\n"
    )


def build_explanation_prompt(selected_text: str, mode: str) -> str:
    """Explanation-only prompt used by the long and chunked paths."""
    return (
        _header(selected_text, mode)
        + "\nRules:\n"
        "1) Put the full explanation in explanation.\n"
        "2) Keep the explanation strictly grounded in the selected text; do not add outside facts.\n"
        "3) Follow the same idea order as the selected text.\n"
        "4) Do not include word-list entries in this step.\n"
        "5) Keep notes short, only when needed.\n"
        "6) Do not copy full sentences from the selected text. Paraphrase in easier words.\n"
    )


def build_vocabulary_prompt(selected_text: str, candidates: list[str], word_limit: int) -> str:
    return (
        'Return JSON only with key "vocabulary".\n\n'
        f'Selected text:\n"""{selected_text}"""\n\n'
        "Candidate hints (not all are hard enough):\n"
        f"{json.dumps(candidates)}\n\n"
        "Rules:\n"
        "1) Include the most useful words above B1 that appear in the selected text.\n"
        f"2) Return at most {word_limit} entries.\n"
        "3) Do not include A1, A2, or B1 words.\n"
        "4) Set level only to B2, C1, or C2.\n"
        "5) Fill lemma, part_of_speech, level, definition, example.\n"
        "6) definition and example must not be empty.\n"
    )


def build_repair_prompt(raw_text: str) -> str:
    return (
        "Convert the following source into valid EasyRead JSON only.\n\n"
        f'Source:\n"""{raw_text.strip()}"""\n'
    )


def with_hint(prompt: str, hint: str) -> str:
    """Append a correction hint to a user prompt."""
    return f"{prompt}\n{hint}".strip() if hint else prompt
