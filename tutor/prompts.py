"""
PAIDEIA - Prompt Construction

System instructions and request prompts for each tutor operation.
Wording is deliberately plain; only the requested JSON shapes are relied
upon by the parsers in tutor.schemas.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from domain.entities import PromptConfig, QuestionContext, TrainingUnit

LANGUAGE_NAMES: Dict[str, str] = {
    "es": "Spanish",
    "es-es": "Spanish",
    "en": "English",
    "en-us": "English",
}
DEFAULT_LANGUAGE_NAME = "Spanish"


def language_name(locale: Optional[str]) -> str:
    """Map a locale code to the language name used in prompts."""
    if not locale:
        return DEFAULT_LANGUAGE_NAME
    return LANGUAGE_NAMES.get(locale.strip().lower(), DEFAULT_LANGUAGE_NAME)


@dataclass(frozen=True)
class Prompt:
    """A system instruction plus the user-turn text."""
    system: str
    user: str


def _apply_config(prompt: Prompt, config: Optional[PromptConfig]) -> Prompt:
    if config is None:
        return prompt
    system = config.base_prompt or prompt.system
    user = prompt.user
    if config.user_prompts:
        extras = "\n".join(f"- {p}" for p in config.user_prompts)
        user = f"{user}\n\nAdditional instructions:\n{extras}"
    return Prompt(system=system, user=user)


# =============================================================================
# Form selection
# =============================================================================

FORM_SELECTION_SYSTEM = """\
You are a Koine Greek exegesis tutor.
Select the grammatical forms of the passage whose tense, voice, mood or case
most affects its meaning. Prefer main verbs, participles and key
prepositions; skip common articles, conjunctions and proper names unless
their function is unusual. Select between 2 and 5 forms.

Return a JSON array of strings, each one a Greek word or phrase from the text.
Example: ["ἠγάπησεν", "ἔδωκεν"]
"""


def form_selection(
    passage: str, language: str, config: Optional[PromptConfig] = None
) -> Prompt:
    user = (
        f'Identify the exegetically significant Greek forms in this passage:\n"{passage}"\n\n'
        f"Write any commentary in {language}."
    )
    return _apply_config(Prompt(FORM_SELECTION_SYSTEM, user), config)


# =============================================================================
# Training unit
# =============================================================================

TRAINING_UNIT_SYSTEM = """\
You are a Koine Greek exegesis tutor writing one training unit for one form.
The unit has five parts:
1. identification: what the form is (for example "aorist active indicative")
2. recognitionGuidance (optional): the visible markers that give it away
3. functionInContext: its syntactic role in this passage
4. significance: why the grammar matters for the meaning of the passage
5. reflectiveQuestion: a question that makes the student think

Stay on grammar and its contribution to meaning. Do not write sermon points.

Return one JSON object:
{
  "identification": "string",
  "recognitionGuidance": "string",
  "functionInContext": "string",
  "significance": "string",
  "reflectiveQuestion": "string",
  "greekForm": {
    "text": "string",
    "transliteration": "string",
    "lemma": "string",
    "morphology": "string",
    "gloss": "string",
    "grammaticalCategory": "string"
  }
}
"""


def training_unit(
    form: str, passage: str, language: str, config: Optional[PromptConfig] = None
) -> Prompt:
    user = (
        f'Write a training unit for the form "{form}" in this passage:\n"{passage}"\n\n'
        f"The identification, recognitionGuidance, functionInContext, significance "
        f"and reflectiveQuestion fields must be written in {language}."
    )
    return _apply_config(Prompt(TRAINING_UNIT_SYSTEM, user), config)


# =============================================================================
# Evaluation
# =============================================================================

FEEDBACK_SYSTEM = """\
You are a Koine Greek exegesis tutor grading a student's answer to the
reflective question of a training unit. Judge whether the answer is
substantially correct, then give short feedback that affirms what is right
and corrects what is wrong.

Return one JSON object: {"feedback": "string", "isCorrect": true | false}
"""


def feedback(unit: TrainingUnit, user_answer: str, language: str) -> Prompt:
    unit_summary = json.dumps(
        {
            "form": unit.greek_form.text,
            "identification": unit.identification,
            "function": unit.function_in_context,
            "question": unit.reflective_question,
        },
        ensure_ascii=False,
    )
    user = (
        f"Training unit:\n{unit_summary}\n\n"
        f"Student answer:\n{user_answer}\n\n"
        f"Write the feedback in {language}."
    )
    return Prompt(FEEDBACK_SYSTEM, user)


# =============================================================================
# Morphology
# =============================================================================

MORPHOLOGY_SYSTEM = """\
You are a Koine Greek morphology tutor. Split the word into its morphemes
and explain what each contributes, focusing on patterns a student can learn
to recognize.

Component types:
- prefix: prepositional or intensifying prefixes
- root: the lexical base
- formative: theme vowels and tense or voice markers
- ending: personal or case endings
- other: augments and reduplication

Return one JSON object:
{"word": "string",
 "components": [{"part": "string", "type": "prefix|root|formative|ending|other", "meaning": "string"}],
 "summary": "string"}
The summary says what the form reveals about tense, voice, mood, person and
number, or case, number and gender.
"""


def morphology(word: str, passage: str, language: str) -> Prompt:
    user = (
        f"Break down the Greek word {word} as it appears in:\n\"{passage}\"\n\n"
        f"Write the meanings and the summary in {language}."
    )
    return Prompt(MORPHOLOGY_SYSTEM, user)


# =============================================================================
# Free questions
# =============================================================================

GENERAL_QUESTION_SYSTEM = """\
You are an expert in New Testament Koine Greek answering a general question.
Structure the answer with markdown headers: Key Concept, Use in the New
Testament, Technical Details, Exegetical Implications, Examples (with
references). Use bold for technical terms. Answer in {language}.
"""

CONTEXTUAL_QUESTION_SYSTEM = """\
You are a tutor in New Testament Greek and exegesis answering a student's
question about one word in its passage. Structure the answer with markdown
headers: Key Concept, In This Passage, Technical Details, Pastoral
Implications, Related New Testament Examples. Use bold for technical terms.
Answer in {language}.
"""


def free_question(question: str, context: QuestionContext, language: str) -> Prompt:
    if not context.greek_word and not context.passage:
        return Prompt(GENERAL_QUESTION_SYSTEM.format(language=language), question)

    user = (
        f'The student is studying the Greek word "{context.greek_word}" '
        f'({context.transliteration}, "{context.gloss}") in {context.passage}.\n\n'
        f"Word context:\n"
        f"- Identification: {context.identification}\n"
        f"- Function in context: {context.function_in_context}\n"
        f"- Significance: {context.significance}\n\n"
        f"Question:\n{question}"
    )
    return Prompt(CONTEXTUAL_QUESTION_SYSTEM.format(language=language), user)


# =============================================================================
# Quiz
# =============================================================================

QUIZ_SYSTEM = """\
You write comprehension quizzes for students of New Testament Koine Greek.
Question order follows a progression:
1. morphological or grammatical identification
2. syntactic or contextual function
3. theological or exegetical implication
Allowed types: "multiple-choice" with exactly 4 options (one correct, three
plausible distractors) and "true-false" with options matching the answer
language's words for true and false. The correctAnswer must repeat one of
the options verbatim. Explanations are 2-3 sentences saying why the answer
is right.

Return strict JSON:
{"questions": [{"type": "multiple-choice" | "true-false", "question": "string",
  "options": ["string"], "correctAnswer": "string", "explanation": "string"}]}
"""


def quiz(unit: TrainingUnit, count: int, language: str) -> Prompt:
    form = unit.greek_form
    user = (
        f"Write exactly {count} quiz questions about this word.\n\n"
        f"- Greek word: {form.text}\n"
        f"- Transliteration: {form.transliteration}\n"
        f"- Lemma: {form.lemma}\n"
        f"- Gloss: {form.gloss}\n"
        f"- Identification: {unit.identification}\n"
        f"- Function in context: {unit.function_in_context}\n"
        f"- Significance: {unit.significance}\n\n"
        f"All questions, options and explanations must be in {language}."
    )
    return Prompt(QUIZ_SYSTEM, user)


# =============================================================================
# Syntax analysis
# =============================================================================

SYNTAX_SYSTEM = """\
You are a Koine Greek syntax expert. Divide the passage into clauses and
describe how they depend on each other.

Clause types: MAIN, SUBORDINATE_PURPOSE, SUBORDINATE_RESULT,
SUBORDINATE_CAUSAL, SUBORDINATE_CONDITIONAL, SUBORDINATE_TEMPORAL,
SUBORDINATE_INDIRECT_QUESTION, PARTICIPIAL, INFINITIVAL, RELATIVE.

Rules:
- every word index belongs to exactly one clause
- parentClauseId is null for root-level clauses
- mainVerbIndex, when given, is one of the clause's wordIndices
- rootClauseId names the principal MAIN clause

Return strict JSON:
{"clauses": [{"id": "c1", "type": "MAIN", "wordIndices": [0, 1],
  "mainVerbIndex": 1, "parentClauseId": null, "conjunction": null,
  "translation": "string", "syntacticFunction": "string"}],
 "rootClauseId": "c1",
 "structureDescription": "string"}
"""


def syntax_analysis(reference: str, words: Sequence[str], language: str) -> Prompt:
    indexed = "\n".join(f"{i}: {w}" for i, w in enumerate(words))
    user = (
        f"Passage: {reference}\n"
        f"Words ({len(words)}):\n{indexed}\n\n"
        f"Write translations, functions and the structure description in {language}."
    )
    return Prompt(SYNTAX_SYSTEM, user)
