"""
LLM Prompts for Vocabulary Exercise Generation.

Contains prompts for all 4 exercise types:
- Contextual fill - Recall in a natural sentence
- Term matching - Term/translation pairs
- Multiple choice - Discrimination between close terms
- Translation - Productive recall

Each prompt includes:
1. The learner profile derived from the generation policy
2. Type-specific requirements
3. Output format specification (JSON only)
4. Reviewer rejection patterns to avoid, when any exist
"""
from __future__ import annotations

from src.generation.policy import ExerciseType, GenerationPolicy, Level

# =============================================================================
# System Prompt (Applied to All Generation)
# =============================================================================

SYSTEM_PROMPT = """You are an expert language tutor creating vocabulary exercises.

QUALITY RULES:

1. ONE target concept per blank, pair or question
2. Use natural, grammatical sentences with correct accents and articles
3. Distractors must be plausible but unambiguously wrong
4. Match the requested difficulty; never exceed the learner's level
5. Return ONLY valid JSON (no markdown, no code blocks)
"""

# =============================================================================
# Shared Learner Profile
# =============================================================================

PROFILE_SECTION = """Learner Profile:
- Level: {level}
- Current difficulty: {difficulty}/5
- Struggling with: {weak}
- Mastered: {mastered}
- Due for review: {due}
- New vocabulary to introduce: {new}
- Current streak: {streak}
"""

HINTS_SECTION = """
Common rejection patterns to avoid (from reviewer feedback):
{hints}
"""

# =============================================================================
# Exercise Type Prompts
# =============================================================================

CONTEXTUAL_FILL_PROMPT = """{profile}
Create a fill-in-the-blank exercise that:
1. Uses the vocabulary in a natural, conversational context
2. Reviews mastered content while focusing on weaker concepts
3. Matches difficulty level {difficulty}/5
4. Includes 4 plausible options (1 correct, 3 distractors)

Requirements:
- The sentence must have exactly one blank marked with ___
- Difficulty should match learner level ({level})
{hints}
Return ONLY valid JSON:
{{
  "sentence": "...___...",
  "correct_answer": "...",
  "options": ["...", "...", "...", "..."],
  "context": "...",
  "concept_id": "...",
  "difficulty": {difficulty}
}}"""

TERM_MATCHING_PROMPT = """{profile}
Create a term matching exercise with 5-8 term/translation pairs.

Requirements:
- Include at least one concept the learner is struggling with, if any
- Mix in some mastered terms for confidence
- Terms should be thematically related
{hints}
Return ONLY valid JSON:
{{
  "pairs": [{{"term": "...", "translation": "...", "concept_id": "..."}}],
  "category": "...",
  "difficulty": {difficulty}
}}"""

MULTIPLE_CHOICE_PROMPT = """{profile}
Create a multiple choice question about one target concept.

Requirements:
- Prefer a concept that is due for review or weak
- 4 options, exactly one correct
- Distractors should be terms a {level} learner could confuse
{hints}
Return ONLY valid JSON:
{{
  "question": "...",
  "options": ["...", "...", "...", "..."],
  "correct_index": 0,
  "explanation": "...",
  "concept_id": "...",
  "difficulty": {difficulty}
}}"""

TRANSLATION_PROMPT = """{profile}
Create a short translation exercise (one sentence) built around one concept.

Requirements:
- Prefer a concept that is due for review or weak
- Sentence length should suit a {level} learner
- Provide one reference answer and up to two accepted variants
{hints}
Return ONLY valid JSON:
{{
  "source_sentence": "...",
  "reference_translation": "...",
  "accepted_variants": ["..."],
  "concept_id": "...",
  "difficulty": {difficulty}
}}"""

PROMPTS = {
    ExerciseType.CONTEXTUAL_FILL: CONTEXTUAL_FILL_PROMPT,
    ExerciseType.TERM_MATCHING: TERM_MATCHING_PROMPT,
    ExerciseType.MULTIPLE_CHOICE: MULTIPLE_CHOICE_PROMPT,
    ExerciseType.TRANSLATION: TRANSLATION_PROMPT,
}


# =============================================================================
# Prompt Factory
# =============================================================================

def _join(values: list[str], empty: str) -> str:
    return ", ".join(values) if values else empty


def format_hints(hints: list[str]) -> str:
    """Render hints as the avoid-section, or an empty string when there are none."""
    if not hints:
        return ""
    return HINTS_SECTION.format(hints="\n".join(f"- {hint}" for hint in hints))


def get_prompt(policy: GenerationPolicy, hints: list[str] | None = None) -> str:
    """
    Get the prompt for a policy's exercise type.

    Args:
        policy: Generation policy (level, difficulty, concept focus)
        hints: Reviewer-derived cautions; defaults to the policy's hints

    Returns:
        Formatted prompt string
    """
    hints = policy.hints if hints is None else hints
    level = Level(policy.level).value
    profile = PROFILE_SECTION.format(
        level=level,
        difficulty=int(policy.difficulty),
        weak=_join(policy.weak_concepts, "none"),
        mastered=_join(policy.mastered_concepts, "basic terms"),
        due=_join(policy.due_concepts, "none"),
        new=_join(policy.new_concepts, "none"),
        streak=policy.streak,
    )
    template = PROMPTS.get(ExerciseType.parse(policy.exercise_type), CONTEXTUAL_FILL_PROMPT)
    return template.format(
        profile=profile,
        level=level,
        difficulty=int(policy.difficulty),
        hints=format_hints(hints),
    )


def get_system_prompt() -> str:
    """Get the system prompt for LLM initialization."""
    return SYSTEM_PROMPT
