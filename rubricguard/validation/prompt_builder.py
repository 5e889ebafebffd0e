"""
Prompt builder for justification judgments.

Constructs prompts asking the model whether a grader's written
justification, and the score it accompanies, are supported by the
submission text.
"""

from rubricguard.models import JudgmentStatus, RubricCriterion


class PromptBuilder:
    """Builds judgment prompts with a fixed JSON output contract."""

    SYSTEM_PROMPT = """You are RubricGuard, an expert assistant for academic grading.
Your task is to validate a grader's assessment of a student submission against a single rubric criterion.
Be objective and concise.

OUTPUT RULES:
- The referencedExcerpt MUST be an exact quote from the submission text.
- Your output MUST be a single valid JSON object matching the format specified.
- Do not add any text before or after the JSON."""

    @staticmethod
    def build_judgment_prompt(
        submission_text: str,
        criterion: RubricCriterion,
        score: float,
        explanation: str,
    ) -> str:
        """
        Build the user prompt for judging one justification.

        Args:
            submission_text: The student's submission.
            criterion: The criterion being scored.
            score: The grader's proposed score.
            explanation: The grader's justification.

        Returns:
            The formatted user prompt.
        """
        statuses = " | ".join(f'"{s.value}"' for s in JudgmentStatus)

        return f"""VALIDATION TASK

STUDENT SUBMISSION:
---BEGIN SUBMISSION---
{submission_text}
---END SUBMISSION---

RUBRIC CRITERION:
- Name: "{criterion.name}"
- Description: "{criterion.description}"
- Max Points: {criterion.max_points:g}

GRADER'S ASSESSMENT:
- Score: {score:g} / {criterion.max_points:g}
- Justification: "{explanation}"

INSTRUCTIONS:
1. Does the justification accurately reflect the content of the submission?
2. Is the score consistent with the rubric description, the submission and the justification?
   A low score should correspond to weaknesses mentioned, and a high score to strengths.
3. Quote the passage of the submission your verdict relies on.

OUTPUT FORMAT (respond with ONLY this JSON, no other text):
{{
  "status": {statuses},
  "referencedExcerpt": "<exact quote from the submission>",
  "reasoning": "<1-2 sentences comparing the justification to the submission and rubric>",
  "suggestedRefinement": "<how the grader could strengthen or correct the justification>"
}}"""

    @staticmethod
    def get_system_prompt() -> str:
        """Get the system prompt for judgments."""
        return PromptBuilder.SYSTEM_PROMPT
