"""
Prompt construction for quiz generation.
"""
from schemas import QuizConfig

SYSTEM_PROMPT = (
    "You are a Quiz Generator AI. Only respond with a JSON array of question objects. "
    "Ensure proper JSON escaping for all strings and never add text outside the array."
)


def option_label(index: int) -> str:
    """Letter used to label an option: 0 -> 'a', 1 -> 'b', ..."""
    if index < 26:
        return chr(ord("a") + index)
    return str(index + 1)


def _type_plan(config: QuizConfig) -> str:
    lines = []
    if config.single_correct:
        last = config.single_correct - 1
        span = f"index {last}" if last == 0 else f"indices 0 to {last}"
        lines.append(
            f"- First block: {config.single_correct} question(s) ({span}) of type \"single\", "
            f"each with EXACTLY 1 correct answer."
        )
    if config.multiple_correct:
        first = config.single_correct
        last = config.total_questions - 1
        span = f"index {first}" if first == last else f"indices {first} to {last}"
        block = "Second block" if config.single_correct else "Only block"
        lines.append(
            f"- {block}: {config.multiple_correct} question(s) ({span}) of type \"multiple\", "
            f"each with 2 or more correct answers."
        )
    return "\n".join(lines)


def build_quiz_prompt(chunk_text: str, config: QuizConfig) -> str:
    """
    Render the instruction prompt for one chunk.

    The result depends only on its arguments, so identical inputs always
    produce identical prompts.
    """
    n_options = config.options_per_question
    last_option = n_options - 1
    example_labels = ", ".join(
        f'"{option_label(i)}) Option {i + 1}"' for i in range(min(n_options, 3))
    )
    if n_options > 3:
        example_labels += ", ..."

    return f"""Create a quiz following these EXACT requirements.

CONTENT TO USE:
<<<CONTENT
{chunk_text}
CONTENT>>>

REQUIREMENTS:
1. Generate EXACTLY {config.total_questions} questions in total (no more, no less), in this order:
{_type_plan(config)}
2. Each question must have EXACTLY {n_options} options, labelled like {example_labels}.
3. "correctAnswers" lists zero-based option indices between 0 and {last_option} (e.g. [0] for the first option, [1, 2] for the second and third).
4. "type" is either "single" or "multiple".

OUTPUT FORMAT:
A JSON array of objects, in question order:
[
  {{
    "question": "Question text",
    "type": "single",
    "options": [{example_labels}],
    "correctAnswers": [0]
  }}
]

STRICT RULES:
- Respond ONLY with the JSON array. Do NOT include any text, explanation or markdown outside the array.
- Ensure all strings are properly escaped (use \\" for quotes inside strings).
- Do NOT use trailing commas.

Generate the quiz now:"""
