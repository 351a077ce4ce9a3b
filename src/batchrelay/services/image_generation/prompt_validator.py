"""Prompt validation for image generation.

Validates text prompts before a batch record is created.
"""

from batchrelay.services.exceptions import BatchValidationError


def validate_prompt(prompt: object) -> str:
    """Validate prompt text for image generation.

    Args:
        prompt: Text prompt from the batch form

    Returns:
        Prompt with surrounding whitespace removed

    Raises:
        BatchValidationError: If prompt is missing, not a string, or blank
    """
    if prompt is None:
        raise BatchValidationError("Missing prompt")

    if not isinstance(prompt, str):
        raise BatchValidationError(f"Prompt must be a string, got {type(prompt).__name__}")

    prompt = prompt.strip()
    if not prompt:
        raise BatchValidationError("Missing prompt")

    return prompt
