"""Prompt synthesis for studio portraits."""

MAX_PROMPT_LENGTH = 2000


def build_portrait_prompt(image_count: int) -> str:
    """Build the generation prompt from the number of collected photos."""
    subject = (
        "of one person"
        if image_count == 1
        else f"of {image_count} family members together"
    )
    components = [
        "Professional studio family portrait photograph",
        subject,
        "soft diffused studio lighting with natural skin tones",
        "neutral background with subtle gradient",
        "camera at eye level",
        "sharp focus on faces",
        "natural expressions and poses",
        "cohesive composition",
        "photorealistic quality",
        "high resolution professional photography",
    ]
    return (", ".join(components) + ".")[:MAX_PROMPT_LENGTH]
