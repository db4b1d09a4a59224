"""
Default prompt templates for the AI gateway.

These are replaceable configuration: the web app merges the `prompts:` section
of its config over these defaults.
"""

ANALYZE_FRAME_PROMPT = """Analyze this image and respond with ONLY a JSON object (no markdown, no code blocks) in this exact format:
{
  "caption": "A brief description of what's happening in the scene",
  "sign_language": "If someone is making hand gestures that look like sign language, describe what they might mean. Otherwise use null",
  "objects": [{"label": "object name", "confidence": 0.95}],
  "signals": [{"type": "alert type", "message": "description"}]
}

For objects: list the main objects/people you can see with confidence scores (0-1).
For signals: note any important activities like "motion detected", "person waving", "thumbs up gesture", etc. If nothing notable, use an empty array."""

GENERATE_CAPTION_PROMPT = (
    "Describe this image in a single, concise sentence. "
    "Focus on the main subjects, actions, and setting."
)

TRANSCRIBE_AUDIO_PROMPT = """You are a speech-to-text transcriber and translator. Listen to this audio and:
1. Transcribe what is being said
2. If the speech is NOT in English, translate it to English
3. Respond with ONLY a JSON object (no markdown, no code blocks) in this exact format:
{
  "original_text": "The transcribed text in the original language",
  "language": "The detected language (e.g., 'English', 'Spanish', 'Hindi', etc.)",
  "english_text": "The English translation (same as original if already English)",
  "confidence": 0.95
}

If the audio is silent, unclear, or has no speech, respond with:
{
  "original_text": null,
  "language": null,
  "english_text": null,
  "confidence": 0
}"""

DEFAULT_PROMPTS = {
    'analyze_frame': ANALYZE_FRAME_PROMPT,
    'generate_caption': GENERATE_CAPTION_PROMPT,
    'transcribe_audio': TRANSCRIBE_AUDIO_PROMPT,
}


def get_prompts(overrides: dict = None) -> dict:
    """Defaults merged with any non-empty overrides from config."""
    prompts = dict(DEFAULT_PROMPTS)
    for key, value in (overrides or {}).items():
        if key in prompts and isinstance(value, str) and value.strip():
            prompts[key] = value
    return prompts
