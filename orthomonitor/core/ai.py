"""
AI tag suggestions for scan sessions.

Images are sent to Claude through the Anthropic SDK; the model's JSON reply
is never trusted as-is and always goes through ``sanitize_suggestion``.
"""

import base64
import json
import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from anthropic import AsyncAnthropic
from orthomonitor.config.config import settings
from orthomonitor.core.constants import DETAIL_TAG_OPTIONS
from orthomonitor.core.utils import LoggerMixin

DEFAULT_SCORE = 2
DEFAULT_CONFIDENCE = 0.5

MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

SYSTEM_PROMPT = f"""You are a clinical orthodontic AI assistant analyzing dental scan images. Your role is to evaluate intraoral photographs of patients undergoing clear aligner treatment and provide structured clinical assessments.

Evaluate each image set and return a JSON object with the following fields:

- "overallTracking": integer 1-3 (1=Good tracking, teeth moving as planned; 2=Fair, minor deviations; 3=Poor, significant tracking issues)
- "alignerFit": integer 1-3 (1=Good fit, aligner seated well; 2=Fair, minor gaps; 3=Poor, significant gaps or not seating)
- "oralHygiene": integer 1-3 (1=Good hygiene; 2=Fair, some plaque/inflammation; 3=Poor, significant plaque/gingivitis)
- "detailTags": array of applicable tags from this exact list: {json.dumps(list(DETAIL_TAG_OPTIONS))}
- "actionTaken": suggested action string or null (e.g., "Recommend rescan", "Schedule office visit", "Continue current stage")
- "notes": brief clinical observation string or null
- "confidence": number 0-1 representing your confidence in the assessment

Only include detail tags that are clearly visible in the images. Be conservative: when uncertain, lean toward moderate scores (2) and lower confidence.

Respond with ONLY the JSON object, no other text."""

USER_PROMPT = "Analyze these dental scan images and provide your clinical assessment as JSON."

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class AiNotConfiguredError(RuntimeError):
    pass


class AiResponseError(ValueError):
    """The model replied with something that is not a JSON object."""


def media_type_for(key: str) -> str:
    for ext, media_type in MEDIA_TYPES.items():
        if key.lower().endswith(ext):
            return media_type
    return "image/jpeg"


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def clamp_score(value: Any, low: int = 1, high: int = 3) -> int:
    """Round into ``[low, high]``; anything non-numeric becomes the neutral score."""
    number = _to_number(value)
    if number is None:
        return DEFAULT_SCORE
    if math.isinf(number):
        return high if number > 0 else low
    # Half-up rounding, not banker's rounding
    return max(low, min(high, int(math.floor(number + 0.5))))


def optional_score(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return clamp_score(value)


def clamp_confidence(value: Any) -> float:
    number = _to_number(value)
    if number is None or math.isinf(number):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def sanitize_suggestion(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce raw model output into a valid suggestion dict (snake_case keys).

    Aligner fit is optional on a tag set, so a null or blank ``alignerFit``
    stays unset. Other missing scores fall back to the neutral 2 and an
    explicit confidence of 0 is kept.
    """
    detail_tags = raw.get("detailTags")
    if isinstance(detail_tags, list):
        valid_tags = [tag for tag in detail_tags if isinstance(tag, str) and tag in DETAIL_TAG_OPTIONS]
    else:
        valid_tags = []

    action_taken = raw.get("actionTaken")
    notes = raw.get("notes")

    return {
        "overall_tracking": clamp_score(raw.get("overallTracking")),
        "aligner_fit": optional_score(raw.get("alignerFit")),
        "oral_hygiene": clamp_score(raw.get("oralHygiene")),
        "detail_tags": valid_tags,
        "action_taken": action_taken if isinstance(action_taken, str) else None,
        "notes": notes if isinstance(notes, str) else None,
        "confidence": clamp_confidence(raw.get("confidence")),
    }


def parse_model_reply(text: str) -> Dict[str, Any]:
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AiResponseError(f"AI reply is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise AiResponseError("AI reply is not a JSON object")
    return parsed


class AiService(LoggerMixin):

    def __init__(self, client: Optional[AsyncAnthropic] = None):
        if client is not None:
            self.client = client
        elif settings.ANTHROPIC_API_KEY:
            self.client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        else:
            self.client = None

    def is_enabled(self) -> bool:
        return self.client is not None

    async def analyze_scan_images(self, images: Sequence[Tuple[str, bytes]]) -> Dict[str, Any]:
        """
        Ask the model for a tag suggestion.

        Args:
            images: ``(media_type, raw_bytes)`` pairs, one per scan view

        Returns:
            Sanitised suggestion dict

        Raises:
            AiNotConfiguredError: no API key configured
            AiResponseError: the reply has no usable JSON object
        """
        if self.client is None:
            raise AiNotConfiguredError("AI service is not configured")

        content: List[Dict[str, Any]] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": media_type,
                    "data": base64.b64encode(data).decode("ascii"),
                },
            }
            for media_type, data in images
        ]
        content.append({"type": "text", "text": USER_PROMPT})

        response = await self.client.messages.create(
            model=settings.AI_MODEL,
            max_tokens=settings.AI_MAX_TOKENS,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": content}],
        )

        text = next(
            (block.text for block in response.content if getattr(block, "type", None) == "text"),
            None,
        )
        if text is None:
            raise AiResponseError("No text response from AI")

        suggestion = sanitize_suggestion(parse_model_reply(text))
        self.log_info(
            {
                "event": "ai_suggestion_generated",
                "image_count": len(images),
                "confidence": suggestion["confidence"],
            }
        )
        return suggestion


_ai_service: Optional[AiService] = None


def get_ai_service() -> AiService:
    global _ai_service
    if _ai_service is None:
        _ai_service = AiService()
    return _ai_service
