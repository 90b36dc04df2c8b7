from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from openai import OpenAI

from .results import EncodedPayload
from .settings import AnalyzerSettings


log = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You describe images for an image optimisation tool. "
    "Always answer with a single JSON object with the keys "
    '"description" (string), "keywords" (array of strings) and "ecoTip" (string).'
)

USER_PROMPT = (
    "Analyze this image.\n"
    "1. Provide a short, descriptive alt-text suitable for accessibility.\n"
    "2. Extract 3-5 relevant keywords.\n"
    '3. Provide a short, fun "eco-friendly" or "nature-inspired" metaphor or tip '
    "related to the visual content if possible. If not, just a general eco-tip."
)

_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")


@dataclass(frozen=True)
class AnalysisResult:
    description: str
    keywords: List[str] = field(default_factory=list)
    eco_tip: str = ""


# Shown instead of a real analysis whenever the service can't be reached.
FALLBACK_ANALYSIS = AnalysisResult(
    description="Image analysis unavailable.",
    keywords=["error", "retry"],
    eco_tip="Nature takes its time, and sometimes so do servers. Please try again.",
)

PayloadLike = Union[bytes, str, EncodedPayload]


async def analyze(
    payload: PayloadLike,
    mime_type: str,
    settings: Optional[AnalyzerSettings] = None,
    client: Optional[Any] = None,
) -> AnalysisResult:
    """
    Ask the vision model for alt-text, keywords and an eco tip.

    payload can be raw bytes, an EncodedPayload or a base64 data URL.
    Never raises: any failure is logged and FALLBACK_ANALYSIS comes back.
    """
    settings = settings or AnalyzerSettings.from_env()

    try:
        if client is None:
            if not settings.api_key:
                raise RuntimeError("OPENAI_API_KEY is not set")
            client = OpenAI(api_key=settings.api_key)

        data_url = to_data_url(payload, mime_type)

        def _call_openai() -> str:
            completion = client.chat.completions.create(
                model=settings.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": USER_PROMPT},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    },
                ],
                response_format={"type": "json_object"},
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
            )
            return completion.choices[0].message.content or ""

        reply = await asyncio.to_thread(_call_openai)
        return parse_reply(reply)
    except Exception:
        log.error("Image analysis failed", exc_info=True)
        return FALLBACK_ANALYSIS


def to_data_url(payload: PayloadLike, mime_type: str) -> str:
    if isinstance(payload, EncodedPayload):
        return payload.data_url

    if isinstance(payload, str):
        # Re-wrap so the declared mime type wins over whatever prefix came in.
        b64 = _DATA_URL_PREFIX.sub("", payload)
    else:
        b64 = base64.b64encode(payload).decode("ascii")
    return f"data:{mime_type};base64,{b64}"


def parse_reply(text: str) -> AnalysisResult:
    """Turn the model's JSON reply into an AnalysisResult. Raises ValueError on junk."""
    if not text.strip():
        raise ValueError("empty reply from analysis service")

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("analysis reply is not a JSON object")

    description = data.get("description")
    keywords = data.get("keywords")
    eco_tip = data.get("ecoTip", data.get("eco_tip"))

    if not isinstance(description, str) or not isinstance(eco_tip, str):
        raise ValueError("analysis reply is missing description/ecoTip")
    if not isinstance(keywords, list):
        raise ValueError("analysis reply is missing keywords")

    return AnalysisResult(
        description=description.strip(),
        keywords=[str(k).strip() for k in keywords if str(k).strip()],
        eco_tip=eco_tip.strip(),
    )
