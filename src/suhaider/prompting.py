"""Prompt augmentation for structured output and cleanup of model replies."""

from __future__ import annotations

import json
import logging
import re

from .models import JsonSchema

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```(?:json)?\s*")


def augment(prompt: str, schema: JsonSchema | None) -> str:
    """Prefix ``prompt`` with instructions that demand JSON matching ``schema``."""
    if schema is None:
        return prompt

    described: dict = {"type": schema.type}
    if schema.properties:
        described["properties"] = {
            name: ("object (nested)" if isinstance(prop, dict) and "properties" in prop
                   else (prop.get("type") if isinstance(prop, dict) else str(prop)))
            for name, prop in schema.properties.items()
        }
    if schema.required:
        described["required"] = schema.required
    if schema.type == "array" and schema.items:
        described["items"] = {"type": schema.items.get("type")}

    enhanced = (
        "IMPORTANT INSTRUCTIONS:\n"
        "- You MUST respond ONLY in valid JSON format\n"
        "- Do NOT include any explanations, markdown code blocks (```), or extra text\n"
        "- Output ONLY the raw JSON object that matches the required structure\n"
        "- All field names must exactly match the structure below\n\n"
        "REQUIRED JSON STRUCTURE:\n"
        f"{json.dumps(described, indent=2, ensure_ascii=False)}\n\n"
        "USER TASK:\n"
        f"{prompt}"
    )
    logger.debug("prompt augmented: %d -> %d chars", len(prompt), len(enhanced))
    return enhanced


def clean(raw: str | None) -> str | None:
    """Strip markdown fences and any text around the outermost JSON value."""
    if raw is None or not raw.strip():
        return raw

    text = raw.strip()
    if "```json" in text or text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
    if text.endswith("```"):
        text = text[: text.rindex("```")]

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if starts and min(starts) > 0:
        text = text[min(starts):]
    end = max(text.rfind("}"), text.rfind("]"))
    if end != -1 and end < len(text) - 1:
        text = text[: end + 1]
    return text.strip()


def is_valid_json(text: str | None) -> bool:
    if not text or not text.strip():
        return False
    try:
        json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("invalid JSON in model reply: %s", e)
        return False
    return True
