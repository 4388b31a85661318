import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from api_config import GEMINI_API_BASE, GEMINI_MODEL, GEMINI_TIMEOUT, RESPONSE_LANGUAGE
from errors import ExternalServiceError
from image_utils import ImageReference

logger = logging.getLogger(__name__)

UNKNOWN_PLANT = "Unknown"

# Low temperature for identification, higher for descriptive answers
IDENTIFY_CONFIG = {"temperature": 0.2, "topP": 0.9, "topK": 32}
HEALTH_CONFIG = {"temperature": 0.4, "topP": 0.9, "topK": 32}
ADVICE_CONFIG = {"temperature": 0.5, "topP": 0.9, "topK": 40}


def image_part(image: ImageReference) -> Dict[str, Any]:
    return {"inline_data": {"mime_type": image.mime_type, "data": image.base64_data()}}


def _extract_text(data: Dict[str, Any]) -> str:
    """Pull the first candidate's text out of a generateContent response."""
    if not isinstance(data, dict):
        logger.warning("Gemini response is not a JSON object: %s", json.dumps(data)[:500])
        raise ExternalServiceError("The AI service returned an invalid response.")

    block_reason = (data.get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        logger.warning("Gemini blocked the prompt: %s", block_reason)
        raise ExternalServiceError(f"The request was blocked by the AI service ({block_reason}).")

    candidates = data.get("candidates")
    if candidates and isinstance(candidates, list):
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if parts and isinstance(parts, list):
            text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
            if text.strip():
                return text

    logger.warning("Unexpected Gemini response structure: %s", json.dumps(data)[:500])
    raise ExternalServiceError("The AI service returned an empty response.")


def generate_content(
    api_key: str,
    parts: List[Dict[str, Any]],
    generation_config: Dict[str, Any],
    model: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Send one generateContent request and return the response text.

    The key is passed per request; nothing is configured globally. Any
    failure is raised as ExternalServiceError and is not retried.
    """
    url = f"{GEMINI_API_BASE}/models/{model or GEMINI_MODEL}:generateContent"
    payload = {"contents": [{"parts": parts}], "generationConfig": generation_config}
    headers = {"Content-Type": "application/json"}
    try:
        response = requests.post(
            url,
            params={"key": api_key},
            json=payload,
            headers=headers,
            timeout=timeout or GEMINI_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.Timeout:
        logger.error("Gemini request timed out")
        raise ExternalServiceError("The AI service took too long to respond.")
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        detail = e.response.text if e.response is not None else str(e)
        try:
            detail = e.response.json().get("error", {}).get("message", detail)
        except (ValueError, AttributeError):
            pass
        logger.error("Gemini API error %s: %s", status, detail)
        raise ExternalServiceError(f"AI service error {status}: {detail}", status_code=status)
    except ValueError:
        logger.error("Gemini returned a non-JSON response")
        raise ExternalServiceError("The AI service returned an invalid response.")
    except requests.exceptions.RequestException as e:
        logger.error("Network error calling Gemini: %s", e)
        raise ExternalServiceError("Could not connect to the AI service.")

    return _extract_text(data)


# ===== Prompts =====

def identify_plant(api_key: str, images: Sequence[ImageReference]) -> str:
    prompt = (
        "Based on the provided image(s), identify this plant. "
        f"Reply with only the most common name of the plant in {RESPONSE_LANGUAGE}. "
        f'If you are not sure, reply exactly "{UNKNOWN_PLANT}".'
    )
    parts = [image_part(img) for img in images] + [{"text": prompt}]
    return generate_content(api_key, parts, IDENTIFY_CONFIG).strip()


def analyze_plant_health(api_key: str, images: Sequence[ImageReference], plant_name: str) -> str:
    prompt = f"""
You are an expert in botany and plant pathology. Analyze the image(s) of a "{plant_name}" plant.

Based on the images, give a thorough analysis in {RESPONSE_LANGUAGE}, formatted as Markdown, with these sections:

### 1. Health Status
*   Assess the overall health. Look for any signs of disease, pests, wilting, discoloration or nutrient deficiency on the visible leaves, stems and roots. Be specific.

### 2. Improvement Solutions
*   Based on the health assessment, give concrete steps to fix any problems found. If the plant is healthy, suggest how to keep it that way.

### 3. General Care Guide
*   Give basic care guidance for "{plant_name}", covering: Light, Water, Soil, Fertilizer and Humidity.
"""
    parts = [image_part(img) for img in images] + [{"text": prompt}]
    return generate_content(api_key, parts, HEALTH_CONFIG)


def get_goal_advice(api_key: str, plant_name: str, health_report: str, user_goal: str) -> str:
    prompt = f"""
You are a plant care expert. Use the following context:
- **Plant:** {plant_name}
- **Previous health analysis:** {health_report}
- **User's goal:** "{user_goal}"

Give in-depth, specific and actionable advice that helps the user reach their goal. Focus on advanced techniques or adjustments beyond the basic care already covered. Answer in {RESPONSE_LANGUAGE} using Markdown. Do not repeat information already present in the previous health analysis.
"""
    return generate_content(api_key, [{"text": prompt}], ADVICE_CONFIG)
