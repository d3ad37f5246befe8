import base64, httpx, logging
from typing import Tuple

from .settings import GOOGLE_API_KEY, IMAGE_MODEL, IMAGE_SIZE

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

def _headers(api_key: str = ""):
    key = api_key or GOOGLE_API_KEY
    if not key:
        raise RuntimeError("GOOGLE_API_KEY is not set; please configure your .env")
    return {
        "x-goog-api-key": key,
        "Content-Type": "application/json"
    }

def build_payload(prompt: str, reference_png: bytes) -> dict:
    return {
        "contents": [{
            "parts": [
                {"text": f"Using the sumo character from the reference image, {prompt}"},
                {
                    "inline_data": {
                        "mime_type": "image/png",
                        "data": base64.b64encode(reference_png).decode("ascii"),
                    }
                },
            ]
        }],
        "generationConfig": {
            "responseModalities": ["IMAGE"],
            "imageConfig": {"aspectRatio": "9:16", "imageSize": IMAGE_SIZE},
        },
    }

def extract_image(body: dict) -> Tuple[bytes, str]:
    """Return (image bytes, mime type) of the first image part in a response."""
    candidates = body.get("candidates") or [{}]
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData") or {}
        if inline.get("mimeType", "").startswith("image/") and inline.get("data"):
            return base64.b64decode(inline["data"]), inline["mimeType"]
    raise RuntimeError("Image model response contained no image data")

async def generate_image(prompt: str, reference_png: bytes, api_key: str = "",
                         client: httpx.AsyncClient = None) -> Tuple[bytes, str]:
    url = f"{API_BASE}/{IMAGE_MODEL}:generateContent"
    payload = build_payload(prompt, reference_png)
    logger.info(f"Requesting image from {IMAGE_MODEL}")
    if client is None:
        async with httpx.AsyncClient(timeout=180) as c:
            r = await c.post(url, headers=_headers(api_key), json=payload)
    else:
        r = await client.post(url, headers=_headers(api_key), json=payload)
    if r.status_code >= 400:
        logger.error(f"Image generation failed {r.status_code}: {r.text}")
        raise RuntimeError(f"Image generation failed {r.status_code}: {r.text}")
    return extract_image(r.json())
