# tierquota/provider.py
"""Client for the external image model provider.

Only the request/response contract lives here; access and quota decisions
are made before this is called.
"""
import logging
import re
from typing import Optional

import httpx

from tierquota.config import settings
from tierquota.errors import ProviderError

logger = logging.getLogger(__name__)

# e.g. fal-ai/flux-pro/kontext, fal-ai/bytedance/seededit/v3/edit-image
MODEL_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*(/[a-z0-9][a-z0-9._-]*)*$")

# Models that edit a reference image instead of generating from text
IMAGE_INPUT_MODELS = (
    "fal-ai/flux-pro/kontext",
    "fal-ai/flux-pro/kontext/max",
    "fal-ai/bytedance/seededit/v3/edit-image",
)


def validate_model_id(model_id: str) -> None:
    """Reject model ids that could escape the provider path.

    Raises ValueError if invalid.
    """
    if not MODEL_ID_PATTERN.match(model_id) or ".." in model_id:
        raise ValueError(f"Invalid model id: {model_id}")


def build_input(
    model_id: str,
    prompt: str,
    aspect_ratio: str,
    num_images: int,
    image_url: Optional[str] = None,
) -> dict:
    validate_model_id(model_id)
    body = {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio,
        "num_inference_steps": 28,
        "guidance_scale": 3.5,
        "num_images": num_images,
        "enable_safety_checker": True,
    }
    if model_id in IMAGE_INPUT_MODELS:
        if not image_url:
            raise ValueError("Reference image is required for this model.")
        body["image_url"] = image_url
    return body


def extract_image_urls(response) -> list[str]:
    if not isinstance(response, dict):
        raise ProviderError("Provider returned an unexpected response")
    images = response.get("images") or []
    if not isinstance(images, list):
        raise ProviderError("Provider returned an unexpected response")
    urls = [img["url"] for img in images if isinstance(img, dict) and img.get("url")]
    if not urls:
        raise ProviderError("Provider returned no images")
    return urls


async def generate_images(model_id: str, body: dict) -> list[str]:
    """Call the provider and return the generated image URLs."""
    validate_model_id(model_id)
    endpoint = f"{settings.provider_url.rstrip('/')}/{model_id}"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                endpoint,
                json=body,
                headers={
                    "Authorization": f"Key {settings.provider_api_key}",
                    "Content-Type": "application/json",
                },
                timeout=settings.provider_timeout_seconds,
            )
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(f"Provider returned {e.response.status_code} for {model_id}")
        raise ProviderError(f"Provider error for {model_id}", status=e.response.status_code) from e
    except httpx.HTTPError as e:
        logger.error(f"Provider request failed for {model_id}: {e}")
        raise ProviderError(f"Provider unreachable for {model_id}") from e

    try:
        payload = response.json()
    except ValueError as e:
        logger.error(f"Provider returned invalid JSON for {model_id}")
        raise ProviderError(f"Provider returned invalid JSON for {model_id}") from e
    return extract_image_urls(payload)
