"""
Vision requests against the local OpenAI-compatible inference endpoint.
"""

import base64
import io
import json
from typing import Any, Dict, List, Optional, Sequence
import httpx
from PIL import Image
from .config import settings
from .logging import get_logger


PLAYER_TAG_PROMPT = """
Extract the player tag from the following Clash Royale profile screenshot without errors, even if the image quality is poor.
The tag may not be visible at all. If it is not visible in the image, you must answer with "{marker}".
Things like "Clan War Veteran" are not tags and must be ignored.

Task:
Find the text field that contains the player tag.
The player tag is shown in the profile area below the player name and always starts with # (example: #2YLJPV0LQ). Always include the # character.
Output only the recognised player tag or "{marker}", with no additions, no explanation and no quotation marks.

Quality requirements:
Use every available text recognition technique (OCR, upscaling, sharpening, noise reduction) to read the text correctly even when it is blurry or compressed.
If single characters are unclear, choose the most likely character based on:
the official Clash Royale tag format (upper-case letters A-Z and digits 0-9, starting with #, no letter O),
typical confusions (e.g. 0 vs. Q, 1 vs. I, 8 vs. B, Y vs. V) and their shape in the image.
Compare the result with valid tag patterns and correct obvious OCR errors.

Reliability:
It is extremely important that this result is correct; it does not matter how long it takes.
"""

DEFAULT_IMAGE_MIME = "image/jpeg"


class OracleUnavailable(Exception):
    """Raised when the inference endpoint cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def detect_mime_type(image_data: bytes) -> str:
    """Guess the MIME type of an image payload, defaulting to JPEG."""
    try:
        with Image.open(io.BytesIO(image_data)) as image:
            return Image.MIME.get(image.format, DEFAULT_IMAGE_MIME)
    except (OSError, ValueError):
        return DEFAULT_IMAGE_MIME


def to_data_url(image_data: bytes) -> str:
    """Encode image bytes as a base64 data URL."""
    encoded = base64.b64encode(image_data).decode("ascii")
    return f"data:{detect_mime_type(image_data)};base64,{encoded}"


def extract_message_content(response_text: str) -> str:
    """Pull ``choices[0].message.content`` out of a chat completion.

    Falls back to the raw response text when the body is not a chat
    completion, leaving it to the tag validator to make sense of it.
    """
    try:
        payload = json.loads(response_text)
    except ValueError:
        return response_text

    if isinstance(payload, dict):
        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]

    return response_text


class VisionOracle:
    """Asks the vision model to transcribe the player tag visible in screenshots."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        prompt: Optional[str] = None,
    ):
        self.logger = get_logger("vision_oracle")
        self.endpoint = endpoint or settings.inference_endpoint
        self.model = settings.vision_model
        self.max_tokens = settings.vision_max_tokens
        self.prompt = prompt or PLAYER_TAG_PROMPT.format(marker=settings.no_tag_marker)
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(settings.vision_read_timeout, connect=settings.vision_connect_timeout),
            headers={"Content-Type": "application/json"},
        )

    def build_request(self, images: Sequence[bytes]) -> Dict[str, Any]:
        """Build an OpenAI vision chat request: the prompt followed by every image."""
        content: List[Dict[str, Any]] = [{"type": "text", "text": self.prompt}]
        for image_data in images:
            content.append({
                "type": "image_url",
                "image_url": {"url": to_data_url(image_data)},
            })

        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": content}],
        }

    def ask(self, images: Sequence[bytes]) -> str:
        """Send the images to the model and return its raw answer.

        A single attempt is made; retrying is left to whoever re-queues the job.

        Raises:
            OracleUnavailable: on transport errors or a non-200 response.
        """
        self.logger.info(f"🔎 Analyzing {len(images)} image(s) with the vision model...")
        request = self.build_request(images)

        try:
            response = self.client.post(self.endpoint, json=request)
        except httpx.HTTPError as e:
            raise OracleUnavailable(f"Inference request failed: {e}") from e

        if response.status_code != 200:
            body = response.text.strip()
            raise OracleUnavailable(
                f"Inference endpoint returned error code: {response.status_code}"
                + (f", body: {body}" if body else ""),
                status_code=response.status_code,
                body=body,
            )

        answer = extract_message_content(response.text)
        self.logger.debug(f"Vision model answer: {answer!r}")
        return answer

    def close(self):
        """Close the HTTP client if this oracle created it."""
        if self._owns_client:
            self.client.close()
