"""
Gemini image API - generation and key validation as scheduler tasks.

Both entry points return generator bodies for TaskScheduler.start(). The
generation task reports progress through a ProgressBroadcaster and always
finishes with exactly one GenerationResult handed to on_complete, unless
it is cancelled first.
"""

import json
import logging
from typing import Callable, Optional

from pydantic import ValidationError

from banana_studio.core.image_codec import (
    PNG_MIME_TYPE,
    decode_base64_image,
    encode_png_base64,
)
from banana_studio.core.models import GenerationRequest, GenerationResult, WireResponse
from banana_studio.core.progress import ProgressBroadcaster
from banana_studio.core.scheduler import TaskBody
from banana_studio.core.settings import (
    ApiSettings,
    CredentialsProvider,
    is_api_key_valid,
    load_settings,
)
from banana_studio.core.transport import (
    HttpTransport,
    ThreadedHttpTransport,
    TransportResponse,
)

logger = logging.getLogger(__name__)


INVALID_KEY_MESSAGE = "Invalid or missing API key. Please configure your API key in the Settings tab."

# Progress ranges: [0, 0.2] building, [0.2, 0.8] network, [0.8, 1.0] response
NETWORK_PROGRESS_START = 0.2
NETWORK_PROGRESS_SPAN = 0.6

RAW_RESPONSE_LOG_LIMIT = 2000

_JSON_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def escape_json_string(value: Optional[str]) -> str:
    """Quote a string as a JSON literal.

    Control characters without a short escape become \\u00XX.
    """
    if not value:
        return '""'

    out = ['"']
    for ch in value:
        escaped = _JSON_ESCAPES.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ch < " ":
            out.append(f"\\u{ord(ch):04X}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def _inline_image_part(image) -> str:
    data = encode_png_base64(image)
    return f'{{"inline_data": {{"mime_type": "{PNG_MIME_TYPE}", "data": "{data}"}}}}'


def build_request_json(request: GenerationRequest, include_image_size: bool = False) -> str:
    """Serialize a GenerationRequest into the generateContent request body.

    Parts are, in order: prompt text, scene image, then every non-null
    reference (character, style, objects, humans).
    """
    if request.scene_image is None:
        raise ValueError("A scene image is required")

    parts = [f'{{"text": {escape_json_string(request.prompt)}}}']
    parts.append(_inline_image_part(request.scene_image))
    for reference in request.reference_images():
        parts.append(_inline_image_part(reference))

    image_config = f'"aspectRatio": {escape_json_string(request.aspect_ratio)}'
    if include_image_size and request.image_size:
        image_config += f', "imageSize": {escape_json_string(request.image_size)}'

    parts_json = ",\n            ".join(parts)
    return (
        "{\n"
        '    "contents": [{\n'
        '        "parts": [\n'
        f"            {parts_json}\n"
        "        ]\n"
        "    }],\n"
        '    "generationConfig": {\n'
        '        "responseModalities": ["TEXT", "IMAGE"],\n'
        '        "imageConfig": {\n'
        f"            {image_config}\n"
        "        }\n"
        "    }\n"
        "}"
    )


def parse_response(text: str) -> WireResponse:
    """Parse a response body. Raises ValueError or ValidationError if malformed."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return WireResponse.model_validate(data)


def process_response(response: Optional[WireResponse], raw_response: Optional[str] = None) -> GenerationResult:
    """Turn a parsed success response into a GenerationResult.

    Only the first candidate is used. The image is the first non-thought
    part with inline data that decodes; all text parts are kept.
    """
    if response is None:
        return GenerationResult.failure("Empty response from API", raw_response=raw_response)

    if response.error is not None and response.error.is_meaningful:
        return GenerationResult.failure(
            f"API Error ({response.error.code}): {response.error.message}",
            raw_response=raw_response,
        )

    if response.prompt_feedback is not None and response.prompt_feedback.block_reason:
        return GenerationResult.failure(
            f"Content blocked: {response.prompt_feedback.block_reason}",
            raw_response=raw_response,
        )

    if not response.candidates:
        return GenerationResult.failure("No candidates in response", raw_response=raw_response)

    candidate = response.candidates[0]
    if candidate.content is None or not candidate.content.parts:
        return GenerationResult.failure("No content parts in response", raw_response=raw_response)

    image = None
    text_parts = []
    for part in candidate.content.parts:
        if part.has_image_data:
            if part.thought or image is not None:
                continue
            image = decode_base64_image(part.inline_data.data)
            if image is None:
                logger.warning(f"Skipping undecodable {part.inline_data.mime_type or 'inline'} part")
        elif part.text:
            text_parts.append(part.text)

    response_text = "\n".join(text_parts)
    if image is None:
        return GenerationResult.failure(
            "No image found in response",
            raw_response=raw_response,
            response_text=response_text,
        )

    return GenerationResult.succeeded(image, response_text=response_text, raw_response=raw_response)


def describe_request_failure(response: TransportResponse) -> str:
    """Human-readable message for a failed HTTP exchange.

    Prefers the API's own error, then a block reason, then the transport
    error.
    """
    generic = f"Request failed (HTTP {response.status_code}): {response.error}"
    try:
        error_response = parse_response(response.text)
    except (ValueError, ValidationError):
        return f"{generic}\n{response.text}"

    if error_response.error is not None and error_response.error.message:
        return f"API Error ({error_response.error.code}): {error_response.error.message}"
    if error_response.prompt_feedback is not None and error_response.prompt_feedback.block_reason:
        return (
            f"Content blocked: {error_response.prompt_feedback.block_reason}. "
            "Please modify your prompt or scene."
        )
    return generic


class GeminiImageClient:
    """Builds generation and validation tasks against the Gemini API."""

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        transport: Optional[HttpTransport] = None,
        progress: Optional[ProgressBroadcaster] = None,
    ):
        self.settings = settings or load_settings()
        self.transport = transport or ThreadedHttpTransport()
        self.progress = progress or ProgressBroadcaster()

    def _report(self, progress: float, message: str) -> None:
        self.progress.publish(progress, message)

    def generate(
        self,
        request: GenerationRequest,
        credentials: CredentialsProvider,
        on_complete: Callable[[GenerationResult], None],
    ) -> TaskBody:
        """Task body that runs one generation and calls on_complete once."""
        try:
            api_key = credentials.get_api_key()
        except Exception as e:
            logger.exception(f"Could not read API key: {e}")
            on_complete(GenerationResult.failure(f"Unexpected error: {e}"))
            return

        if not is_api_key_valid(api_key):
            logger.warning("Generation skipped: API key missing or too short")
            on_complete(GenerationResult.failure(INVALID_KEY_MESSAGE))
            return

        try:
            result = yield from self._run_generation(request, api_key)
        except Exception as e:
            logger.exception(f"Generation failed unexpectedly: {e}")
            result = GenerationResult.failure(f"Unexpected error: {e}")

        on_complete(result)
        self._report(1.0, "Complete!")

    def _run_generation(self, request: GenerationRequest, api_key: str):
        self._report(0.1, "Building request...")

        model = self.settings.model
        url = self.settings.generate_url
        try:
            body = build_request_json(request, include_image_size=model.supports_image_size)
        except Exception as e:
            logger.error(f"Failed to build request: {e}")
            return GenerationResult.failure(f"Failed to build request: {e}")

        logger.info(
            f"Generation request: model={model.model_id}, aspect_ratio={request.aspect_ratio}, "
            f"image_size={request.image_size}, references={request.reference_count()}, "
            f"body_length={len(body)}"
        )

        self._report(NETWORK_PROGRESS_START, "Sending to Gemini API...")

        pending = self.transport.send(
            "POST",
            url,
            headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
            content=body.encode("utf-8"),
            timeout=self.settings.generation_timeout,
        )

        while not pending.done:
            self._report(
                NETWORK_PROGRESS_START + pending.progress * NETWORK_PROGRESS_SPAN,
                "Generating image...",
            )
            yield

        response = pending.result()

        self._report(0.85, "Processing response...")

        if not response.ok:
            logger.error(
                f"Request failed - HTTP {response.status_code}, error: {response.error}"
            )
            logger.error(f"URL: {url}")
            logger.error(f"Response body: {response.text}")
            return GenerationResult.failure(describe_request_failure(response), raw_response=response.text)

        logger.info(f"HTTP {response.status_code} - raw response length: {len(response.text)}")
        logger.debug(f"Raw response (first {RAW_RESPONSE_LOG_LIMIT} chars): {response.text[:RAW_RESPONSE_LOG_LIMIT]}")

        try:
            wire_response = parse_response(response.text)
        except (ValueError, ValidationError) as e:
            return GenerationResult.failure(f"Failed to parse response: {e}", raw_response=response.text)

        result = process_response(wire_response, raw_response=response.text)
        if result.success:
            logger.info(f"Generation succeeded ({result.image.width}x{result.image.height})")
        else:
            logger.warning(f"Generation failed: {result.error_message}")
        return result

    def validate_api_key(
        self,
        api_key: Optional[str],
        on_complete: Callable[[bool, str], None],
    ) -> TaskBody:
        """Task body that probes the models endpoint with a key.

        on_complete receives (valid, message).
        """
        if not api_key or not api_key.strip():
            on_complete(False, "API key is empty")
            return

        try:
            pending = self.transport.send(
                "GET",
                self.settings.models_url,
                headers={"x-goog-api-key": api_key},
                timeout=self.settings.validation_timeout,
            )

            while not pending.done:
                yield

            response = pending.result()
        except Exception as e:
            logger.exception(f"API key validation failed unexpectedly: {e}")
            on_complete(False, f"Validation failed: {e}")
            return

        if response.ok:
            on_complete(True, "API key is valid")
        elif response.status_code in (401, 403):
            on_complete(False, "Invalid API key")
        else:
            logger.warning(f"API key validation failed: HTTP {response.status_code}: {response.error}")
            on_complete(False, f"Validation failed: {response.error}")
