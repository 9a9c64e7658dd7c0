"""Unit tests for response extraction and error classification.

Tests cover:
- Image selection (thought parts skipped, first decodable image wins)
- Text accumulation
- Error/block/shape deficiencies
- Classification of failed HTTP exchanges
"""

import json

import pytest
from pydantic import ValidationError

from banana_studio.core.gemini_api import (
    describe_request_failure,
    parse_response,
    process_response,
)
from banana_studio.core.models import WireResponse
from banana_studio.core.transport import TransportResponse
from tests.conftest import make_image
from tests.mocks.gemini import (
    error_body,
    image_part,
    raw_image_part,
    response_body,
    response_payload,
    text_part,
)


def process(body: str):
    return process_response(parse_response(body), raw_response=body)


class TestImageExtraction:
    """Tests for picking the generated image."""

    def test_thought_image_skipped_final_image_used(self, result_image) -> None:
        thought = make_image(4, 4, seed=9)
        body = response_body([
            image_part(thought, thought=True),
            image_part(result_image),
            text_part("Here is your scene."),
        ])

        result = process(body)

        assert result.success
        assert result.image.size == result_image.size
        assert result.response_text == "Here is your scene."
        assert result.error_message is None
        assert result.raw_response == body

    def test_first_final_image_wins(self, result_image) -> None:
        body = response_body([image_part(result_image), image_part(make_image(3, 3))])

        result = process(body)

        assert result.image.size == result_image.size

    def test_undecodable_part_is_skipped(self, result_image) -> None:
        body = response_body([raw_image_part("bm90IGFuIGltYWdl"), image_part(result_image)])

        result = process(body)

        assert result.success
        assert result.image.size == result_image.size

    def test_only_thought_images_means_no_image(self) -> None:
        body = response_body([image_part(make_image(4, 4), thought=True), text_part("thinking")])

        result = process(body)

        assert not result.success
        assert result.image is None
        assert result.error_message == "No image found in response"
        assert result.response_text == "thinking"


class TestTextAccumulation:
    """Tests for collecting response text."""

    def test_text_parts_joined_in_order(self, result_image) -> None:
        body = response_body([
            text_part("first"),
            image_part(result_image),
            text_part("second"),
            text_part("third"),
        ])

        assert process(body).response_text == "first\nsecond\nthird"

    def test_thought_text_is_surfaced(self, result_image) -> None:
        body = response_body([text_part("planning", thought=True), image_part(result_image)])

        result = process(body)

        assert result.success
        assert result.response_text == "planning"

    def test_text_kept_when_no_image(self) -> None:
        body = response_body([text_part("I can't draw that."), text_part("Sorry.")])

        result = process(body)

        assert not result.success
        assert result.response_text == "I can't draw that.\nSorry."


class TestResponseDeficiencies:
    """Tests for error, block and shape failures."""

    def test_block_reason_beats_missing_candidates(self) -> None:
        body = json.dumps({"promptFeedback": {"blockReason": "SAFETY", "safetyRatings": []}})

        result = process(body)

        assert not result.success
        assert result.error_message == "Content blocked: SAFETY"

    def test_empty_candidates(self) -> None:
        result = process(json.dumps({"candidates": []}))

        assert not result.success
        assert result.error_message == "No candidates in response"

    def test_missing_candidates(self) -> None:
        assert process("{}").error_message == "No candidates in response"

    def test_candidate_without_parts(self) -> None:
        body = json.dumps({"candidates": [{"content": {"role": "model"}, "finishReason": "IMAGE_OTHER"}]})

        assert process(body).error_message == "No content parts in response"

    def test_candidate_with_empty_parts(self) -> None:
        assert process(response_body([])).error_message == "No content parts in response"

    def test_meaningful_error(self) -> None:
        result = process(error_body(429, "Resource exhausted"))

        assert result.error_message == "API Error (429): Resource exhausted"

    def test_zeroed_error_object_is_not_an_error(self, result_image) -> None:
        body = response_body([image_part(result_image)], error={"code": 0, "message": ""})

        assert process(body).success

    def test_error_with_code_only_is_an_error(self) -> None:
        body = json.dumps({"error": {"code": 500}})

        assert process(body).error_message == "API Error (500): "

    def test_none_response(self) -> None:
        assert process_response(None).error_message == "Empty response from API"

    def test_unknown_fields_are_ignored(self, result_image) -> None:
        payload = response_payload([image_part(result_image)], modelVersion="x", responseId="abc")

        assert process(json.dumps(payload)).success

    def test_success_invariant(self, result_image) -> None:
        bodies = [
            response_body([image_part(result_image)]),
            response_body([text_part("no image")]),
            json.dumps({"candidates": []}),
        ]
        for body in bodies:
            result = process(body)
            assert result.success == (result.image is not None)


class TestParseResponse:
    """Tests for the JSON layer."""

    def test_camel_case_fields(self) -> None:
        response = parse_response(json.dumps({
            "promptFeedback": {"blockReason": "OTHER"},
            "usageMetadata": {"promptTokenCount": 5, "totalTokenCount": 9},
        }))

        assert isinstance(response, WireResponse)
        assert response.prompt_feedback.block_reason == "OTHER"
        assert response.usage_metadata.total_token_count == 9

    def test_invalid_json(self) -> None:
        with pytest.raises(ValueError):
            parse_response("<html>oops</html>")

    def test_non_object_json(self) -> None:
        with pytest.raises(ValueError):
            parse_response("[1, 2, 3]")

    def test_wrong_shape(self) -> None:
        with pytest.raises(ValidationError):
            parse_response(json.dumps({"candidates": "nope"}))


class TestDescribeRequestFailure:
    """Tests for classifying failed HTTP exchanges."""

    def test_api_error_body(self) -> None:
        response = TransportResponse(
            status_code=400,
            text=error_body(400, "API key not valid. Please pass a valid API key."),
            error="HTTP/1.1 400 Bad Request",
        )

        assert describe_request_failure(response) == (
            "API Error (400): API key not valid. Please pass a valid API key."
        )

    def test_block_reason_body(self) -> None:
        response = TransportResponse(
            status_code=400,
            text=json.dumps({"promptFeedback": {"blockReason": "PROHIBITED_CONTENT"}}),
            error="HTTP/1.1 400 Bad Request",
        )

        message = describe_request_failure(response)

        assert message.startswith("Content blocked: PROHIBITED_CONTENT.")
        assert "modify your prompt" in message

    def test_json_body_without_details(self) -> None:
        response = TransportResponse(status_code=503, text="{}", error="HTTP/1.1 503 Service Unavailable")

        assert describe_request_failure(response) == (
            "Request failed (HTTP 503): HTTP/1.1 503 Service Unavailable"
        )

    def test_unparsable_body_appends_raw_text(self) -> None:
        response = TransportResponse(status_code=502, text="<html>Bad gateway</html>", error="HTTP/1.1 502 Bad Gateway")

        assert describe_request_failure(response) == (
            "Request failed (HTTP 502): HTTP/1.1 502 Bad Gateway\n<html>Bad gateway</html>"
        )

    def test_connection_error(self) -> None:
        response = TransportResponse(status_code=0, text="", error="Connection refused")

        assert describe_request_failure(response) == "Request failed (HTTP 0): Connection refused\n"
