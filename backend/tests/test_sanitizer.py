"""Tests for response sanitizing and image payload decoding."""

import base64

import pytest

from nutrilens.core.errors import InputError, ResponseParseError
from nutrilens.core.image_input import decode_image_payload
from nutrilens.core.sanitizer import (
    parse_json_array,
    parse_structured_response,
    strip_code_fences,
)


class TestStripCodeFences:
    def test_json_fence_removed(self):
        assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'

    def test_bare_fence_removed(self):
        assert strip_code_fences("```\n{}\n```") == "{}"

    def test_unfenced_text_only_trimmed(self):
        assert strip_code_fences('  [1, 2]  \n') == "[1, 2]"

    def test_fence_without_newline(self):
        assert strip_code_fences("```json[1]```") == "[1]"


class TestParseStructuredResponse:
    def test_parses_fenced_payload(self):
        assert parse_structured_response('```json\n{"score": 1}\n```') == {"score": 1}

    def test_malformed_json_raises(self):
        with pytest.raises(ResponseParseError) as exc_info:
            parse_structured_response("here are your foods: [", source="FoodRecognizer")
        assert exc_info.value.agent_name == "FoodRecognizer"

    @pytest.mark.parametrize("text", [None, "", "   ", "```json\n```"])
    def test_empty_payload_raises(self, text):
        with pytest.raises(ResponseParseError):
            parse_structured_response(text)

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_numbers_rejected(self, constant):
        with pytest.raises(ResponseParseError, match="non-finite number"):
            parse_structured_response(f'[{{"name": "x", "confidence": {constant}}}]')

    def test_non_array_rejected_where_array_expected(self):
        with pytest.raises(ResponseParseError, match="Expected a JSON array"):
            parse_json_array('{"name": "Rice"}')

    def test_empty_array_is_valid(self):
        assert parse_json_array("[]") == []


class TestDecodeImagePayload:
    def test_plain_base64(self):
        image = decode_image_payload(base64.b64encode(b"\xff\xd8jpeg").decode())
        assert image.data == b"\xff\xd8jpeg"
        assert image.mime_type == "image/jpeg"

    def test_data_url_prefix_stripped(self):
        payload = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()
        image = decode_image_payload(payload)
        assert image.data == b"png-bytes"
        assert image.mime_type == "image/png"
        assert image.size == len(b"png-bytes")

    def test_line_wrapped_base64(self):
        raw = bytes(range(256)) * 2
        payload = "data:image/png;base64," + base64.encodebytes(raw).decode()
        assert "\n" in payload
        image = decode_image_payload(payload)
        assert image.data == raw
        assert image.mime_type == "image/png"

    @pytest.mark.parametrize("payload", [None, "", "   "])
    def test_missing_image(self, payload):
        with pytest.raises(InputError, match="Image is required"):
            decode_image_payload(payload)

    def test_invalid_base64(self):
        with pytest.raises(InputError, match="Invalid image payload"):
            decode_image_payload("not base64 at all!")

    def test_prefix_without_data(self):
        with pytest.raises(InputError, match="Invalid image payload"):
            decode_image_payload("data:image/png;base64,")
