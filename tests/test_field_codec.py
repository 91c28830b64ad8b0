"""
Unit tests for locating and rewriting the configured field.
"""

import json

from fieldcrypt.field_codec import (
    FieldValue,
    canonical_json,
    decode_plaintext,
    extract,
    inject,
    parse_body,
    render_body,
)


class TestParseBody:
    """Test cases for parse_body."""

    def test_json_object(self):
        """Test a JSON object body."""
        assert parse_body(b'{"data": "x", "id": 1}') == {"data": "x", "id": 1}

    def test_accepts_text(self):
        """Test str bodies are accepted."""
        assert parse_body('{"data": "x"}') == {"data": "x"}

    def test_empty_or_missing(self):
        """Test empty bodies."""
        assert parse_body(None) is None
        assert parse_body(b"") is None

    def test_not_json(self):
        """Test non-JSON and non-UTF-8 bodies."""
        assert parse_body(b"data=abc&x=1") is None
        assert parse_body(b"\xff\xfe\x00") is None

    def test_deeply_nested(self):
        """Test bodies nested past the parser limit are skipped."""
        assert parse_body(b'{"x": ' + b"[" * 100000 + b"]" * 100000 + b"}") is None

    def test_top_level_must_be_object(self):
        """Test arrays and scalars are not handled."""
        assert parse_body(b"[1, 2, 3]") is None
        assert parse_body(b'"just a string"') is None

    def test_raw_and_form_pass_through(self):
        """Test non-JSON formats are not parsed."""
        assert parse_body(b'{"data": "x"}', "RAW") is None
        assert parse_body(b'{"data": "x"}', "FORM") is None


class TestExtract:
    """Test cases for extract."""

    def test_string_field(self):
        """Test a string value is scalar."""
        value = extract({"data": "abc"}, "data")
        assert value == FieldValue.scalar("abc")
        assert value.as_text() == "abc"

    def test_structured_field(self):
        """Test objects and arrays are structured and serialize compactly."""
        value = extract({"data": {"a": 1, "b": [1, 2]}}, "data")
        assert value.is_structured
        assert value.as_text() == '{"a":1,"b":[1,2]}'

        value = extract({"data": [1, "two"]}, "data")
        assert value.is_structured
        assert value.as_text() == '[1,"two"]'

    def test_numbers_and_booleans(self):
        """Test other JSON scalars keep their JSON spelling."""
        assert extract({"data": 42}, "data").as_text() == "42"
        assert extract({"data": True}, "data").as_text() == "true"

    def test_missing_or_null(self):
        """Test absent fields."""
        assert extract({"other": "x"}, "data") is None
        assert extract({"data": None}, "data") is None
        assert extract(None, "data") is None

    def test_non_ascii_preserved(self):
        """Test non-ASCII text is not escaped in the canonical form."""
        assert extract({"data": {"name": "José"}}, "data").as_text() == '{"name":"José"}'


class TestDecodePlaintext:
    """Test cases for decode_plaintext."""

    def test_object(self):
        """Test JSON object text becomes structured."""
        assert decode_plaintext('{"a":1}') == FieldValue.structured({"a": 1})

    def test_array_with_whitespace(self):
        """Test surrounding whitespace is ignored for detection."""
        assert decode_plaintext('  [1, 2]\n') == FieldValue.structured([1, 2])

    def test_plain_string(self):
        """Test ordinary text stays scalar."""
        assert decode_plaintext("hello") == FieldValue.scalar("hello")

    def test_json_scalars_stay_strings(self):
        """Test only objects and arrays are re-embedded as JSON."""
        assert decode_plaintext("123") == FieldValue.scalar("123")
        assert decode_plaintext('"quoted"') == FieldValue.scalar('"quoted"')

    def test_broken_json(self):
        """Test text that starts like JSON but does not parse."""
        assert decode_plaintext("{not json") == FieldValue.scalar("{not json")


    def test_deeply_nested(self):
        """Test JSON-looking text too deep to parse stays scalar."""
        text = "[" * 100000 + "]" * 100000
        assert decode_plaintext(text) == FieldValue.scalar(text)


class TestInjectAndRender:
    """Test cases for inject and render_body."""

    def test_inject_does_not_mutate(self):
        """Test the source document is left alone."""
        document = {"data": "cipher", "id": 7}
        updated = inject(document, "data", FieldValue.structured({"a": 1}))
        assert document == {"data": "cipher", "id": 7}
        assert updated == {"data": {"a": 1}, "id": 7}

    def test_inject_scalar(self):
        """Test scalar values are stored as strings."""
        assert inject({"data": {"a": 1}}, "data", FieldValue.scalar("QUJD"))["data"] == "QUJD"

    def test_render_preserves_order(self):
        """Test keys keep their order and output is compact UTF-8."""
        body = render_body({"z": 1, "data": "ñ", "a": [1, 2]})
        assert body == '{"z":1,"data":"ñ","a":[1,2]}'.encode("utf-8")
        assert list(json.loads(body)) == ["z", "data", "a"]

    def test_canonical_json(self):
        """Test canonical form."""
        assert canonical_json({"a": 1, "b": None}) == '{"a":1,"b":null}'
