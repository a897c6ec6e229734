import pytest

from authrelay.transport.stdio.shared import parse_json_message, serialize_message


class TestParseJsonMessage:
    def test_parses_request_object(self):
        assert parse_json_message('{"jsonrpc":"2.0","id":1,"method":"ping"}\n') == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "ping",
        }

    def test_parses_batch(self):
        assert parse_json_message('[{"id":1},{"id":2}]') == [{"id": 1}, {"id": 2}]

    def test_returns_scalars_unchanged(self):
        # Validity of the shape is the caller's decision
        assert parse_json_message("42") == 42

    @pytest.mark.parametrize("line", ["{not json", "", '{"id": 1'])
    def test_invalid_json_raises_value_error(self, line):
        with pytest.raises(ValueError, match="Invalid JSON"):
            parse_json_message(line)


class TestSerializeMessage:
    def test_compact_single_line(self):
        message = {"jsonrpc": "2.0", "id": 1, "result": {"text": "line one\nline two"}}

        serialized = serialize_message(message)

        assert "\n" not in serialized
        assert serialized == (
            '{"jsonrpc":"2.0","id":1,"result":{"text":"line one\\nline two"}}'
        )

    def test_keeps_non_ascii_text(self):
        assert serialize_message({"name": "café"}) == '{"name":"café"}'

    def test_unserializable_message_raises_value_error(self):
        with pytest.raises(ValueError):
            serialize_message({"method": lambda: None})
