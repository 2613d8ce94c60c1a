"""Tests for the stream decoder: strict parse, truncation recovery, partial rule."""

from __future__ import annotations

import json

from drawcast.scene.decoder import DecodeStatus, decode, drop_unsettled, parse_elements


class TestParseElements:
    def test_complete_array(self):
        result = parse_elements('[{"type":"rectangle","id":"a"}]')
        assert result.status is DecodeStatus.COMPLETE
        assert result.elements == [{"type": "rectangle", "id": "a"}]

    def test_empty_array_is_complete(self):
        result = parse_elements("[]")
        assert result.status is DecodeStatus.COMPLETE
        assert result.elements == []

    def test_leading_whitespace_allowed(self):
        assert parse_elements('  \n[{"id":"a"}]').status is DecodeStatus.COMPLETE

    def test_not_an_array(self):
        for raw in ['{"id":"a"}', "hello", "", None, "  "]:
            result = parse_elements(raw)
            assert result.status is DecodeStatus.EMPTY
            assert result.elements == []

    def test_truncated_recovers_complete_objects(self):
        raw = '[{"id":"a","x":1},{"id":"b","x":2},{"id":"c","x'
        result = parse_elements(raw)
        assert result.status is DecodeStatus.BEST_EFFORT
        assert [e["id"] for e in result.elements] == ["a", "b"]

    def test_trailing_comma_recovered(self):
        result = parse_elements('[{"id":"a"},')
        assert result.status is DecodeStatus.BEST_EFFORT
        assert result.elements == [{"id": "a"}]

    def test_no_closing_brace(self):
        assert parse_elements('[{"id":"a"').status is DecodeStatus.EMPTY

    def test_truncation_inside_nested_object(self):
        # Last brace closes the inner label, leaving the outer object open
        raw = '[{"id":"a"},{"id":"b","label":{"text":"hi"}'
        result = parse_elements(raw)
        assert result.status is DecodeStatus.EMPTY

    def test_non_object_items_dropped(self):
        result = parse_elements('[1, "x", {"id":"a"}, null]')
        assert result.elements == [{"id": "a"}]

    def test_deep_nesting_does_not_raise(self):
        raw = "[" * 100_000
        assert parse_elements(raw).status is DecodeStatus.EMPTY


class TestDecode:
    def test_final_keeps_everything(self):
        raw = json.dumps([{"id": "a"}, {"id": "b"}])
        assert [e["id"] for e in decode(raw, is_final=True)] == ["a", "b"]

    def test_partial_drops_last(self):
        raw = json.dumps([{"id": "a"}, {"id": "b"}, {"id": "c"}])
        assert [e["id"] for e in decode(raw, is_final=False)] == ["a", "b"]

    def test_partial_single_element_is_empty(self):
        assert decode('[{"id":"a"}]', is_final=False) == []

    def test_partial_truncated_second_object_yields_nothing(self):
        raw = '[{"type":"rectangle","id":"a","x":1,"y":1,"width":2},{"type":"rectangle","id":"b","x'
        assert decode(raw, is_final=False) == []

    def test_partial_garbage_is_empty(self):
        assert decode("not json at all", is_final=False) == []

    def test_drop_unsettled(self):
        assert drop_unsettled([]) == []
        assert drop_unsettled([{"id": "a"}]) == []
        assert drop_unsettled([{"id": "a"}, {"id": "b"}]) == [{"id": "a"}]
