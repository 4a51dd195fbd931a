"""
Tests for model response JSON extraction.
"""

from retouch.pipeline.parsing import parse_json_response


def test_plain_json():
    assert parse_json_response('{"a": 1}') == {"a": 1}


def test_fenced_json():
    text = '```json\n{"samePerson": true}\n```'
    assert parse_json_response(text) == {"samePerson": True}


def test_json_surrounded_by_prose():
    text = 'Here is my verdict: {"editApplied": false} Hope that helps.'
    assert parse_json_response(text) == {"editApplied": False}


def test_unparseable_returns_none():
    assert parse_json_response("I cannot evaluate these images.") is None
    assert parse_json_response('{"broken": ') is None


def test_empty_returns_none():
    assert parse_json_response("") is None
    assert parse_json_response(None) is None
