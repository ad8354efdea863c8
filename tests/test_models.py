"""Tests for http_replace.models.

Tests cover:
- HttpMethod parsing (case-insensitive, POST default)
- ReplaceRule field aliases, defaults, immutability
- PreparedRequest header lookup
- ProbeReport rendering
"""

import pytest
from pydantic import ValidationError

from http_replace.models import (
    HttpMethod,
    PostEncoding,
    PreparedRequest,
    ProbeReport,
    ReplaceResponse,
    ReplaceRule,
)


class TestHttpMethodParse:
    @pytest.mark.parametrize("raw", ["GET", "get", " Get "])
    def test_get_any_case(self, raw):
        assert HttpMethod.parse(raw) == HttpMethod.GET

    @pytest.mark.parametrize("raw", ["POST", "post"])
    def test_post_any_case(self, raw):
        assert HttpMethod.parse(raw) == HttpMethod.POST

    @pytest.mark.parametrize("raw", [None, "", "PUT", "delete", 42])
    def test_absent_or_unrecognized_defaults_to_post(self, raw):
        assert HttpMethod.parse(raw) == HttpMethod.POST

    def test_enum_passes_through(self):
        assert HttpMethod.parse(HttpMethod.GET) is HttpMethod.GET


class TestReplaceRule:
    def test_defaults(self):
        rule = ReplaceRule()
        assert rule.url == ""
        assert rule.method == HttpMethod.POST
        assert rule.headers is None
        assert rule.params is None
        assert rule.json_path is None
        assert rule.post_encoding == PostEncoding.JSON

    def test_method_normalized(self):
        assert ReplaceRule(url="http://x", method="get").method == HttpMethod.GET
        assert ReplaceRule(url="http://x", method="patch").method == HttpMethod.POST
        assert ReplaceRule(url="http://x", method=None).method == HttpMethod.POST

    def test_stored_field_names_accepted(self):
        """Rules persisted with httpUrl/httpMethod/... keys load directly."""
        rule = ReplaceRule.model_validate({
            "httpUrl": "http://x/api",
            "httpMethod": "GET",
            "httpHeaders": '{"A": "1"}',
            "httpParams": "{}",
            "jsonPath": "$.data",
        })
        assert rule.url == "http://x/api"
        assert rule.method == HttpMethod.GET
        assert rule.headers == '{"A": "1"}'
        assert rule.params == "{}"
        assert rule.json_path == "$.data"

    def test_mapping_headers_accepted(self):
        rule = ReplaceRule(url="http://x", headers={"A": "1"})
        assert rule.headers == {"A": "1"}

    def test_none_url_is_blank(self):
        rule = ReplaceRule.model_validate({"url": None})
        assert rule.url == ""
        assert rule.has_url is False

    def test_url_whitespace_stripped(self):
        rule = ReplaceRule(url="  http://x/api \n")
        assert rule.url == "http://x/api"
        assert ReplaceRule.model_validate({"httpUrl": " http://y "}).url == "http://y"

    def test_blank_url_has_no_url(self):
        assert ReplaceRule(url="   ").has_url is False
        assert ReplaceRule(url="http://x").has_url is True

    def test_extraction_path_blank_is_none(self):
        assert ReplaceRule(json_path="").extraction_path is None
        assert ReplaceRule(json_path="   ").extraction_path is None
        assert ReplaceRule(json_path=" $.a ").extraction_path == "$.a"

    def test_frozen(self):
        rule = ReplaceRule(url="http://x")
        with pytest.raises(ValidationError):
            rule.url = "http://y"

    def test_unrelated_stored_fields_ignored(self):
        rule = ReplaceRule.model_validate(
            {"id": 7, "name": "Translate", "pattern": "\\w+", "httpUrl": "http://x"}
        )
        assert rule.url == "http://x"
        assert not hasattr(rule, "pattern")

    def test_invalid_post_encoding_rejected(self):
        with pytest.raises(ValidationError):
            ReplaceRule(url="http://x", post_encoding="xml")


class TestPreparedRequest:
    def test_header_lookup_case_insensitive(self):
        request = PreparedRequest(
            method=HttpMethod.POST,
            url="http://x",
            headers={"content-TYPE": "text/plain"},
        )
        assert request.header("Content-Type") == "text/plain"
        assert request.header("Accept") is None


class TestProbeReport:
    def test_render_success_with_extraction(self):
        rule = ReplaceRule(url="http://x/api", method="POST", json_path="$.data")
        report = ProbeReport(
            trace_id="abc",
            rule=rule,
            request=PreparedRequest(
                method=HttpMethod.POST, url="http://x/api", headers={"A": "1"}
            ),
            response=ReplaceResponse(status_code=200, body='{"data":"ok"}'),
            result="ok",
            extracted=True,
        )

        text = report.render()

        assert report.ok is True
        assert "trace: abc" in text
        assert "url: http://x/api" in text
        assert "method: POST" in text
        assert "headers: {'A': '1'}" in text
        assert "code: 200" in text
        assert 'data: {"data":"ok"}' in text
        assert "jsonPath: ok" in text
        assert "error:" not in text

    def test_render_extraction_fallback_is_labelled(self):
        rule = ReplaceRule(url="http://x", json_path="$.data")
        report = ProbeReport(
            trace_id="abc",
            rule=rule,
            response=ReplaceResponse(status_code=200, body="not-json"),
            result="not-json",
        )
        assert "jsonPath (no match, raw body): not-json" in report.render()

    def test_render_failure(self):
        report = ProbeReport(
            trace_id="abc", rule=ReplaceRule(url="http://x"), error="Connection error"
        )
        text = report.render()
        assert report.ok is False
        assert "error: Connection error" in text
        assert "code:" not in text
