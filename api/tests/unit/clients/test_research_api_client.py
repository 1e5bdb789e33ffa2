#!/usr/bin/env python3
"""
Unit tests for the research API client.

HTTP traffic goes through httpx.MockTransport, so no request leaves the process.

Run with: pytest api/tests/unit/clients/test_research_api_client.py -v
"""

import json

import httpx
import pytest
from defusedxml.ElementTree import fromstring

from xml_graph.clients.research_api_client import (
    XML_NOTE,
    apply_credential,
    build_api_url,
    extract_id_from_element,
    fetch_from_api,
    http_request,
    normalize_response,
)


def mock_client(handler):
    """httpx client whose requests are answered by ``handler``."""
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def person_element():
    return fromstring(
        '<person xmlns:tei="http://www.tei-c.org/ns/1.0" ref="Q42" tei:key="k1">'
        '  <idno type="orcid" when="2020">0000-0002-1825-0097</idno>'
        '  Douglas Adams'
        '</person>'
    )


class TestBuildApiUrl:
    """Test provider URL construction."""

    def test_wikidata(self):
        assert build_api_url("wikidata", " Q42 ") == "https://www.wikidata.org/wiki/Special:EntityData/Q42.json"

    def test_geonames_username(self):
        assert build_api_url("geonames", "2950159", "alice").endswith("geonameId=2950159&username=alice")

    def test_dblp_query_is_encoded(self):
        assert build_api_url("dblp", "graph db") == "https://dblp.org/search/publ/api?q=graph%20db&format=json"

    def test_unsupported_provider(self):
        with pytest.raises(ValueError, match="Unsupported API provider"):
            build_api_url("myspace", "x")


class TestNormalizeResponse:
    """Test reduction of provider payloads."""

    def test_wikidata_first_entity(self):
        raw = {"entities": {"Q42": {"id": "Q42"}}}
        assert normalize_response("wikidata", raw) == {"id": "Q42"}

    def test_dblp_first_hit(self):
        raw = {"result": {"hits": {"hit": [{"info": {"title": "A"}}, {"info": {"title": "B"}}]}}}
        assert normalize_response("dblp", raw) == {"info": {"title": "A"}}

    def test_crossref_message(self):
        assert normalize_response("crossref", {"message": {"DOI": "10.1/x"}}) == {"DOI": "10.1/x"}

    def test_non_mapping_untouched(self):
        assert normalize_response("wikidata", "plain text") == "plain text"


class TestApplyCredential:
    """Test mapping of stored credentials onto requests."""

    def test_geonames_username_as_key(self):
        api_key, _, _ = apply_credential("geonames", {"username": "bob"}, None, None, None)
        assert api_key == "bob"

    def test_custom_endpoint_and_header(self):
        credential = {"endpoint": "https://example.org/api", "headerName": "X-Token", "headerValue": "s3cret"}
        api_key, endpoint, headers = apply_credential("custom", credential, "k", None, {"Accept-Language": "de"})
        assert api_key == "k"
        assert endpoint == "https://example.org/api"
        assert headers == {"Accept-Language": "de", "X-Token": "s3cret"}

    def test_no_credential(self):
        assert apply_credential("orcid", None, "k", None, None) == ("k", None, {})


class TestExtractIdFromElement:
    """Test reading lookup ids off elements."""

    def test_attribute(self, person_element):
        assert extract_id_from_element(person_element, "attribute", "ref") == "Q42"

    def test_prefixed_attribute(self, person_element):
        namespaces = {"tei": "http://www.tei-c.org/ns/1.0"}
        assert extract_id_from_element(person_element, "attribute", "tei:key", namespaces=namespaces) == "k1"

    def test_text_content(self, person_element):
        assert extract_id_from_element(person_element, "textContent") == "0000-0002-1825-0097  Douglas Adams"

    def test_xpath_text_and_attribute(self, person_element):
        assert extract_id_from_element(person_element, "xpath", id_xpath="./idno") == "0000-0002-1825-0097"
        assert extract_id_from_element(person_element, "xpath", id_xpath="./idno/@when") == "2020"
        assert extract_id_from_element(person_element, "xpath", id_xpath="@ref") == "Q42"

    def test_missing(self, person_element):
        assert extract_id_from_element(person_element, "attribute", "nope") is None
        assert extract_id_from_element(person_element, "xpath", id_xpath="./date") is None
        assert extract_id_from_element(person_element, "unknown") is None


class TestFetchFromApi:
    """Test provider lookups over a mocked transport."""

    def test_success_is_normalized(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"entities": {"Q42": {"labels": {"en": {"value": "Douglas Adams"}}}}})

        with mock_client(handler) as client:
            result = fetch_from_api("wikidata", "Q42", client=client)

        assert result.success
        assert result.data == {"labels": {"en": {"value": "Douglas Adams"}}}
        assert seen["url"] == "https://www.wikidata.org/wiki/Special:EntityData/Q42.json"

    def test_orcid_accept_header(self):
        def handler(request):
            assert request.headers["accept"] == "application/vnd.orcid+json"
            return httpx.Response(200, json={"orcid-identifier": {"path": "0000"}})

        with mock_client(handler) as client:
            assert fetch_from_api("orcid", "0000", client=client).success

    def test_xml_body_wrapped(self):
        def handler(request):
            return httpx.Response(200, text="<rdf:RDF/>", headers={"content-type": "application/rdf+xml"})

        with mock_client(handler) as client:
            result = fetch_from_api("viaf", "123", client=client)

        assert result.data == {"_raw": "<rdf:RDF/>", "_format": "xml", "_note": XML_NOTE}

    def test_http_error_reported(self):
        with mock_client(lambda request: httpx.Response(404)) as client:
            result = fetch_from_api("wikidata", "Q0", client=client)

        assert not result.success
        assert result.error == "API request failed: 404 Not Found"

    def test_timeout_reported(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with mock_client(handler) as client:
            result = fetch_from_api("wikidata", "Q42", client=client)

        assert result.error == "Request timeout"

    def test_empty_identifier(self):
        result = fetch_from_api("wikidata", "  ")
        assert not result.success
        assert result.error == "ID is required"

    def test_custom_endpoint_used(self):
        def handler(request):
            assert str(request.url) == "https://example.org/lookup?id=7"
            return httpx.Response(200, json={"ok": True})

        with mock_client(handler) as client:
            result = fetch_from_api("custom", "7", custom_endpoint="https://example.org/lookup?id=7", client=client)

        assert result.data == {"ok": True}


class TestHttpRequest:
    """Test the generic HTTP request helper."""

    def test_json_response(self):
        def handler(request):
            assert request.method == "POST"
            assert request.content == b'{"q": 1}'
            return httpx.Response(201, json={"created": True})

        with mock_client(handler) as client:
            result = http_request("POST", "https://example.org/items", body='{"q": 1}', client=client)

        assert result["status"] == 201
        assert result["statusText"] == "Created"
        assert result["data"] == {"created": True}

    def test_text_response(self):
        with mock_client(lambda request: httpx.Response(200, text="plain")) as client:
            assert http_request("GET", "https://example.org", client=client)["data"] == "plain"

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with mock_client(handler) as client:
            assert http_request("GET", "https://example.org", client=client) == {"error": "refused"}

    def test_mapping_body_sent_as_json(self):
        def handler(request):
            assert request.headers["content-type"] == "application/json"
            assert json.loads(request.content) == {"a": 1}
            return httpx.Response(200, json={"ok": True})

        with mock_client(handler) as client:
            result = http_request("POST", "https://example.org/items", body={"a": 1}, client=client)

        assert result["data"] == {"ok": True}

    def test_list_body_sent_as_json(self):
        def handler(request):
            assert json.loads(request.content) == [1, 2]
            return httpx.Response(204)

        with mock_client(handler) as client:
            assert http_request("PUT", "https://example.org/items", body=[1, 2], client=client)["status"] == 204

    def test_invalid_url_reported(self):
        with mock_client(lambda request: httpx.Response(200)) as client:
            result = http_request("GET", "https://example.org/\x00", client=client)

        assert list(result) == ["error"]

    def test_bad_header_value_reported(self):
        with mock_client(lambda request: httpx.Response(200)) as client:
            result = http_request("GET", "https://example.org", headers={"X-Count": 3}, client=client)

        assert list(result) == ["error"]


class TestFetchFromApiFailures:
    """Test that requests httpx refuses to build come back as errors."""

    def test_invalid_custom_endpoint(self):
        with mock_client(lambda request: httpx.Response(200)) as client:
            result = fetch_from_api("custom", "7", custom_endpoint="https://example.org/\x00", client=client)

        assert not result.success
        assert result.error

    def test_bad_header_value(self):
        with mock_client(lambda request: httpx.Response(200, json={})) as client:
            result = fetch_from_api("wikidata", "Q42", custom_headers={"X-Count": 3}, client=client)

        assert not result.success
        assert result.error
