"""Tests for execute_request and RequestResult."""

from unittest.mock import MagicMock, patch

import requests

from httpdoc.executor import execute_request
from tests.conftest import make_request_result


def _response(status_code=200, headers=None, text="{}", json_value=None):
    def _json(self):
        if json_value is None:
            raise ValueError("not json")
        return json_value

    return type(
        "Response",
        (),
        {
            "status_code": status_code,
            "headers": headers or {},
            "text": text,
            "json": _json,
        },
    )()


class TestExecuteRequest:
    @patch("httpdoc.executor.requests.request")
    def test_json_response(self, mock_req):
        mock_req.return_value = _response(
            headers={"Content-Type": "application/json"},
            text='{"ok":true}',
            json_value={"ok": True},
        )
        result = execute_request(method="GET", url="http://localhost:3000/api")
        assert result.status_code == 200
        assert result.body == {"ok": True}
        assert result.raw_text == '{"ok":true}'
        assert result.error is None
        assert result.is_success

    @patch("httpdoc.executor.requests.request")
    def test_text_response(self, mock_req):
        mock_req.return_value = _response(text="pong")
        result = execute_request(method="GET", url="http://localhost:3000/ping")
        assert result.body == "pong"

    @patch("httpdoc.executor.requests.request")
    def test_body_encoded(self, mock_req):
        mock_req.return_value = _response()
        execute_request(method="POST", url="http://localhost:3000/api", body='{"name":"Zoë"}')
        call_kwargs = mock_req.call_args[1]
        assert call_kwargs["data"] == '{"name":"Zoë"}'.encode()

    @patch("httpdoc.executor.requests.request")
    def test_no_body(self, mock_req):
        mock_req.return_value = _response()
        execute_request(method="GET", url="http://localhost:3000/api", headers={})
        call_kwargs = mock_req.call_args[1]
        assert call_kwargs["data"] is None
        assert call_kwargs["headers"] is None

    def test_session_used(self):
        session = MagicMock()
        session.request.return_value = _response(status_code=204, text="")
        result = execute_request(method="DELETE", url="http://localhost:3000/a/1", session=session)
        assert session.request.called
        assert result.status_code == 204

    @patch("httpdoc.executor.requests.request")
    def test_timeout(self, mock_req):
        mock_req.side_effect = requests.exceptions.Timeout()
        result = execute_request(method="GET", url="http://localhost:3000/slow", timeout=3)
        assert result.error == "Request timed out after 3s"
        assert not result.is_success

    @patch("httpdoc.executor.requests.request")
    def test_connection_error(self, mock_req):
        mock_req.side_effect = requests.exceptions.ConnectionError("refused")
        result = execute_request(method="GET", url="http://localhost:1/")
        assert result.error.startswith("Connection error:")

    @patch("httpdoc.executor.requests.request")
    def test_other_request_error(self, mock_req):
        mock_req.side_effect = requests.exceptions.InvalidURL("bad url")
        result = execute_request(method="GET", url="nope")
        assert result.error.startswith("Request failed:")

    @patch("httpdoc.executor.requests.request")
    def test_non_latin1_header_reported(self, mock_req):
        mock_req.side_effect = UnicodeEncodeError("latin-1", "日本", 0, 2, "ordinal not in range(256)")
        result = execute_request(method="GET", url="http://localhost:9/", headers={"X-Name": "日本"})
        assert result.error.startswith("Unexpected error:")
        assert "latin-1" in result.error
        assert result.status_code == 0

    @patch("httpdoc.executor.requests.request")
    def test_body_read_failure_reported(self, mock_req):
        class BrokenResponse:
            status_code = 200
            headers = {}

            @property
            def text(self):
                raise RuntimeError("stream closed")

        mock_req.return_value = BrokenResponse()
        result = execute_request(method="GET", url="http://localhost:3000/api")
        assert result.error == "Unexpected error: stream closed"


class TestRequestResult:
    def test_content_type_without_parameters(self):
        result = make_request_result(headers={"content-type": "application/json; charset=utf-8"})
        assert result.content_type == "application/json"

    def test_no_content_type(self):
        assert make_request_result().content_type is None

    def test_non_2xx_is_not_success(self):
        assert not make_request_result(status_code=404).is_success
