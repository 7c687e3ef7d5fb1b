"""
Tests for the spreadsheet sink client.

These tests use responses library to mock HTTP requests,
validating client behavior without making real API calls.
"""

import json

import pytest
import requests
import responses

from expense_capture.sink_client import (
    SheetsSinkClient,
    SinkAPIError,
    SinkConnectionError,
    SinkError,
    SinkNotConfiguredError,
)
from expense_capture.sink_client.client import is_success

ROW = {
    "date": "2025-11-05",
    "description": "Cuadernos",
    "documentNumber": "4F2A1B3C-9D8E-4A7B-B6C5-1234567890AB",
    "project": "Operaciones",
    "amount": "30.00",
    "requester": "Ana Lopez",
    "photoRef": "https://drive.example/receipt_1.jpg",
}


class TestIsSuccess:
    """Tests for success flag detection."""

    def test_success_true(self):
        assert is_success({"success": True})

    def test_status_success(self):
        assert is_success({"status": "success"})
        assert is_success({"status": "OK"})

    def test_missing_or_false_flag(self):
        assert not is_success({})
        assert not is_success({"success": False})
        assert not is_success({"success": "yes"})
        assert not is_success({"status": "error"})


class TestSheetsSinkClient:
    """Test spreadsheet sink client."""

    URL = "https://script.test/macros/s/abc/exec"
    ASSET_URL = "https://script.test/macros/s/assets/exec"

    @pytest.fixture
    def client(self):
        client = SheetsSinkClient(self.URL, asset_url=self.ASSET_URL, max_retries=0)
        yield client
        client.close()

    def test_configuration_flags(self):
        assert SheetsSinkClient(self.URL).is_configured
        assert not SheetsSinkClient(self.URL).has_asset_sink
        assert not SheetsSinkClient(None).is_configured
        assert not SheetsSinkClient("   ").is_configured

    @responses.activate
    def test_add_row_success(self, client):
        """Row is posted as JSON with action=addRow."""
        responses.add(responses.POST, self.URL, json={"success": True}, status=200)

        body = client.add_row(ROW)

        assert body == {"success": True}
        assert len(responses.calls) == 1
        request = responses.calls[0].request
        assert "action=addRow" in request.url
        assert json.loads(request.body) == ROW

    @responses.activate
    def test_add_row_status_success(self, client):
        responses.add(responses.POST, self.URL, json={"status": "success"}, status=200)
        assert client.add_row(ROW) == {"status": "success"}

    @responses.activate
    def test_add_row_without_success_flag_fails(self, client):
        responses.add(responses.POST, self.URL, json={"result": "maybe"}, status=200)

        with pytest.raises(SinkAPIError):
            client.add_row(ROW)

    @responses.activate
    def test_add_row_success_false_fails(self, client):
        responses.add(
            responses.POST, self.URL, json={"success": False, "error": "Sheet locked"}, status=200
        )

        with pytest.raises(SinkAPIError, match="Sheet locked"):
            client.add_row(ROW)

    @responses.activate
    def test_add_row_non_json_fails(self, client):
        responses.add(responses.POST, self.URL, body="<html>Login</html>", status=200)

        with pytest.raises(SinkAPIError, match="not JSON"):
            client.add_row(ROW)

    @responses.activate
    def test_add_row_non_object_json_fails(self, client):
        responses.add(responses.POST, self.URL, json=[1, 2, 3], status=200)

        with pytest.raises(SinkAPIError):
            client.add_row(ROW)

    @responses.activate
    def test_add_row_http_error(self, client):
        responses.add(responses.POST, self.URL, json={"error": "boom"}, status=500)

        with pytest.raises(SinkAPIError) as exc_info:
            client.add_row(ROW)

        assert exc_info.value.status_code == 500
        assert "boom" in exc_info.value.response_body

    @responses.activate
    def test_add_row_connection_error(self, client):
        responses.add(
            responses.POST, self.URL, body=requests.exceptions.ConnectionError("unreachable")
        )

        with pytest.raises(SinkConnectionError):
            client.add_row(ROW)

    @responses.activate
    def test_add_row_timeout(self, client):
        responses.add(responses.POST, self.URL, body=requests.exceptions.ReadTimeout("slow"))

        with pytest.raises(SinkConnectionError, match="timed out"):
            client.add_row(ROW)

    @responses.activate
    def test_add_row_not_configured_makes_no_request(self):
        client = SheetsSinkClient(None)

        with pytest.raises(SinkNotConfiguredError):
            client.add_row(ROW)

        assert len(responses.calls) == 0

    def test_not_configured_is_a_sink_error(self):
        assert issubclass(SinkNotConfiguredError, SinkError)
        assert issubclass(SinkConnectionError, SinkError)
        assert issubclass(SinkAPIError, SinkError)

    @responses.activate
    def test_upload_image_returns_url(self, client):
        """Image goes to the asset URL with action=uploadImage."""
        responses.add(
            responses.POST,
            self.ASSET_URL,
            json={"success": True, "url": "https://drive.example/receipt_1.jpg"},
            status=200,
        )

        url = client.upload_image("data:image/jpeg;base64,AAAA", "receipt_1_1730800000000.jpg")

        assert url == "https://drive.example/receipt_1.jpg"
        request = responses.calls[0].request
        assert request.url.startswith(self.ASSET_URL)
        assert "action=uploadImage" in request.url
        assert json.loads(request.body) == {
            "imageData": "data:image/jpeg;base64,AAAA",
            "filename": "receipt_1_1730800000000.jpg",
        }

    @responses.activate
    def test_upload_image_without_url_fails(self, client):
        responses.add(responses.POST, self.ASSET_URL, json={"success": True}, status=200)

        with pytest.raises(SinkAPIError):
            client.upload_image("data:image/jpeg;base64,AAAA", "x.jpg")

    @responses.activate
    def test_upload_image_success_false_fails(self, client):
        responses.add(
            responses.POST,
            self.ASSET_URL,
            json={"success": False, "url": "https://drive.example/x.jpg"},
            status=200,
        )

        with pytest.raises(SinkAPIError):
            client.upload_image("data:image/jpeg;base64,AAAA", "x.jpg")

    def test_upload_image_without_asset_sink(self):
        client = SheetsSinkClient(self.URL)

        with pytest.raises(SinkNotConfiguredError):
            client.upload_image("data:image/jpeg;base64,AAAA", "x.jpg")
