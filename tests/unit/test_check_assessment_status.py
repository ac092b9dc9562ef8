"""
Unit Tests for the Assessment Status Script

Tests that the status check uses the shared client settings.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "agentic_assessment_client", "src"))
sys.path.insert(0, os.path.join(project_root, "scripts"))

import check_assessment_status


class FakeResponse:
    status_code = 200
    text = ""

    def __init__(self, data):
        self._data = data

    def json(self):
        return {"status": "success", "data": self._data}


class TestCheckAssessmentStatus:

    @pytest.fixture
    def captured(self, monkeypatch):
        calls = []

        def fake_get(url, **kwargs):
            calls.append((url, kwargs))
            return FakeResponse({"session_id": 42, "status": "in_progress"})

        monkeypatch.setattr(check_assessment_status.requests, "get", fake_get)
        monkeypatch.setenv("ASSESSMENT_API_URL", "https://eval.example.com/api/")
        monkeypatch.setenv("ASSESSMENT_API_TOKEN", "secret-token")
        monkeypatch.setenv("ASSESSMENT_REQUEST_TIMEOUT", "7")
        monkeypatch.delenv("ASSESSMENT_QUERY_PARAMS", raising=False)
        return calls

    def test_query_params_are_sent(self, captured, monkeypatch):
        monkeypatch.setenv("ASSESSMENT_QUERY_PARAMS", "tenant=acme&cohort=7")

        assert check_assessment_status.main() == 0

        url, kwargs = captured[0]
        assert url == "https://eval.example.com/api/v1/agent/assessments"
        assert kwargs["params"] == {"tenant": "acme", "cohort": "7"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret-token"
        assert kwargs["timeout"] == 7.0

    def test_no_query_params(self, captured):
        assert check_assessment_status.main() == 0

        assert captured[0][1]["params"] is None

    def test_missing_token_fails_without_request(self, captured, monkeypatch):
        monkeypatch.delenv("ASSESSMENT_API_TOKEN")

        assert check_assessment_status.main() == 1
        assert captured == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
