import json

import pytest
import requests

import gemini_service
from errors import ExternalServiceError


def make_response(status_code=200, body=None, raw=None):
    response = requests.Response()
    response.status_code = status_code
    response.url = "https://example.test/models/x:generateContent"
    response._content = raw if raw is not None else json.dumps(body or {}).encode()
    return response


def text_body(text):
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


@pytest.fixture
def calls(monkeypatch):
    """Record requests.post calls; tests set ``calls.response`` or ``calls.error``."""

    class Recorder(list):
        response = make_response(body=text_body("ok"))
        error = None

    recorder = Recorder()

    def fake_post(url, **kwargs):
        recorder.append((url, kwargs))
        if recorder.error is not None:
            raise recorder.error
        return recorder.response

    monkeypatch.setattr(gemini_service.requests, "post", fake_post)
    return recorder


def test_identify_sends_images_then_prompt_and_trims(calls, leaf_image):
    calls.response = make_response(body=text_body("  Monstera deliciosa \n"))

    name = gemini_service.identify_plant("secret", [leaf_image, leaf_image])

    assert name == "Monstera deliciosa"
    url, kwargs = calls[0]
    assert url.endswith(":generateContent")
    assert kwargs["params"] == {"key": "secret"}
    parts = kwargs["json"]["contents"][0]["parts"]
    assert len(parts) == 3
    assert parts[0] == {"inline_data": {"mime_type": "image/png", "data": leaf_image.base64_data()}}
    assert gemini_service.UNKNOWN_PLANT in parts[-1]["text"]
    assert kwargs["json"]["generationConfig"] == {"temperature": 0.2, "topP": 0.9, "topK": 32}


def test_analyze_health_mentions_name_and_keeps_text(calls, leaf_image):
    calls.response = make_response(body=text_body("### 1. Health Status\n* fine\n"))

    report = gemini_service.analyze_plant_health("secret", [leaf_image], "Rose")

    assert report == "### 1. Health Status\n* fine\n"
    _, kwargs = calls[0]
    prompt = kwargs["json"]["contents"][0]["parts"][-1]["text"]
    assert '"Rose"' in prompt
    assert "Health Status" in prompt and "Improvement Solutions" in prompt and "General Care Guide" in prompt
    assert kwargs["json"]["generationConfig"]["temperature"] == 0.4


def test_goal_advice_is_text_only(calls):
    gemini_service.get_goal_advice("secret", "Rose", "previous report", "more flowers")

    _, kwargs = calls[0]
    parts = kwargs["json"]["contents"][0]["parts"]
    assert len(parts) == 1
    prompt = parts[0]["text"]
    assert "previous report" in prompt
    assert '"more flowers"' in prompt
    assert "Do not repeat" in prompt
    assert kwargs["json"]["generationConfig"] == {"temperature": 0.5, "topP": 0.9, "topK": 40}


def test_multiple_parts_are_joined(calls):
    calls.response = make_response(
        body={"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}]}
    )
    assert gemini_service.generate_content("k", [{"text": "hi"}], {}) == "Hello world"


def test_http_error_uses_provider_message(calls):
    calls.response = make_response(400, body={"error": {"message": "API key not valid."}})

    with pytest.raises(ExternalServiceError) as excinfo:
        gemini_service.generate_content("bad", [{"text": "hi"}], {})

    assert excinfo.value.status_code == 400
    assert "API key not valid." in excinfo.value.message


@pytest.mark.parametrize(
    "error",
    [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("down")],
)
def test_network_failures_raise(calls, error):
    calls.error = error
    with pytest.raises(ExternalServiceError):
        gemini_service.generate_content("k", [{"text": "hi"}], {})


def test_invalid_json_raises(calls):
    calls.response = make_response(raw=b"<html>oops</html>")
    with pytest.raises(ExternalServiceError):
        gemini_service.generate_content("k", [{"text": "hi"}], {})


@pytest.mark.parametrize("raw", [b"[]", b"\"x\"", b"null", b"42"])
def test_json_that_is_not_an_object_raises(calls, raw):
    calls.response = make_response(raw=raw)
    with pytest.raises(ExternalServiceError):
        gemini_service.generate_content("k", [{"text": "hi"}], {})


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"candidates": []},
        {"candidates": [{"finishReason": "SAFETY"}]},
        {"candidates": [{"content": {"parts": [{"text": "   "}]}}]},
        {"promptFeedback": {"blockReason": "SAFETY"}},
    ],
)
def test_empty_or_blocked_responses_raise(calls, body):
    calls.response = make_response(body=body)
    with pytest.raises(ExternalServiceError):
        gemini_service.generate_content("k", [{"text": "hi"}], {})


def test_no_retry_on_failure(calls):
    calls.error = requests.exceptions.ConnectionError("down")
    with pytest.raises(ExternalServiceError):
        gemini_service.identify_plant("k", [])
    assert len(calls) == 1
