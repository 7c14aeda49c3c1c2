"""
Tests for the HTTP collaborators: queue API, image downloads, vision model and Gemini proxy.
"""

import io
import json
import httpx
import pytest
from PIL import Image

from tag_bridge.image_fetcher import ImageFetcher, NoImagesAvailable
from tag_bridge.models import JobResult
from tag_bridge.processor import QueueDrainer
from tag_bridge.tag_validator import TagValidator
from tag_bridge.proxy import GeminiProxy, ProxyError, gemini_to_openai, openai_to_gemini
from tag_bridge.queue_client import QueueClient, QueueAPIError, ResultSubmissionFailed
from tag_bridge.vision_oracle import (
    VisionOracle,
    OracleUnavailable,
    detect_mime_type,
    extract_message_content,
)


def make_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), (255, 0, 0)).save(buffer, "PNG")
    return buffer.getvalue()


def chat_completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


# Queue API

def test_get_pending_jobs_parses_records():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"requests": [
            {
                "id": "job-1",
                "messageId": "m1",
                "userTag": "someone#0001",
                "timestamp": 1700000000000,
                "retryCount": 2,
                "imageUrls": ["https://cdn.example.com/a.png", "https://cdn.example.com/b.png"],
            },
            {"id": "job-2", "imageUrls": None, "retryCount": None, "unknown": "ignored"},
            {"imageUrls": ["https://cdn.example.com/c.png"]},
            "not-an-object",
        ]})

    client = QueueClient(base_url="https://queue.example.com/", api_secret="s3cret", client=make_client(handler))
    jobs = client.get_pending_jobs()

    assert seen["url"] == "https://queue.example.com/api/queue/pending"
    assert seen["auth"] == "Bearer s3cret"
    assert [job.id for job in jobs] == ["job-1", "job-2"]
    assert jobs[0].retryCount == 2
    assert len(jobs[0].imageUrls) == 2
    assert jobs[1].imageUrls == []
    assert jobs[1].retryCount == 0


def test_get_pending_jobs_without_requests_key_is_empty():
    client = QueueClient(base_url="https://queue.example.com", client=make_client(lambda r: httpx.Response(200, json={})))
    assert client.get_pending_jobs() == []


def test_no_auth_header_without_secret():
    def handler(request):
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"requests": []})

    client = QueueClient(base_url="https://queue.example.com", api_secret="", client=make_client(handler))
    assert client.get_pending_jobs() == []


def test_get_pending_jobs_error_status():
    client = QueueClient(
        base_url="https://queue.example.com",
        client=make_client(lambda r: httpx.Response(503, text="maintenance")),
    )
    with pytest.raises(QueueAPIError) as exc_info:
        client.get_pending_jobs()
    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "maintenance"
    assert "503" in str(exc_info.value)


def test_get_pending_jobs_invalid_json():
    client = QueueClient(
        base_url="https://queue.example.com",
        client=make_client(lambda r: httpx.Response(200, text="<html>")),
    )
    with pytest.raises(QueueAPIError):
        client.get_pending_jobs()


def test_get_pending_jobs_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = QueueClient(base_url="https://queue.example.com", client=make_client(handler))
    with pytest.raises(QueueAPIError):
        client.get_pending_jobs()


def test_submit_success_result_body():
    captured = {}

    def handler(request):
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    client = QueueClient(base_url="https://queue.example.com", client=make_client(handler))
    client.submit_result(JobResult(job_id="job-1", success=True, extracted_tag="#2YLJPV0LQ"))

    assert captured["method"] == "POST"
    assert captured["path"] == "/api/queue/result"
    assert captured["body"] == {"requestId": "job-1", "success": True, "playerTag": "#2YLJPV0LQ"}


def test_submit_failure_result_body():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200)

    client = QueueClient(base_url="https://queue.example.com", client=make_client(handler))
    client.submit_result(JobResult(job_id="job-2", success=False, error_message="Could not extract player tag from images"))

    assert captured["body"] == {
        "requestId": "job-2",
        "success": False,
        "errorMessage": "Could not extract player tag from images",
    }


def test_submit_result_is_attempted_once():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    client = QueueClient(base_url="https://queue.example.com", client=make_client(handler))
    with pytest.raises(ResultSubmissionFailed) as exc_info:
        client.submit_result(JobResult(job_id="job-1", success=True, extracted_tag="#PYL"))

    assert len(calls) == 1
    assert exc_info.value.status_code == 500


def test_records_with_odd_metadata_still_get_results():
    posted = []
    records = [
        {"id": "snowflake", "userId": 123456789012345678, "imageUrls": ["https://cdn.example.com/1.png"]},
        {"id": "float-ts", "timestamp": 1700000000.5, "imageUrls": ["https://cdn.example.com/2.png"]},
        {"id": "negative-retry", "retryCount": -1, "imageUrls": ["https://cdn.example.com/3.png"]},
        {"id": "clean", "userTag": "someone", "retryCount": 0, "imageUrls": ["https://cdn.example.com/4.png"]},
        {"userId": "no-id", "imageUrls": ["https://cdn.example.com/5.png"]},
    ]

    def handler(request):
        if request.url.host == "queue.example.com":
            if request.method == "GET":
                return httpx.Response(200, json={"requests": records})
            posted.append(json.loads(request.content))
            return httpx.Response(200)
        if request.url.host == "cdn.example.com":
            return httpx.Response(200, content=b"img")
        return httpx.Response(200, json=chat_completion("#2YLJPV0LQ"))

    http = make_client(handler)
    drainer = QueueDrainer(
        queue_client=QueueClient(base_url="https://queue.example.com", client=http),
        image_fetcher=ImageFetcher(client=http),
        vision_oracle=VisionOracle(endpoint="http://localhost:1234/v1/chat/completions", client=http),
        tag_validator=TagValidator(allowed_characters="0289PYLQGRJCUVO", no_tag_marker="NOTAG"),
    )
    summary = drainer.run()

    assert summary.processed == 4
    assert summary.succeeded == 4
    assert [body["requestId"] for body in posted] == ["snowflake", "float-ts", "negative-retry", "clean"]
    assert all(body["playerTag"] == "#2YLJPV0LQ" for body in posted)


def test_test_connection():
    ok = QueueClient(base_url="https://queue.example.com", client=make_client(lambda r: httpx.Response(200, json={})))
    down = QueueClient(base_url="https://queue.example.com", client=make_client(lambda r: httpx.Response(401)))
    assert ok.test_connection() is True
    assert down.test_connection() is False


# Image downloads

def test_fetch_all_skips_failed_downloads():
    def handler(request):
        if request.url.path == "/missing.png":
            return httpx.Response(404)
        if request.url.path == "/timeout.png":
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, content=request.url.path.encode())

    fetcher = ImageFetcher(client=make_client(handler))
    images = fetcher.fetch_all([
        "https://cdn.example.com/first.png",
        "https://cdn.example.com/missing.png",
        "https://cdn.example.com/timeout.png",
        "https://cdn.example.com/second.png",
    ])

    assert images == [b"/first.png", b"/second.png"]


def test_fetch_all_with_no_urls():
    fetcher = ImageFetcher(client=make_client(lambda r: httpx.Response(200)))
    with pytest.raises(NoImagesAvailable):
        fetcher.fetch_all([])


def test_fetch_all_when_every_download_fails():
    fetcher = ImageFetcher(client=make_client(lambda r: httpx.Response(500)))
    with pytest.raises(NoImagesAvailable):
        fetcher.fetch_all(["https://cdn.example.com/a.png", "https://cdn.example.com/b.png"])


def test_fetch_all_skips_unreachable_hosts():
    def handler(request):
        if request.url.host == "offline.example.com":
            raise httpx.ConnectError("name resolution failed", request=request)
        return httpx.Response(200, content=b"img")

    fetcher = ImageFetcher(client=make_client(handler))
    images = fetcher.fetch_all(["https://offline.example.com/a.png", "https://cdn.example.com/a.png"])
    assert images == [b"img"]


# Vision model

def test_vision_request_shape():
    captured = {}
    image = png_bytes()

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=chat_completion("#2YLJPV0LQ"))

    oracle = VisionOracle(endpoint="http://localhost:1234/v1/chat/completions", client=make_client(handler))
    answer = oracle.ask([image, b"not an image"])

    assert answer == "#2YLJPV0LQ"
    body = captured["body"]
    assert body["model"] == "vision-model"
    assert body["max_tokens"] == 100
    assert len(body["messages"]) == 1
    content = body["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert "NOTAG" in content[0]["text"]
    assert [part["type"] for part in content[1:]] == ["image_url", "image_url"]
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")
    assert content[2]["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_vision_error_status_carries_body():
    oracle = VisionOracle(
        endpoint="http://localhost:1234/v1/chat/completions",
        client=make_client(lambda r: httpx.Response(500, text="model not loaded")),
    )
    with pytest.raises(OracleUnavailable) as exc_info:
        oracle.ask([b"img"])
    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "model not loaded"
    assert "model not loaded" in str(exc_info.value)


def test_vision_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    oracle = VisionOracle(endpoint="http://localhost:1234/v1/chat/completions", client=make_client(handler))
    with pytest.raises(OracleUnavailable):
        oracle.ask([b"img"])


def test_extract_message_content_falls_back_to_raw_text():
    assert extract_message_content(json.dumps(chat_completion("NOTAG"))) == "NOTAG"
    assert extract_message_content("#2YLJPV0LQ") == "#2YLJPV0LQ"
    assert extract_message_content('{"choices": []}') == '{"choices": []}'


def test_detect_mime_type():
    assert detect_mime_type(png_bytes()) == "image/png"
    assert detect_mime_type(b"garbage") == "image/jpeg"


# Gemini proxy

def test_gemini_to_openai_joins_text_parts():
    request = {"contents": [
        {"role": "user", "parts": [{"text": "Hello"}, {"inlineData": {"data": "..."}}]},
        {"parts": [{"text": "World"}]},
    ]}
    assert gemini_to_openai(request) == {
        "messages": [{"role": "user", "content": "Hello\nWorld"}],
        "temperature": 0.7,
        "max_tokens": 2000,
        "stream": False,
    }


def test_gemini_to_openai_without_contents():
    assert gemini_to_openai({})["messages"] == [{"role": "user", "content": ""}]


def test_openai_to_gemini():
    assert openai_to_gemini(chat_completion("Hi there")) == {
        "candidates": [{"content": {"parts": [{"text": "Hi there"}]}, "finishReason": "STOP"}]
    }
    assert openai_to_gemini({})["candidates"][0]["content"]["parts"][0]["text"] == ""


def test_proxy_generate_round_trip():
    def handler(request):
        body = json.loads(request.content)
        return httpx.Response(200, json=chat_completion(body["messages"][0]["content"].upper()))

    proxy = GeminiProxy(endpoint="http://localhost:1234/v1/chat/completions", client=make_client(handler))
    response = proxy.generate({"contents": [{"parts": [{"text": "ping"}]}]})
    assert response["candidates"][0]["content"]["parts"][0]["text"] == "PING"


def test_proxy_upstream_error():
    proxy = GeminiProxy(
        endpoint="http://localhost:1234/v1/chat/completions",
        client=make_client(lambda r: httpx.Response(502, text="bad gateway")),
    )
    with pytest.raises(ProxyError) as exc_info:
        proxy.generate({"contents": []})
    assert exc_info.value.status_code == 502
