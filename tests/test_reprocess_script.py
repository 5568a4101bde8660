"""운영 스크립트 (scripts/reprocess_images.py) 테스트."""

import httpx

from core.config import settings
from scripts import reprocess_images


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_prints_summary_and_failures(capsys):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "message": "Batch processing complete",
                "total": 3,
                "processed": 2,
                "failed": 1,
                "results": [
                    {"id": "a", "status": "success"},
                    {"id": "b", "status": "failed", "error": "Download failed"},
                    {"id": "c", "status": "success"},
                ],
            },
        )

    code = reprocess_images.run(_client(handler))

    out = capsys.readouterr().out
    assert code == 0  # 일부 실패해도 호출 자체는 성공
    assert captured["url"] == f"{settings.SITE_URL.rstrip('/')}/admin/reprocess-images"
    assert captured["auth"] == "Bearer test-service-key"
    assert "Total images found: 3" in out
    assert "Failed: 1" in out
    assert "Image b: Download failed" in out
    assert "2 images successfully reprocessed" in out


def test_nothing_to_do(capsys):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"message": "No unprocessed images found", "total": 0, "processed": 0, "failed": 0, "results": []},
        )

    assert reprocess_images.run(_client(handler)) == 0
    assert "Failed images" not in capsys.readouterr().out


def test_non_2xx_exits_1(capsys):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "Invalid token", "error_code": "INVALID_TOKEN"})

    assert reprocess_images.run(_client(handler)) == 1
    assert "HTTP 401" in capsys.readouterr().out


def test_connection_error_exits_1(capsys):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert reprocess_images.run(_client(handler)) == 1
    assert "connection refused" in capsys.readouterr().out


def test_missing_secret_exits_1(capsys, monkeypatch):
    monkeypatch.setattr(settings, "SERVICE_ROLE_KEY", "")

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not be called")

    assert reprocess_images.run(_client(handler)) == 1
    assert "SERVICE_ROLE_KEY not found" in capsys.readouterr().out


def test_default_client_has_a_bounded_timeout():
    client = reprocess_images.build_client()
    try:
        assert client.timeout.read == settings.REPROCESS_TIMEOUT_SECONDS
        assert client.timeout.connect == settings.REPROCESS_TIMEOUT_SECONDS
    finally:
        client.close()
