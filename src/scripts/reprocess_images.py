"""
미처리 상품 이미지 일괄 재처리 스크립트.

/admin/reprocess-images를 호출하고 결과 요약을 출력한다.
처리 엔드포인트가 내려가 있던 동안 등록된 이미지를 다시 돌릴 때 사용.

사용법:
    cd src && uv run python -m scripts.reprocess_images

종료 코드:
    0: 호출 성공 (일부 이미지가 실패해도 0)
    1: 시크릿 없음, 연결 실패, 또는 관리 API가 2xx가 아님
"""

import sys

import httpx

from core.config import settings


def build_client() -> httpx.Client:
    # 배치 전체가 끝나야 응답이 오므로 길게 잡되, 무한 대기는 하지 않는다
    return httpx.Client(timeout=settings.REPROCESS_TIMEOUT_SECONDS)


def run(client: httpx.Client | None = None) -> int:
    if not settings.SERVICE_ROLE_KEY:
        print("Error: SERVICE_ROLE_KEY not found in environment variables")
        print("Make sure you have a .env file with this variable set")
        return 1

    url = f"{settings.SITE_URL.rstrip('/')}/admin/reprocess-images"
    print("Starting batch image reprocessing...")
    print(f"Calling: {url}\n")

    client = client or build_client()
    try:
        response = client.post(
            url,
            headers={
                "Authorization": f"Bearer {settings.SERVICE_ROLE_KEY}",
                "Content-Type": "application/json",
            },
        )
        if not response.is_success:
            raise RuntimeError(f"HTTP {response.status_code}: {response.text}")
        result = response.json()
    except (httpx.HTTPError, RuntimeError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    finally:
        client.close()

    print("✓ Batch processing completed!\n")
    print("Summary:")
    print(f"  Total images found: {result.get('total', 0)}")
    print(f"  Successfully processed: {result.get('processed', 0)}")
    print(f"  Failed: {result.get('failed', 0)}\n")

    if result.get("failed", 0) > 0:
        print("Failed images:")
        for item in result.get("results", []):
            if item.get("status") == "failed":
                print(f"  - Image {item.get('id')}: {item.get('error')}")

    if result.get("processed", 0) > 0:
        print(f"\n✓ {result['processed']} images successfully reprocessed!")

    return 0


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
