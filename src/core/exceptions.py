"""앱 전역 커스텀 예외 클래스.

AppException을 상속하면 전역 핸들러(error_handlers.py)가 자동으로
{"error": "...", "error_code": "..."} 형식의 JSON 응답을 생성한다.

파이프라인 내부에서만 쓰이는 예외(EncodingError, StorageError)도 같은 계층에 둔다.
호출 측에서 잡아서 삼키는 것이 원칙이지만, 새어 나가더라도 500 형식은 유지된다.
"""


class AppException(Exception):
    """앱 전역 베이스 예외.

    서브클래스에서 status_code, error_code, message를 클래스 변수로 정의하면
    전역 핸들러가 해당 값을 읽어 HTTP 응답을 생성한다.
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        if message:
            self.message = message
        super().__init__(self.message)


# --- 인증 관련 ---


class MissingAuthorization(AppException):
    status_code = 401
    error_code = "MISSING_AUTHORIZATION"
    message = "Missing authorization header"


class InvalidToken(AppException):
    status_code = 401
    error_code = "INVALID_TOKEN"
    message = "Invalid token"


# --- 요청 관련 ---


class InvalidRequest(AppException):
    status_code = 400
    error_code = "INVALID_REQUEST"
    message = "Invalid request"


class ImageNotFound(AppException):
    status_code = 404
    error_code = "IMAGE_NOT_FOUND"
    message = "Image not found"


class InvalidStatusTransition(AppException):
    status_code = 409
    error_code = "INVALID_STATUS_TRANSITION"
    message = "Invalid processing status transition"


# --- 파이프라인 (치명적) ---


class FetchError(AppException):
    status_code = 500
    error_code = "FETCH_FAILED"
    message = "Download failed"


class DecodeError(AppException):
    status_code = 500
    error_code = "DECODE_FAILED"
    message = "Source image could not be decoded"


class PersistenceError(AppException):
    status_code = 500
    error_code = "PERSISTENCE_FAILED"
    message = "Database update failed"


class ScanError(AppException):
    status_code = 500
    error_code = "SCAN_FAILED"
    message = "Failed to query unprocessed images"


class DispatchError(AppException):
    status_code = 502
    error_code = "DISPATCH_FAILED"
    message = "Failed to process image"


# --- 파이프라인 (부분 실패, 호출 측에서 삼킴) ---


class EncodingError(AppException):
    error_code = "ENCODING_FAILED"
    message = "Failed to generate blurhash"


class StorageError(AppException):
    error_code = "STORAGE_FAILED"
    message = "Storage operation failed"
