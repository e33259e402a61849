"""
上传重试策略

对下载源文件和上传 WebDAV 的失败进行分类，决定是否重试以及等待时间。
"""
from dataclasses import dataclass
from typing import Optional

from .config import AUTH_RETRY_DELAY, RETRY_BASE_DELAY, RETRY_MAX_DELAY, UPLOAD_MAX_ATTEMPTS
from .exceptions import UploadError

NETWORK_ERROR_PATTERNS = (
    "network error",
    "fetch failed",
    "econnreset",
    "timeout",
    "econnrefused",
    "etimedout",
)
AUTH_STATUS_CODES = (401, 403)
TRANSIENT_STATUS_CODES = (408, 429)

HINT_FORBIDDEN = "。可能是视频链接已过期或需要登录，请尝试其他视频链接。"
HINT_UNAUTHORIZED = "。认证失败，请检查视频链接是否正确。"
HINT_NOT_FOUND = "。请检查WebDAV服务器地址和路径配置是否正确。"


@dataclass(frozen=True)
class RetryDecision:
    """重试决策"""
    retry: bool
    delay: float = 0.0
    reason: str = ""


class RetryPolicy:
    """
    有界重试策略

    - 源文件下载返回 401/403/408/429/5xx：指数退避重试
    - WebDAV 上传返回 408/429/5xx：指数退避重试
    - 网络错误（超时、连接重置等）：指数退避重试
    - 第一次尝试遇到 401/403：固定等待 1 秒重试一次
    - 其他错误或次数用尽：不再重试
    """

    def __init__(
        self,
        max_attempts: int = UPLOAD_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
        max_delay: float = RETRY_MAX_DELAY,
        auth_retry_delay: float = AUTH_RETRY_DELAY,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.auth_retry_delay = auth_retry_delay

    def backoff(self, attempt: int) -> float:
        """第 attempt 次失败后的等待时间：min(base * 2^(attempt-1), max)"""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    @staticmethod
    def is_network_error(error: Exception) -> bool:
        if isinstance(error, UploadError) and error.network:
            return True
        message = str(error).lower()
        return any(pattern in message for pattern in NETWORK_ERROR_PATTERNS)

    @staticmethod
    def is_auth_error(error: Exception) -> bool:
        if isinstance(error, UploadError) and error.status_code is not None:
            return error.status_code in AUTH_STATUS_CODES
        message = str(error)
        return "403" in message or "401" in message

    @staticmethod
    def is_retryable_status(status_code: Optional[int], stage: Optional[str]) -> bool:
        if status_code is None:
            return False
        if status_code >= 500 or status_code in TRANSIENT_STATUS_CODES:
            return True
        return stage == "download" and status_code in AUTH_STATUS_CODES

    def decide(self, error: Exception, attempt: int) -> RetryDecision:
        """
        根据错误和当前尝试次数决定是否重试

        Args:
            error: 本次尝试的错误
            attempt: 当前尝试次数（从 1 开始）
        """
        if attempt >= self.max_attempts:
            return RetryDecision(False, reason="已达到最大重试次数")

        status_code = getattr(error, "status_code", None)
        stage = getattr(error, "stage", None)

        if self.is_retryable_status(status_code, stage):
            return RetryDecision(True, self.backoff(attempt), f"HTTP {status_code}")

        if self.is_network_error(error):
            return RetryDecision(True, self.backoff(attempt), "网络错误")

        if self.is_auth_error(error) and attempt == 1:
            return RetryDecision(True, self.auth_retry_delay, "权限错误")

        return RetryDecision(False, reason="不可重试的错误")

    @staticmethod
    def final_message(error: Exception) -> str:
        """最终失败信息，按状态码附加提示"""
        message = str(error)
        status_code = getattr(error, "status_code", None)
        stage = getattr(error, "stage", None)
        if status_code == 403 and stage == "download":
            return message + HINT_FORBIDDEN
        if status_code == 401 and stage == "download":
            return message + HINT_UNAUTHORIZED
        if status_code == 404 and stage == "upload" and "404" not in message:
            return message + HINT_NOT_FOUND
        return message
