"""
WebDAV 客户端 - PROPFIND / MKCOL / PUT
"""
from typing import Optional, Tuple

import requests

from .config import UPLOAD_TIMEOUT
from .exceptions import UploadError
from .logger import get_logger
from .models import WebDAVConfig

logger = get_logger(__name__)

PROPFIND_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<D:propfind xmlns:D="DAV:">
  <D:prop>
    <D:resourcetype/>
  </D:prop>
</D:propfind>"""

# 201 创建成功，405 表示文件夹已存在
MKCOL_SUCCESS_CODES = (201, 405)


def _strip_slashes(path: Optional[str]) -> str:
    return (path or "").strip("/")


class WebDAVClient:
    """WebDAV 客户端，使用 HTTP Basic 认证"""

    def __init__(
        self,
        config: WebDAVConfig,
        session: Optional[requests.Session] = None,
        timeout: float = UPLOAD_TIMEOUT,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def auth(self) -> Tuple[str, str]:
        return (self.config.username, self.config.password)

    def folder_url(self, folder_path: str = "") -> str:
        """服务器地址 + basePath + folderPath"""
        parts = [self.config.url.rstrip("/")]
        for segment in (self.config.base_path, folder_path):
            normalized = _strip_slashes(segment)
            if normalized:
                parts.append(normalized)
        return "/".join(parts)

    def build_url(self, folder_path: str, file_name: str) -> str:
        """构建完整上传路径：base/[basePath/][folderPath/]fileName"""
        return f"{self.folder_url(folder_path)}/{file_name}"

    def make_collection(self, url: str) -> bool:
        """
        创建文件夹（MKCOL）

        Returns:
            是否创建成功或已存在
        """
        try:
            response = self.session.request(
                "MKCOL",
                url,
                auth=self.auth,
                headers={"Content-Type": "application/xml"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"创建文件夹失败: {url}, 错误: {str(e)}")
            return False

        if response.status_code in MKCOL_SUCCESS_CODES:
            return True
        logger.error(f"创建文件夹失败: {url}, 状态码: {response.status_code}")
        return False

    def put(self, url: str, data: bytes) -> requests.Response:
        """
        上传文件（PUT）

        Raises:
            UploadError: 状态码不是 2xx
        """
        response = self.session.request(
            "PUT",
            url,
            data=data,
            auth=self.auth,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Length": str(len(data)),
            },
            timeout=self.timeout,
        )

        if not 200 <= response.status_code < 300:
            message = f"上传失败: {response.status_code}"
            error_text = (response.text or "").strip()
            if error_text:
                message += f" - {error_text[:200]}"
            if response.status_code == 404:
                message = f"上传路径不存在 (404): {url}. 请检查WebDAV服务器地址和路径配置是否正确。"
            logger.error(f"上传失败: {response.status_code}, 路径: {url}")
            raise UploadError(message, status_code=response.status_code, stage="upload")

        return response

    def test_connection(self) -> Tuple[bool, str]:
        """
        测试连接（PROPFIND Depth: 0）

        Returns:
            (是否成功, 提示信息)
        """
        logger.info(f"测试 WebDAV 连接: {self.config.url}")
        try:
            response = self.session.request(
                "PROPFIND",
                self.config.url,
                auth=self.auth,
                headers={"Depth": "0", "Content-Type": "application/xml"},
                data=PROPFIND_BODY,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"WebDAV 连接测试错误: {str(e)}")
            return False, f"WebDAV连接测试失败: {str(e)}"

        if 200 <= response.status_code < 300:
            return True, "WebDAV连接测试成功"
        return False, f"WebDAV连接失败: {response.status_code}"
