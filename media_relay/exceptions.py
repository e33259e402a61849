"""
自定义异常类定义
"""
from typing import Optional


class MediaRelayError(Exception):
    """基础异常 - 转存错误"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(MediaRelayError):
    """输入无效异常（链接格式错误、缺少配置），不发起任何网络请求"""
    pass


class GatewayError(MediaRelayError):
    """解析 API 请求失败异常"""

    def __init__(self, message: str, status_code: Optional[int] = None, timeout: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.timeout = timeout


class NormalizationError(MediaRelayError):
    """解析结果无法识别异常"""
    pass


class UploadError(MediaRelayError):
    """下载源文件或上传 WebDAV 失败异常"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        stage: Optional[str] = None,
        network: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.stage = stage  # "download" / "upload" / "folder"
        self.network = network


class StorageError(MediaRelayError):
    """本地配置或历史记录读写异常"""
    pass
