"""
媒体转存系统：分享链接 → 第三方解析 API → WebDAV
"""

__version__ = "0.1.0"

from .models import (
    MediaType,
    TaskStatus,
    BatchStatus,
    ImageInfo,
    ParsedVideoInfo,
    UploadResult,
    ParserConfig,
    WebDAVConfig,
    ConversionTask,
    BatchTask,
    HistoryRecord,
)
from .exceptions import (
    MediaRelayError,
    InputError,
    GatewayError,
    NormalizationError,
    UploadError,
    StorageError,
)
from .logger import setup_logger, get_logger
from .normalizer import ResponseNormalizer, normalize
from .parser_gateway import ParserGateway
from .retry import RetryPolicy
from .webdav import WebDAVClient
from .upload_gateway import UploadGateway
from .storage import ConfigStore, HistoryStore
from .orchestrator import ConversionOrchestrator

__all__ = [
    "MediaType",
    "TaskStatus",
    "BatchStatus",
    "ImageInfo",
    "ParsedVideoInfo",
    "UploadResult",
    "ParserConfig",
    "WebDAVConfig",
    "ConversionTask",
    "BatchTask",
    "HistoryRecord",
    "MediaRelayError",
    "InputError",
    "GatewayError",
    "NormalizationError",
    "UploadError",
    "StorageError",
    "setup_logger",
    "get_logger",
    "ResponseNormalizer",
    "normalize",
    "ParserGateway",
    "RetryPolicy",
    "WebDAVClient",
    "UploadGateway",
    "ConfigStore",
    "HistoryStore",
    "ConversionOrchestrator",
]
