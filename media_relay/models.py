"""
核心数据模型定义
"""
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Union
from enum import Enum

from .exceptions import InputError


class MediaType(str, Enum):
    """媒体类型枚举"""
    VIDEO = "video"
    IMAGE_ALBUM = "image_album"


class TaskStatus(str, Enum):
    """任务状态枚举"""
    PENDING = "pending"
    PARSING = "parsing"
    PARSED = "parsed"          # 解析完成，等待确认上传
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


class BatchStatus(str, Enum):
    """批量任务状态枚举"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.SUCCESS, TaskStatus.FAILED})

# 允许的状态迁移；重新解析由编排器显式重置，不在此表中
_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.PARSING, TaskStatus.FAILED},
    TaskStatus.PARSING: {TaskStatus.PARSED, TaskStatus.UPLOADING, TaskStatus.FAILED},
    TaskStatus.PARSED: {TaskStatus.UPLOADING, TaskStatus.FAILED},
    TaskStatus.UPLOADING: {TaskStatus.SUCCESS, TaskStatus.FAILED},
    TaskStatus.SUCCESS: set(),
    TaskStatus.FAILED: set(),
}


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def generate_task_id() -> str:
    """生成任务 ID"""
    return f"task_{int(time.time() * 1000)}_{_random_suffix()}"


def generate_batch_id() -> str:
    """生成批量任务 ID"""
    return f"batch_{int(time.time() * 1000)}_{_random_suffix()}"


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """按顺序取第一个存在的键（兼容 camelCase 与 snake_case）"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass
class ImageInfo:
    """图片信息"""
    url: str
    filename: str
    file_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "filename": self.filename, "file_size": self.file_size}


@dataclass
class ParsedVideoInfo:
    """解析后的媒体信息（视频或图集）"""
    title: str
    media_type: MediaType
    author: Optional[str] = None
    avatar: Optional[str] = None
    signature: Optional[str] = None
    time: Optional[Union[int, float, str]] = None  # 毫秒时间戳或无法解析的日期文本
    description: Optional[str] = None
    view_count: Optional[str] = None
    upload_date: Optional[str] = None

    # 视频字段
    url: Optional[str] = None
    duration: Optional[float] = None
    file_size: Optional[float] = None
    format: str = "mp4"
    thumbnail: Optional[str] = None

    # 图集字段
    images: List[ImageInfo] = field(default_factory=list)
    image_count: int = 0

    @property
    def is_video(self) -> bool:
        return self.media_type == MediaType.VIDEO

    @property
    def is_album(self) -> bool:
        return self.media_type == MediaType.IMAGE_ALBUM

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "title": self.title,
            "media_type": self.media_type.value,
            "author": self.author,
            "avatar": self.avatar,
            "signature": self.signature,
            "time": self.time,
            "description": self.description,
            "view_count": self.view_count,
            "upload_date": self.upload_date,
            "url": self.url,
            "duration": self.duration,
            "file_size": self.file_size,
            "format": self.format,
            "thumbnail": self.thumbnail,
            "images": [image.to_dict() for image in self.images],
            "image_count": self.image_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedVideoInfo":
        """从字典重建"""
        images = [
            ImageInfo(url=item["url"], filename=item.get("filename", ""), file_size=item.get("file_size"))
            for item in data.get("images") or []
        ]
        return cls(
            title=data.get("title", ""),
            media_type=MediaType(_pick(data, "media_type", "mediaType", default=MediaType.VIDEO.value)),
            author=data.get("author"),
            avatar=data.get("avatar"),
            signature=data.get("signature"),
            time=data.get("time"),
            description=data.get("description"),
            view_count=_pick(data, "view_count", "viewCount"),
            upload_date=_pick(data, "upload_date", "uploadDate"),
            url=data.get("url"),
            duration=data.get("duration"),
            file_size=_pick(data, "file_size", "fileSize"),
            format=data.get("format") or "mp4",
            thumbnail=data.get("thumbnail"),
            images=images,
            image_count=_pick(data, "image_count", "imageCount", default=len(images)),
        )


@dataclass
class UploadResult:
    """上传结果"""
    success: bool
    file_path: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1
    uploaded_count: int = 0
    failed_count: int = 0

    @property
    def warning_count(self) -> int:
        """图集部分失败时的失败图片数"""
        return self.failed_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "file_path": self.file_path,
            "error": self.error,
            "attempts": self.attempts,
            "uploaded_count": self.uploaded_count,
            "failed_count": self.failed_count,
        }


@dataclass
class ParserConfig:
    """视频解析 API 配置"""
    api_url: str
    api_key: Optional[str] = None
    request_method: str = "POST"
    url_param_name: str = "url"
    custom_headers: Dict[str, str] = field(default_factory=dict)
    custom_body_params: Dict[str, Any] = field(default_factory=dict)
    custom_query_params: Dict[str, str] = field(default_factory=dict)
    id: str = ""
    name: str = ""
    is_default: bool = False

    def __post_init__(self):
        self.request_method = (self.request_method or "POST").upper()
        if self.request_method not in ("GET", "POST"):
            raise InputError(f"不支持的请求方法: {self.request_method}")
        self.url_param_name = self.url_param_name or "url"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "api_url": self.api_url,
            "api_key": self.api_key,
            "request_method": self.request_method,
            "url_param_name": self.url_param_name,
            "custom_headers": dict(self.custom_headers),
            "custom_body_params": dict(self.custom_body_params),
            "custom_query_params": dict(self.custom_query_params),
            "is_default": self.is_default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParserConfig":
        method = _pick(data, "request_method", "requestMethod")
        if method is None and data.get("useGetMethod"):
            method = "GET"
        return cls(
            api_url=_pick(data, "api_url", "apiUrl", default=""),
            api_key=_pick(data, "api_key", "apiKey"),
            request_method=method or "POST",
            url_param_name=_pick(data, "url_param_name", "urlParamName", default="url"),
            custom_headers=dict(_pick(data, "custom_headers", "customHeaders", default={})),
            custom_body_params=dict(_pick(data, "custom_body_params", "customBodyParams", default={})),
            custom_query_params=dict(_pick(data, "custom_query_params", "customQueryParams", default={})),
            id=data.get("id", ""),
            name=data.get("name", ""),
            is_default=bool(_pick(data, "is_default", "isDefault", default=False)),
        )


@dataclass
class WebDAVConfig:
    """WebDAV 服务器配置"""
    url: str
    username: str
    password: str
    base_path: Optional[str] = None
    id: str = ""
    name: str = ""
    is_default: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "username": self.username,
            "password": self.password,
            "base_path": self.base_path,
            "is_default": self.is_default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebDAVConfig":
        return cls(
            url=data.get("url", ""),
            username=data.get("username", ""),
            password=data.get("password", ""),
            base_path=_pick(data, "base_path", "basePath"),
            id=data.get("id", ""),
            name=data.get("name", ""),
            is_default=bool(_pick(data, "is_default", "isDefault", default=False)),
        )


@dataclass
class ConversionTask:
    """单个转存任务"""
    video_url: str
    id: str = field(default_factory=generate_task_id)
    status: TaskStatus = TaskStatus.PENDING
    video_title: Optional[str] = None
    progress: int = 0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    parsed_info: Optional[ParsedVideoInfo] = None
    upload_result: Optional[UploadResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, new_status: TaskStatus) -> None:
        """
        迁移任务状态

        Raises:
            InputError: 非法的状态迁移
        """
        if new_status not in _TRANSITIONS[self.status]:
            raise InputError(f"非法的任务状态迁移: {self.status.value} -> {new_status.value}")
        self.status = new_status
        if new_status in TERMINAL_STATUSES:
            self.completed_at = datetime.now()

    def fail(self, message: str) -> None:
        """标记任务失败"""
        self.error = message
        if self.status != TaskStatus.FAILED:
            self.transition(TaskStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "video_url": self.video_url,
            "video_title": self.video_title,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "parsed_info": self.parsed_info.to_dict() if self.parsed_info else None,
            "upload_result": self.upload_result.to_dict() if self.upload_result else None,
        }


@dataclass
class BatchTask:
    """批量转存任务"""
    tasks: List[ConversionTask]
    parser_config: ParserConfig
    webdav_config: WebDAVConfig
    name: str = ""
    id: str = field(default_factory=generate_batch_id)
    status: BatchStatus = BatchStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)

    @property
    def completed_tasks(self) -> int:
        """成功任务数，每次读取时重新统计"""
        return sum(1 for task in self.tasks if task.status == TaskStatus.SUCCESS)

    @property
    def failed_tasks(self) -> int:
        return sum(1 for task in self.tasks if task.status == TaskStatus.FAILED)

    @property
    def is_successful(self) -> bool:
        """至少一个任务成功"""
        return self.status in (BatchStatus.SUCCESS, BatchStatus.PARTIAL_SUCCESS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "tasks": [task.to_dict() for task in self.tasks],
            "parser_config": {"id": self.parser_config.id, "name": self.parser_config.name},
            "webdav_config": {"id": self.webdav_config.id, "name": self.webdav_config.name},
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class HistoryRecord:
    """历史记录"""
    type: str  # "single" 或 "batch"
    task: Dict[str, Any]
    id: str = field(default_factory=lambda: f"record_{int(time.time() * 1000)}_{_random_suffix()}")
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "task": self.task,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        created_at = data.get("created_at")
        return cls(
            type=data.get("type", "single"),
            task=data.get("task") or {},
            id=data.get("id", ""),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )
