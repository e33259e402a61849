"""
解析结果规范化模块

把第三方解析 API 返回的任意 JSON 转换为统一的 ParsedVideoInfo。
判断逻辑以有序规则表的形式组织：每条规则由 (判断函数, 提取函数) 组成，
按顺序求值，第一条命中的规则生效。
"""
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from .exceptions import NormalizationError
from .json_access import (
    first_number,
    first_str,
    get_at,
    get_dict,
    get_http_url,
    get_list,
    get_number,
    get_str,
    iter_children,
)
from .logger import get_logger
from .models import ImageInfo, MediaType, ParsedVideoInfo

logger = get_logger(__name__)

# 字段名候选表（区分大小写，按优先级排列）
IMAGE_ARRAY_FIELDS = ("images", "pics", "pictures", "photos", "image_list", "pic_list")
IMAGE_ITEM_URL_FIELDS = ("url", "src", "image_url", "pic_url", "photo_url", "link", "href")
VIDEO_URL_FIELDS = ("url", "video_url", "videoUrl", "play_url", "playAddr", "download_url", "downloadUrl")
FALLBACK_URL_FIELDS = (
    "url", "download_url", "play_url", "downloadUrl", "playUrl", "video_url", "videoUrl",
    "media_url", "mediaUrl", "mp4", "src", "source", "link", "content", "video", "hd", "sd",
    "playAddr",
)
KNOWN_API_VIDEO_FIELDS = ("url", "video_url", "playAddr")

TITLE_FIELDS = ("title", "name", "video_title")
KNOWN_API_TITLE_FIELDS = ("title", "desc")
DURATION_FIELDS = ("duration", "length", "video_duration")
FILE_SIZE_FIELDS = ("fileSize", "size", "file_size")
FORMAT_FIELDS = ("format", "file_format", "type")
THUMBNAIL_FIELDS = ("thumbnail", "cover", "poster", "image")

AUTHOR_OBJECT_FIELDS = ("author", "creator", "user", "author_info", "user_info")
AUTHOR_NAME_KEYS = ("name", "nickname", "username", "title")
AUTHOR_AVATAR_KEYS = ("avatar", "avatar_url", "icon", "head_url")
AUTHOR_SIGNATURE_KEYS = ("signature", "sign", "desc", "description")
AUTHOR_NAME_FIELDS = ("author", "creator", "user", "username", "nickname", "name", "author_name", "user_name")
AUTHOR_AVATAR_FIELDS = ("avatar", "author_avatar", "avatar_url", "icon", "head_url")
AUTHOR_SIGNATURE_FIELDS = ("signature", "sign", "desc", "description", "author_signature")

DESCRIPTION_FIELDS = ("description", "desc", "content", "text", "caption", "summary", "detail")
TIME_FIELDS = ("time", "timestamp", "create_time", "created_at", "publish_time", "release_time", "date")
MESSAGE_FIELDS = ("message", "error", "msg")

SECONDS_THRESHOLD = 10_000_000_000  # 小于该值的数值时间视为秒
SUCCESS_CODES = (200, 0)
MAX_DETECTION_DEPTH = 16

UNKNOWN_TITLE = "未知标题"
UNKNOWN_ALBUM_TITLE = "未知图集"
NO_MEDIA_MESSAGE = "无法解析媒体内容：既没有视频URL也没有图片"

DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S", "%Y/%m/%d %H:%M", "%Y/%m/%d", "%Y-%m-%d %H:%M")
ISO_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class Detection:
    """媒体类型检测结果"""
    media_type: MediaType
    video_url: Optional[str] = None
    images: Tuple[ImageInfo, ...] = ()


@dataclass(frozen=True)
class MediaRule:
    """媒体检测规则"""
    name: str
    predicate: Callable[[Any], bool]
    extractor: Callable[[Any], Optional[Detection]]


@dataclass(frozen=True)
class EnvelopeRule:
    """返回包装层规则：handler 返回真正的内容，或抛出 NormalizationError"""
    name: str
    predicate: Callable[[Any], bool]
    handler: Callable[[Any], Any]


@dataclass
class AuthorInfo:
    name: Optional[str] = None
    avatar: Optional[str] = None
    signature: Optional[str] = None


def image_filename(index: int) -> str:
    """图集图片文件名：image_001.jpg, image_002.jpg ..."""
    return f"image_{index:03d}.jpg"


def _resolve_image_url(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return first_str(item, IMAGE_ITEM_URL_FIELDS)
    return None


def build_images(items: Sequence[Any]) -> Tuple[ImageInfo, ...]:
    """过滤出以 http 开头的图片，按顺序连续编号"""
    urls = [url for url in (_resolve_image_url(item) for item in items) if url and url.startswith("http")]
    return tuple(ImageInfo(url=url, filename=image_filename(i)) for i, url in enumerate(urls, start=1))


def _image_rule(field_name: str) -> MediaRule:
    def extract(node: Any) -> Optional[Detection]:
        images = build_images(get_list(node, [field_name]) or [])
        if not images:
            return None
        return Detection(MediaType.IMAGE_ALBUM, images=images)

    return MediaRule(
        name=f"images:{field_name}",
        predicate=lambda node: bool(get_list(node, [field_name])),
        extractor=extract,
    )


def _video_rule(field_name: str) -> MediaRule:
    return MediaRule(
        name=f"video:{field_name}",
        predicate=lambda node: get_http_url(node, [field_name]) is not None,
        extractor=lambda node: Detection(MediaType.VIDEO, video_url=get_http_url(node, [field_name])),
    )


MEDIA_RULES: Tuple[MediaRule, ...] = (
    tuple(_image_rule(name) for name in IMAGE_ARRAY_FIELDS)
    + tuple(_video_rule(name) for name in VIDEO_URL_FIELDS)
)
FALLBACK_RULES: Tuple[MediaRule, ...] = tuple(_video_rule(name) for name in FALLBACK_URL_FIELDS)


def apply_rules(node: Any, rules: Sequence[MediaRule]) -> Optional[Detection]:
    """按顺序应用规则，返回第一条命中的结果"""
    for rule in rules:
        if rule.predicate(node):
            detection = rule.extractor(node)
            if detection is not None:
                return detection
    return None


def detect_media(node: Any, rules: Sequence[MediaRule] = MEDIA_RULES, depth: int = 0) -> Optional[Detection]:
    """
    深度优先检测媒体类型

    先检查当前层的图片数组字段，再检查视频链接字段；都没有时
    按属性枚举顺序递归进入子对象，第一个命中的子对象生效。
    """
    detection = apply_rules(node, rules)
    if detection is not None:
        return detection
    if depth >= MAX_DETECTION_DEPTH:
        return None
    for _, child in iter_children(node):
        detection = detect_media(child, rules, depth + 1)
        if detection is not None:
            return detection
    return None


def fallback_scan(node: Any, rules: Sequence[MediaRule] = FALLBACK_RULES) -> Optional[Detection]:
    """备用扫描：顶层及下一层对象中的宽泛链接字段"""
    detection = apply_rules(node, rules)
    if detection is not None:
        return detection
    for _, child in iter_children(node):
        detection = apply_rules(child, rules)
        if detection is not None:
            return detection
    return None


def extract_author(data: Any) -> Optional[AuthorInfo]:
    """
    提取作者信息

    先检查作者对象字段，找到名称即返回；否则在顶层字符串字段中
    分别补齐名称、头像和签名，只填充尚未设置的字段。
    """
    info = AuthorInfo()

    for field_name in AUTHOR_OBJECT_FIELDS:
        author_obj = get_dict(data, [field_name])
        if author_obj is None:
            continue
        info.name = first_str(author_obj, AUTHOR_NAME_KEYS)
        info.avatar = first_str(author_obj, AUTHOR_AVATAR_KEYS)
        info.signature = first_str(author_obj, AUTHOR_SIGNATURE_KEYS)
        if info.name:
            return info

    if info.name is None:
        info.name = first_str(data, AUTHOR_NAME_FIELDS)
    if info.avatar is None:
        info.avatar = first_str(data, AUTHOR_AVATAR_FIELDS)
    if info.signature is None:
        info.signature = first_str(data, AUTHOR_SIGNATURE_FIELDS)

    if info.name is None and info.avatar is None and info.signature is None:
        return None
    return info


def extract_description(data: Any, fallback_title: Optional[str] = None) -> Optional[str]:
    """提取描述文本，找不到时使用调用方提供的标题"""
    for field_name in DESCRIPTION_FIELDS:
        value = get_str(data, [field_name])
        if value and value.strip():
            return value.strip()
    return fallback_title


def _parse_date(text: str) -> Optional[int]:
    """把日期文本解析为毫秒时间戳，失败返回 None"""
    candidate = text.strip()
    if not candidate:
        return None

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        pass
    else:
        # 只有日期的 ISO 字符串按 UTC 零点处理
        if parsed.tzinfo is None and ISO_DATE_ONLY.match(candidate):
            parsed = parsed.replace(tzinfo=timezone.utc)

    if parsed is None:
        try:
            parsed = parsedate_to_datetime(candidate)
        except (TypeError, ValueError, IndexError):
            parsed = None

    if parsed is None:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(candidate, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    try:
        return int(parsed.timestamp() * 1000)
    except (OverflowError, OSError, ValueError):
        return None


def extract_time(data: Any) -> Optional[Union[int, float, str]]:
    """
    提取发布时间

    数值小于 10,000,000,000 视为秒并乘以 1000；字符串能解析为日期时
    返回毫秒时间戳，否则原样返回。
    """
    for field_name in TIME_FIELDS:
        value = get_at(data, [field_name])
        if not value or isinstance(value, bool):
            continue
        number = get_number(data, [field_name])
        if number is not None:
            return number * 1000 if number < SECONDS_THRESHOLD else number
        if isinstance(value, str):
            timestamp = _parse_date(value)
            return timestamp if timestamp is not None else value
    return None


def _api_message(raw: Any) -> Optional[str]:
    return first_str(raw, MESSAGE_FIELDS)


def _is_explicit_failure(raw: Any) -> bool:
    return get_at(raw, ["success"]) is False and (
        get_at(raw, ["status"]) is not None or get_at(raw, ["message"]) is not None
    )


def _raise_explicit_failure(raw: Any) -> Any:
    status = get_number(raw, ["status"])
    message = get_str(raw, ["message"])
    if status == 500:
        detail = message or "服务器内部错误"
    elif status == 404:
        detail = message or "资源未找到"
    else:
        detail = message or "未知错误"
    if status is not None:
        raise NormalizationError(f"解析失败：{detail} (状态码: {status})")
    raise NormalizationError(f"解析失败：{detail}")


def _is_success_envelope(raw: Any) -> bool:
    return get_at(raw, ["success"]) is True or get_number(raw, ["code"]) in SUCCESS_CODES


def _is_error_code(raw: Any) -> bool:
    code = get_number(raw, ["code"])
    return code is not None and code not in SUCCESS_CODES


def _raise_error_code(raw: Any) -> Any:
    code = get_number(raw, ["code"])
    message = _api_message(raw) or "解析失败，无法识别API返回格式"
    raise NormalizationError(f"解析失败：{message} (错误代码: {code})")


def unwrap_content(raw: Any) -> Any:
    """依次取 data、result、原始数据中第一个非空值"""
    for key in ("data", "result"):
        value = get_at(raw, [key])
        if value is not None:
            return value
    return raw


ENVELOPE_RULES: Tuple[EnvelopeRule, ...] = (
    EnvelopeRule("explicit_failure", _is_explicit_failure, _raise_explicit_failure),
    EnvelopeRule("success", _is_success_envelope, unwrap_content),
    EnvelopeRule("error_code", _is_error_code, _raise_error_code),
    EnvelopeRule("bare", lambda raw: True, lambda raw: raw),
)


class ResponseNormalizer:
    """
    解析结果规范化器

    纯函数：不修改输入，相同输入得到结构相同的输出。
    """

    def __init__(
        self,
        envelope_rules: Sequence[EnvelopeRule] = ENVELOPE_RULES,
        media_rules: Sequence[MediaRule] = MEDIA_RULES,
        fallback_rules: Sequence[MediaRule] = FALLBACK_RULES,
    ):
        self.envelope_rules = tuple(envelope_rules)
        self.media_rules = tuple(media_rules)
        self.fallback_rules = tuple(fallback_rules)

    def normalize(self, raw: Any, known_api: bool = False, fallback_title: Optional[str] = None) -> ParsedVideoInfo:
        """
        规范化解析结果

        Args:
            raw: 第三方 API 返回的 JSON
            known_api: 是否为调用方识别出的专用格式 API
            fallback_title: 描述缺失时使用的文本

        Returns:
            ParsedVideoInfo

        Raises:
            NormalizationError: 无法找到视频链接或图片列表，或 API 返回了错误
        """
        if known_api:
            return self._normalize_known_api(raw, fallback_title)
        return self._normalize_generic(raw, fallback_title)

    def _normalize_known_api(self, raw: Any, fallback_title: Optional[str]) -> ParsedVideoInfo:
        code = get_number(raw, ["code"])
        if code not in SUCCESS_CODES:
            message = get_str(raw, ["msg"])
            if code == 404:
                detail = f"视频链接无效或已失效 - {message or '404错误'}"
            elif code == 500:
                detail = f"服务器内部错误 - {message or '500错误'}"
            else:
                detail = message or "未知错误"
            suffix = f" (错误代码: {code})" if code is not None else ""
            logger.error(f"专用解析 API 返回错误: code={code}, msg={message}")
            raise NormalizationError(f"解析失败：{detail}{suffix}")

        data = get_dict(raw, ["data"]) or {}
        url_value = get_at(data, ["url"])

        if isinstance(url_value, list):
            images = build_images(url_value)
            if not images:
                raise NormalizationError("图集解析成功但没有找到任何图片")
            title = first_str(data, KNOWN_API_TITLE_FIELDS) or UNKNOWN_ALBUM_TITLE
            thumbnail = first_str(data, ("cover", "thumbnail")) or images[0].url
            return self._build_album(data, title, images, thumbnail, fallback_title)

        video_url = first_str(data, KNOWN_API_VIDEO_FIELDS)
        if not video_url:
            raise NormalizationError("解析结果中没有视频URL")
        info = self._build_video(data, video_url, KNOWN_API_TITLE_FIELDS, fallback_title)
        info.duration = get_number(data, ["duration"])
        info.file_size = get_number(data, ["size"])
        info.format = "mp4"
        info.thumbnail = first_str(data, ("cover", "thumbnail"))
        return info

    def _normalize_generic(self, raw: Any, fallback_title: Optional[str]) -> ParsedVideoInfo:
        content = None
        for rule in self.envelope_rules:
            if rule.predicate(raw):
                content = rule.handler(raw)
                break

        detection = detect_media(content, self.media_rules)
        if detection is None:
            detection = fallback_scan(content, self.fallback_rules)
            if detection is not None:
                logger.debug(f"备用字段扫描找到视频链接: {detection.video_url[:50]}")

        if detection is None:
            api_message = _api_message(raw)
            if api_message:
                raise NormalizationError(f"{NO_MEDIA_MESSAGE}：{api_message}")
            raise NormalizationError(NO_MEDIA_MESSAGE)

        if detection.media_type == MediaType.IMAGE_ALBUM:
            title = first_str(content, TITLE_FIELDS) or UNKNOWN_ALBUM_TITLE
            thumbnail = detection.images[0].url or first_str(content, ("thumbnail", "cover"))
            return self._build_album(content, title, detection.images, thumbnail, fallback_title)

        info = self._build_video(content, detection.video_url, TITLE_FIELDS, fallback_title)
        info.duration = first_number(content, DURATION_FIELDS)
        info.file_size = first_number(content, FILE_SIZE_FIELDS)
        info.format = first_str(content, FORMAT_FIELDS) or "mp4"
        info.thumbnail = first_str(content, THUMBNAIL_FIELDS)
        return info

    def _build_video(
        self,
        data: Any,
        video_url: str,
        title_fields: Sequence[str],
        fallback_title: Optional[str],
    ) -> ParsedVideoInfo:
        author = extract_author(data) or AuthorInfo()
        return ParsedVideoInfo(
            title=first_str(data, title_fields) or UNKNOWN_TITLE,
            media_type=MediaType.VIDEO,
            author=author.name,
            avatar=author.avatar,
            signature=author.signature,
            time=extract_time(data),
            description=extract_description(data, fallback_title),
            url=video_url,
        )

    def _build_album(
        self,
        data: Any,
        title: str,
        images: Sequence[ImageInfo],
        thumbnail: Optional[str],
        fallback_title: Optional[str],
    ) -> ParsedVideoInfo:
        author = extract_author(data) or AuthorInfo()
        image_list: List[ImageInfo] = [ImageInfo(url=img.url, filename=img.filename) for img in images]
        return ParsedVideoInfo(
            title=title,
            media_type=MediaType.IMAGE_ALBUM,
            author=author.name,
            avatar=author.avatar,
            signature=author.signature,
            time=extract_time(data),
            description=extract_description(data, fallback_title),
            images=image_list,
            image_count=len(image_list),
            thumbnail=thumbnail,
        )


_default_normalizer = ResponseNormalizer()


def normalize(raw: Any, known_api: bool = False, fallback_title: Optional[str] = None) -> ParsedVideoInfo:
    """使用默认规则表规范化解析结果"""
    return _default_normalizer.normalize(raw, known_api=known_api, fallback_title=fallback_title)


def summarize_payload(raw: Any, limit: int = 500) -> str:
    """截断的原始数据预览，用于日志"""
    try:
        text = json.dumps(raw, ensure_ascii=False)
    except (TypeError, ValueError):
        text = repr(raw)
    return text[:limit]

