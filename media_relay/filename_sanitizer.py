"""
文件名规范化工具

处理标题中的特殊符号、emoji 和系统保留名称，生成 WebDAV 可用的文件名。
"""
import random
import re
from datetime import datetime
from typing import Dict, List, Optional, Pattern, Set, Tuple
from urllib.parse import urlparse

from .config import FILENAME_MAX_LENGTH, UPLOAD_FILENAME_MAX_LENGTH
from .logger import get_logger

logger = get_logger(__name__)

# 支持的视频容器格式
VIDEO_FORMATS = (
    "mp4", "avi", "mov", "wmv", "flv", "webm", "mkv", "m4v",
    "3gp", "f4v", "asf", "rm", "rmvb", "vob", "ogv", "m2ts", "mts",
)
IMAGE_FORMATS = (
    "jpg", "jpeg", "png", "gif", "bmp", "webp", "svg", "ico",
    "tiff", "tif", "psd", "raw", "cr2", "nef", "orf", "sr2",
)
AUDIO_FORMATS = ("mp3", "wav", "flac", "aac", "ogg", "wma", "m4a", "opus")


class FilenameSanitizer:
    """文件名规范化器"""

    SPECIAL_CHARS: Set[str] = set('#%&@!*()[]{}|\\:;"\'<>?/') | {chr(i) for i in range(0x20)}

    RESERVED_NAMES: Set[str] = {
        "CON", "PRN", "AUX", "NUL",
        *(f"COM{i}" for i in range(1, 10)),
        *(f"LPT{i}" for i in range(1, 10)),
    }

    EMOJI_REGEX: Pattern = re.compile("[\U0001F000-\U0010FFFF]|[\u2600-\u27BF]")

    # 控制字符、零宽字符、行分隔符、BOM 以及辅助平面字符
    EXTENDED_UNSAFE_CHARS: Pattern = re.compile(
        '[<>:"/\\\\|?*\x00-\x1F\x7F\u200B-\u200F\u2028\u2029\uFEFF]|[\U00010000-\U0010FFFF]'
    )

    EXTENSION_REGEX: Pattern = re.compile(r"\.[A-Za-z0-9]+$")

    @classmethod
    def detect_special_chars(cls, filename: str) -> List[str]:
        """
        检测文件名中的特殊符号（包括 emoji）

        Returns:
            去重后的特殊符号列表，按出现顺序
        """
        found: List[str] = []
        for char in filename:
            if char in cls.SPECIAL_CHARS and char not in found:
                found.append(char)
        for emoji in cls.EMOJI_REGEX.findall(filename):
            if emoji not in found:
                found.append(emoji)
        return found

    @classmethod
    def split_name_and_extension(cls, filename: str) -> Tuple[str, str]:
        """分离文件名和扩展名"""
        match = cls.EXTENSION_REGEX.search(filename)
        if match and match.start() > 0:
            return filename[:match.start()], match.group(0)
        return filename, ""

    @classmethod
    def sanitize(
        cls,
        filename: Optional[str],
        replacement: str = "_",
        max_length: int = FILENAME_MAX_LENGTH,
        preserve_extension: bool = True,
        add_timestamp: bool = False,
        allowed_chars_regex: Optional[Pattern] = None,
    ) -> str:
        """
        规范化文件名

        Args:
            filename: 原始文件名
            replacement: 替换字符
            max_length: 最大长度（包含扩展名）
            preserve_extension: 是否保留扩展名
            add_timestamp: 是否追加时间戳
            allowed_chars_regex: 自定义需要替换的字符正则

        Returns:
            规范化后的文件名
        """
        if not filename or not isinstance(filename, str):
            return "unnamed_file"

        sanitized = filename.strip()
        extension = ""
        if preserve_extension:
            sanitized, extension = cls.split_name_and_extension(sanitized)

        if allowed_chars_regex is not None:
            sanitized = allowed_chars_regex.sub(replacement, sanitized)
        else:
            sanitized = cls.EXTENDED_UNSAFE_CHARS.sub(replacement, sanitized)
            sanitized = "".join(replacement if c in cls.SPECIAL_CHARS else c for c in sanitized)

        sanitized = re.sub(r"\s+", replacement or "_", sanitized)

        if replacement:
            escaped = re.escape(replacement)
            sanitized = re.sub(f"(?:{escaped})+", replacement, sanitized)
            sanitized = re.sub(f"^(?:{escaped})|(?:{escaped})$", "", sanitized)

        if sanitized.upper() in cls.RESERVED_NAMES:
            sanitized = sanitized + "_file"

        if not sanitized:
            sanitized = "unnamed"

        max_name_length = max_length - len(extension)
        if len(sanitized) > max_name_length:
            sanitized = sanitized[:max_name_length]

        if add_timestamp:
            timestamp_part = "_" + _timestamp()
            available = max_name_length - len(timestamp_part)
            if available > 0:
                sanitized = sanitized[:available] + timestamp_part

        return sanitized + extension

    @classmethod
    def sanitize_batch(cls, filenames: List[str], **options) -> List[str]:
        """批量规范化，重名时追加序号"""
        seen: Set[str] = set()
        result: List[str] = []

        for filename in filenames:
            sanitized = cls.sanitize(filename, **options)
            unique = sanitized
            counter = 1
            while unique in seen:
                name, ext = cls.split_name_and_extension(sanitized)
                unique = f"{name}_{counter}{ext}"
                counter += 1
            seen.add(unique)
            result.append(unique)

        return result

    @classmethod
    def validate(cls, filename: Optional[str]) -> Dict[str, object]:
        """
        检查文件名是否符合规范

        Returns:
            {"is_valid": bool, "issues": [...], "suggestions": [...]}
        """
        issues: List[str] = []
        suggestions: List[str] = []

        if not filename or not isinstance(filename, str):
            return {
                "is_valid": False,
                "issues": ["文件名为空或无效"],
                "suggestions": ["请提供有效的文件名"],
            }

        if filename.strip() != filename:
            issues.append("文件名包含首尾空格")
            suggestions.append("移除文件名首尾的空格")

        special = cls.detect_special_chars(filename)
        if special:
            issues.append(f"文件名包含特殊字符: {', '.join(special)}")
            suggestions.append("将特殊字符替换为下划线或其他安全字符")

        name, _ = cls.split_name_and_extension(filename)
        if name.upper() in cls.RESERVED_NAMES:
            issues.append(f'文件名"{name}"是系统保留名称')
            suggestions.append("更改文件名或添加后缀")

        if len(filename) > 255:
            issues.append("文件名过长（超过255字符）")
            suggestions.append("缩短文件名长度")

        if issues:
            suggestions.append(f"建议使用规范化后的文件名: {cls.sanitize(filename)}")

        return {"is_valid": not issues, "issues": issues, "suggestions": suggestions}

    @classmethod
    def generate_safe_filename(cls, original_name: str, **options) -> str:
        """生成带时间戳的安全文件名"""
        options.setdefault("add_timestamp", True)
        return cls.sanitize(original_name, **options)

    @staticmethod
    def supported_extensions() -> List[str]:
        return [f".{ext}" for ext in VIDEO_FORMATS + IMAGE_FORMATS + AUDIO_FORMATS]


def _timestamp(now: Optional[datetime] = None) -> str:
    """WebDAV 安全的时间戳：YYYY-MM-DD-HH-MM-SS-mmm"""
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d-%H-%M-%S-") + f"{now.microsecond // 1000:03d}"


def extract_format_from_url(url: str) -> Optional[str]:
    """从 URL 路径后缀提取扩展名"""
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    last_segment = path.rsplit("/", 1)[-1]
    if "." not in last_segment:
        return None
    return last_segment.rsplit(".", 1)[-1].lower() or None


def infer_video_format(provided_format: Optional[str], video_url: Optional[str] = None) -> str:
    """
    推断视频格式：配置格式 → URL 后缀 → mp4，均需在白名单内
    """
    if provided_format and provided_format.lower() in VIDEO_FORMATS:
        return provided_format.lower()

    if video_url:
        url_format = extract_format_from_url(video_url)
        if url_format and url_format in VIDEO_FORMATS:
            return url_format

    return "mp4"


def generate_file_name(title: str, fmt: str) -> str:
    """视频文件名：规范化标题 + 时间戳 + 扩展名"""
    sanitized = FilenameSanitizer.sanitize(
        title,
        replacement="_",
        max_length=FILENAME_MAX_LENGTH,
        preserve_extension=False,
        add_timestamp=True,
    )
    return f"{sanitized}.{fmt}"


def generate_folder_name(title: str) -> str:
    """图集文件夹名：规范化标题"""
    return FilenameSanitizer.sanitize(
        title,
        replacement="_",
        max_length=FILENAME_MAX_LENGTH,
        preserve_extension=False,
        add_timestamp=False,
    )


def generate_random_file_name(extension: str = "jpg", now: Optional[datetime] = None) -> str:
    """随机日期命名：YYYYMMDD_HHMMSS_mmmRRRR.ext"""
    now = now or datetime.now()
    millis = f"{now.microsecond // 1000:03d}"
    random_num = f"{random.randint(0, 9999):04d}"
    return f"{now.strftime('%Y%m%d_%H%M%S')}_{millis}{random_num}.{extension}"


def sanitize_upload_filename(filename: str) -> str:
    """规范化用户上传文件的文件名（保留扩展名，不加时间戳）"""
    special = FilenameSanitizer.detect_special_chars(filename or "")
    if special:
        logger.debug(f"检测到特殊符号: {', '.join(special)}")

    sanitized = FilenameSanitizer.sanitize(
        filename,
        replacement="_",
        max_length=UPLOAD_FILENAME_MAX_LENGTH,
        preserve_extension=True,
    )
    logger.debug(f"文件名规范化: {filename} -> {sanitized}")
    return sanitized
