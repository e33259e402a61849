"""
分享文本处理 - 从短视频分享文案中提取真实链接
"""
import re
from typing import List
from urllib.parse import urlparse

# 匹配分享文案中的 http(s) 链接
URL_REGEX = re.compile(
    r"(https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"(?:[-a-zA-Z0-9()@:%_+.~#?&=/]*))"
)


def _is_absolute_http_url(text: str) -> bool:
    try:
        parsed = urlparse(text)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in text


def extract_real_url(text: str) -> str:
    """
    提取真实 URL

    已经是完整链接时原样返回；否则返回文案中第一个链接（去掉末尾斜杠）；
    找不到链接时返回原文本。
    """
    if not text:
        return text
    stripped = text.strip()
    if _is_absolute_http_url(stripped):
        return stripped

    match = URL_REGEX.search(stripped)
    if match:
        return match.group(1).rstrip("/")
    return text


def is_valid_url(text: str) -> bool:
    """检查文本（或其中提取出的链接）是否为 http/https 链接"""
    if not text or not isinstance(text, str) or not text.strip():
        return False
    return _is_absolute_http_url(extract_real_url(text))


def parse_video_urls(text: str) -> List[str]:
    """解析多行输入，每行提取一个有效链接"""
    urls: List[str] = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        extracted = extract_real_url(line)
        if is_valid_url(extracted):
            urls.append(extracted)
    return urls
