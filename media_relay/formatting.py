"""
展示用的格式化工具
"""
from typing import Optional

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_file_size(size: float) -> str:
    """
    格式化文件大小

    Examples:
        >>> format_file_size(0)
        '0 B'
        >>> format_file_size(1536)
        '1.5 KB'
    """
    if not size or size <= 0:
        return "0 B"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {SIZE_UNITS[index]}"


def format_duration(seconds: float) -> str:
    """格式化时长为 m:ss 或 h:mm:ss"""
    total = int(max(seconds or 0, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def estimate_file_size(duration: Optional[float]) -> float:
    """按 1Mbps 平均码率估算视频大小（字节）"""
    if not duration:
        return 0
    return duration * 1024 * 1024 / 8
