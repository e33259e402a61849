"""
pytest 配置和 fixtures
"""
import json
import pytest
import sys
from pathlib import Path
from unittest.mock import Mock

import requests

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from media_relay.models import ParserConfig, WebDAVConfig, ParsedVideoInfo, ImageInfo, MediaType


def make_response(status_code=200, json_data=None, text=None, content=b"", reason="OK", chunk_size=None):
    """构造模拟的 requests.Response（支持 stream=True 的分块读取）"""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    response.encoding = "utf-8"
    if json_data is not None:
        response.json.return_value = json_data
        response.text = text if text is not None else json.dumps(json_data, ensure_ascii=False)
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = text if text is not None else ""
    response.content = content or response.text.encode("utf-8")

    def iter_content(chunk_size=1, decode_unicode=False):
        size = chunk_size_override or chunk_size or 1
        body = response.content
        return iter([body[i:i + size] for i in range(0, len(body), size)])

    chunk_size_override = chunk_size
    response.iter_content.side_effect = iter_content
    return response


@pytest.fixture
def response_factory():
    """模拟响应工厂"""
    return make_response


@pytest.fixture
def parser_config():
    """示例解析 API 配置（POST）"""
    return ParserConfig(
        api_url="https://parser.example.com/api/parse",
        api_key="secret-key",
        id="parser_1",
        name="示例解析器",
    )


@pytest.fixture
def get_parser_config():
    """示例解析 API 配置（GET）"""
    return ParserConfig(
        api_url="https://parser.example.com/api/parse?url=old&token=abc",
        request_method="GET",
        custom_query_params={"lang": "zh"},
        id="parser_2",
        name="GET 解析器",
    )


@pytest.fixture
def webdav_config():
    """示例 WebDAV 配置"""
    return WebDAVConfig(
        url="https://dav.example.com/remote.php/dav/",
        username="alice",
        password="password",
        base_path="/videos/",
        id="webdav_1",
        name="示例网盘",
    )


@pytest.fixture
def sample_share_text():
    """示例分享文案"""
    return "7.43 复制打开抖音，看看【示例作品】 https://v.douyin.com/iAbCdEf/ 02/18 xSd:/"


@pytest.fixture
def video_info():
    """示例视频解析结果"""
    return ParsedVideoInfo(
        title="示例视频",
        media_type=MediaType.VIDEO,
        url="https://cdn.example.com/media/video.mp4",
        format="mp4",
    )


@pytest.fixture
def album_info():
    """示例图集解析结果"""
    images = [
        ImageInfo(url=f"https://cdn.example.com/img/{i}.jpg", filename=f"image_{i:03d}.jpg")
        for i in range(1, 4)
    ]
    return ParsedVideoInfo(
        title="示例图集",
        media_type=MediaType.IMAGE_ALBUM,
        images=images,
        image_count=len(images),
        thumbnail=images[0].url,
    )
