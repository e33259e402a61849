"""
解析 API 网关

向用户配置的第三方解析 API 发起请求（GET 或 POST），
并把返回内容交给规范化器。
"""
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests

from .config import DESKTOP_USER_AGENT, KNOWN_API_MARKERS, PARSE_TIMEOUT
from .exceptions import GatewayError, InputError, NormalizationError
from .links import extract_real_url
from .logger import get_logger
from .models import MediaType, ParsedVideoInfo, ParserConfig
from .normalizer import ResponseNormalizer, summarize_payload

logger = get_logger(__name__)

READ_CHUNK_SIZE = 8192


@dataclass
class PreparedParseRequest:
    """构建好的解析请求"""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    json_body: Optional[Dict[str, Any]] = None


def _set_query_param(url: str, name: str, value: str, extra: Optional[Dict[str, Any]] = None) -> str:
    """设置查询参数：同名参数被覆盖而不是重复，额外参数追加在后"""
    parsed = urlparse(url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != name]
    params.append((name, value))
    for key, extra_value in (extra or {}).items():
        params.append((key, str(extra_value)))
    return urlunparse(parsed._replace(query=urlencode(params)))


def is_known_api(config: ParserConfig, final_url: Optional[str] = None) -> bool:
    """根据 API 地址或配置名称识别专用返回格式的解析 API"""
    haystacks = [final_url or config.api_url or "", config.name or ""]
    return any(marker in text for marker in KNOWN_API_MARKERS for text in haystacks)


def decode_body(text: str) -> Any:
    """
    解析响应文本

    先按 JSON 解析；失败时截取第一个 { 到最后一个 } 之间的内容再试；
    仍失败则包装为 {"text": 原文}，交由规范化器报告无法识别。
    """
    text = text or ""
    try:
        return json.loads(text)
    except ValueError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except ValueError:
            logger.warning("响应中的 JSON 片段无法解析")
    return {"text": text}


class ParserGateway:
    """
    解析 API 网关

    特性：
    - 支持 GET / POST 两种请求方式
    - 自定义请求头、查询参数和请求体参数
    - 15 秒总超时（连接加读取完整响应），超时与网络错误分别报告
    - 容错解析不规范的返回内容
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = PARSE_TIMEOUT,
        normalizer: Optional[ResponseNormalizer] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        初始化解析网关

        Args:
            session: requests 会话，默认新建
            timeout: 请求超时时间（秒）
            normalizer: 规范化器实例
            clock: 计时函数（测试中可替换）
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.normalizer = normalizer or ResponseNormalizer()
        self.clock = clock

    def build_request(self, source_url: str, config: ParserConfig) -> PreparedParseRequest:
        """
        构建发往第三方 API 的请求

        Raises:
            InputError: 链接为空或配置缺少 API 地址
        """
        if not source_url or not isinstance(source_url, str) or not source_url.strip():
            raise InputError("视频URL为空")
        if config is None or not config.api_url:
            raise InputError("解析API配置无效")

        headers: Dict[str, str] = {"User-Agent": DESKTOP_USER_AGENT}
        param_name = config.url_param_name or "url"

        if config.request_method == "GET":
            url = _set_query_param(config.api_url, param_name, source_url, config.custom_query_params)
            body = None
        else:
            url = config.api_url
            headers["Content-Type"] = "application/json"
            body = {param_name: source_url}
            body.update(config.custom_body_params or {})

        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
            headers["X-API-Key"] = config.api_key

        # 自定义请求头优先
        headers.update(config.custom_headers or {})

        return PreparedParseRequest(method=config.request_method, url=url, headers=headers, json_body=body)

    def fetch_parse(self, source_url: str, config: ParserConfig) -> Any:
        """
        请求解析 API，返回原始 JSON

        Raises:
            InputError: 参数无效
            GatewayError: 超时、网络错误或非 2xx 状态码
        """
        prepared = self.build_request(source_url, config)
        logger.info(f"发送解析请求: {prepared.method} {prepared.url[:80]} (链接: {source_url[:50]}...)")

        started = self.clock()
        try:
            response = self.session.request(
                prepared.method,
                prepared.url,
                headers=prepared.headers,
                json=prepared.json_body,
                timeout=self.timeout,
                stream=True,
            )
            text = self.read_text(response, started)
        except requests.Timeout as e:
            raise GatewayError(f"请求解析API超时（{self.timeout:g}秒）: {str(e)}", timeout=True)
        except requests.RequestException as e:
            raise GatewayError(f"请求解析API失败: {str(e)}")

        logger.info(f"收到解析API响应: {response.status_code}")

        if not 200 <= response.status_code < 300:
            logger.error(f"解析API请求失败: {response.status_code}, 详情: {text[:500]}")
            raise GatewayError(
                f"解析API返回错误 ({response.status_code}): {response.reason or ''}. 详情: {text[:200]}",
                status_code=response.status_code,
            )

        raw = decode_body(text)
        logger.debug(f"解析API返回: {summarize_payload(raw)}")
        return raw

    def read_text(self, response: requests.Response, started: float) -> str:
        """
        分块读取响应体，整个请求超过 timeout 秒即中止

        requests 的 timeout 只限制连接和单次读取的等待时间。

        Raises:
            GatewayError: 总耗时超过 timeout（timeout=True）
        """
        chunks = []
        for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
            if chunk:
                chunks.append(chunk)
            if self.clock() - started > self.timeout:
                response.close()
                raise GatewayError(f"请求解析API超时（{self.timeout:g}秒）: 响应读取未在时限内完成", timeout=True)
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    def parse(self, source_url: str, config: ParserConfig) -> ParsedVideoInfo:
        """
        解析分享链接为媒体信息

        Args:
            source_url: 分享链接或分享文案
            config: 解析 API 配置

        Returns:
            ParsedVideoInfo

        Raises:
            InputError: 参数无效
            GatewayError: 请求失败
            NormalizationError: 返回内容无法识别
        """
        extracted = extract_real_url(source_url.strip()) if isinstance(source_url, str) else source_url
        raw = self.fetch_parse(extracted, config)

        prepared_url = self.build_request(extracted, config).url
        known = is_known_api(config, prepared_url)

        try:
            info = self.normalizer.normalize(raw, known_api=known)
        except NormalizationError:
            logger.error(f"解析结果无法识别: {summarize_payload(raw)}")
            raise

        validate_media(info)
        if info.media_type == MediaType.VIDEO:
            logger.info(f"解析成功，获取到视频: {info.title} ({info.url[:50]}...)")
        else:
            logger.info(f"解析成功，获取到图集: {info.title}，共 {info.image_count} 张图片")
        return info


def validate_media(info: ParsedVideoInfo) -> None:
    """
    检查规范化结果是否可上传

    Raises:
        NormalizationError: 视频链接缺失或不是完整链接，图集为空或含有不完整的图片链接
    """
    if info.media_type == MediaType.VIDEO:
        if not info.url:
            raise NormalizationError("视频解析成功但未返回有效的视频URL")
        if not _is_absolute_url(info.url):
            raise NormalizationError(f"返回的URL无效: {info.url}")
    elif not info.images:
        raise NormalizationError("图集解析成功但没有找到任何图片")
    else:
        for image in info.images:
            if not _is_absolute_url(image.url):
                raise NormalizationError(f"图集中的图片URL无效: {image.url}")


def _is_absolute_url(url: Optional[str]) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
