"""
解析 API 网关单元测试
"""
import pytest
from unittest.mock import Mock
from urllib.parse import urlparse, parse_qs

import requests

from media_relay.exceptions import GatewayError, InputError, NormalizationError
from media_relay.models import ImageInfo, MediaType, ParserConfig, ParsedVideoInfo
from media_relay.parser_gateway import ParserGateway, decode_body, is_known_api, validate_media

SOURCE_URL = "https://v.douyin.com/iAbCdEf"


class TestParserGatewayUnit:
    """解析网关单元测试"""

    @pytest.fixture
    def session(self):
        """模拟 requests 会话"""
        return Mock(spec=requests.Session)

    @pytest.fixture
    def gateway(self, session):
        """创建解析网关实例"""
        return ParserGateway(session=session, timeout=15)

    def test_build_post_request(self, gateway, parser_config):
        """测试 POST 请求构建"""
        prepared = gateway.build_request(SOURCE_URL, parser_config)
        assert prepared.method == "POST"
        assert prepared.url == parser_config.api_url
        assert prepared.json_body == {"url": SOURCE_URL}
        assert prepared.headers["Content-Type"] == "application/json"
        assert prepared.headers["Authorization"] == "Bearer secret-key"
        assert prepared.headers["X-API-Key"] == "secret-key"
        assert "Mozilla" in prepared.headers["User-Agent"]

    def test_build_post_request_custom_params(self, gateway):
        """测试自定义参数名、请求体参数和请求头"""
        config = ParserConfig(
            api_url="https://parser.example.com/api",
            url_param_name="link",
            custom_body_params={"hd": True},
            custom_headers={"User-Agent": "custom-agent", "X-Token": "t"},
        )
        prepared = gateway.build_request(SOURCE_URL, config)
        assert prepared.json_body == {"link": SOURCE_URL, "hd": True}
        assert prepared.headers["User-Agent"] == "custom-agent"
        assert prepared.headers["X-Token"] == "t"
        assert "Authorization" not in prepared.headers

    def test_build_get_request_sets_query_param(self, gateway, get_parser_config):
        """测试 GET 请求覆盖同名参数而不是重复"""
        prepared = gateway.build_request(SOURCE_URL, get_parser_config)
        assert prepared.method == "GET"
        assert prepared.json_body is None
        assert "Content-Type" not in prepared.headers

        query = parse_qs(urlparse(prepared.url).query)
        assert query["url"] == [SOURCE_URL]
        assert query["token"] == ["abc"]
        assert query["lang"] == ["zh"]

    def test_build_request_empty_url(self, gateway, parser_config):
        """测试空链接"""
        with pytest.raises(InputError):
            gateway.build_request("  ", parser_config)

    def test_build_request_missing_api_url(self, gateway):
        """测试缺少 API 地址"""
        with pytest.raises(InputError):
            gateway.build_request(SOURCE_URL, ParserConfig(api_url=""))

    def test_invalid_request_method(self):
        """测试不支持的请求方法"""
        with pytest.raises(InputError):
            ParserConfig(api_url="https://parser.example.com", request_method="PUT")

    def test_fetch_parse_success(self, gateway, session, parser_config, response_factory):
        """测试请求成功"""
        session.request.return_value = response_factory(json_data={"url": "https://cdn.example.com/v.mp4"})
        raw = gateway.fetch_parse(SOURCE_URL, parser_config)

        assert raw == {"url": "https://cdn.example.com/v.mp4"}
        args, kwargs = session.request.call_args
        assert args == ("POST", parser_config.api_url)
        assert kwargs["json"] == {"url": SOURCE_URL}
        assert kwargs["timeout"] == 15
        assert kwargs["stream"] is True

    def test_fetch_parse_timeout(self, gateway, session, parser_config):
        """测试超时"""
        session.request.side_effect = requests.Timeout("read timed out")
        with pytest.raises(GatewayError) as exc_info:
            gateway.fetch_parse(SOURCE_URL, parser_config)
        assert exc_info.value.timeout is True
        assert "超时" in exc_info.value.message

    def test_fetch_parse_network_error(self, gateway, session, parser_config):
        """测试网络错误与超时区分"""
        session.request.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(GatewayError) as exc_info:
            gateway.fetch_parse(SOURCE_URL, parser_config)
        assert exc_info.value.timeout is False

    def test_fetch_parse_http_error(self, gateway, session, parser_config, response_factory):
        """测试非 2xx 状态码"""
        session.request.return_value = response_factory(status_code=502, text="bad gateway", reason="Bad Gateway")
        with pytest.raises(GatewayError) as exc_info:
            gateway.fetch_parse(SOURCE_URL, parser_config)
        assert exc_info.value.status_code == 502
        assert "502" in exc_info.value.message
        assert "bad gateway" in exc_info.value.message

    def test_fetch_parse_http_error_truncates_body(self, gateway, session, parser_config, response_factory):
        """测试错误内容被截断"""
        session.request.return_value = response_factory(status_code=500, text="e" * 1000)
        with pytest.raises(GatewayError) as exc_info:
            gateway.fetch_parse(SOURCE_URL, parser_config)
        assert "e" * 200 in exc_info.value.message
        assert "e" * 201 not in exc_info.value.message

    def test_fetch_parse_total_deadline(self, session, parser_config, response_factory):
        """测试响应持续缓慢输出时按总耗时超时"""
        response = response_factory(text='{"url": "https://cdn.example.com/v.mp4"}', chunk_size=4)
        session.request.return_value = response
        gateway = ParserGateway(session=session, timeout=15, clock=Mock(side_effect=[0, 5, 10, 16, 20]))

        with pytest.raises(GatewayError) as exc_info:
            gateway.fetch_parse(SOURCE_URL, parser_config)

        assert exc_info.value.timeout is True
        assert "超时" in exc_info.value.message
        response.close.assert_called_once()

    def test_fetch_parse_chunked_within_deadline(self, session, parser_config, response_factory):
        """测试分块读取在时限内完成"""
        body = '{"url": "https://cdn.example.com/视频.mp4"}'
        session.request.return_value = response_factory(text=body, chunk_size=3)
        gateway = ParserGateway(session=session, timeout=15, clock=Mock(return_value=1))

        raw = gateway.fetch_parse(SOURCE_URL, parser_config)

        assert raw == {"url": "https://cdn.example.com/视频.mp4"}

    def test_parse_video(self, gateway, session, parser_config, response_factory):
        """测试完整解析流程"""
        session.request.return_value = response_factory(
            json_data={"code": 200, "data": {"url": "https://cdn.example.com/v.mp4", "title": "T"}}
        )
        info = gateway.parse(SOURCE_URL, parser_config)
        assert info.media_type == MediaType.VIDEO
        assert info.url == "https://cdn.example.com/v.mp4"

    def test_parse_extracts_url_from_share_text(self, gateway, session, parser_config, response_factory, sample_share_text):
        """测试从分享文案中提取链接后再请求"""
        session.request.return_value = response_factory(json_data={"url": "https://cdn.example.com/v.mp4"})
        gateway.parse(sample_share_text, parser_config)
        _, kwargs = session.request.call_args
        assert kwargs["json"] == {"url": SOURCE_URL}

    def test_parse_known_api_album(self, gateway, session, response_factory):
        """测试专用格式 API 的图集"""
        config = ParserConfig(api_url="https://api.jxcxin.cn/apis/douyin/", request_method="GET")
        session.request.return_value = response_factory(
            json_data={"code": 200, "data": {"url": ["http://a/1.jpg", "http://a/2.jpg"], "title": "T"}}
        )
        info = gateway.parse(SOURCE_URL, config)
        assert info.media_type == MediaType.IMAGE_ALBUM
        assert info.image_count == 2

    def test_parse_known_api_relative_url_rejected(self, gateway, session, response_factory):
        """测试返回的视频链接不是完整链接"""
        config = ParserConfig(api_url="https://api.jxcxin.cn/apis/douyin/")
        session.request.return_value = response_factory(json_data={"code": 200, "data": {"url": "/v/1.mp4"}})
        with pytest.raises(NormalizationError) as exc_info:
            gateway.parse(SOURCE_URL, config)
        assert "URL无效" in exc_info.value.message

    def test_parse_unrecognized_payload(self, gateway, session, parser_config, response_factory):
        """测试无法识别的返回内容"""
        session.request.return_value = response_factory(text="<html>error</html>")
        with pytest.raises(NormalizationError):
            gateway.parse(SOURCE_URL, parser_config)


class TestParserGatewayHelpersUnit:
    """解析网关辅助函数单元测试"""

    def test_decode_body_json(self):
        """测试正常 JSON"""
        assert decode_body('{"a": 1}') == {"a": 1}

    def test_decode_body_embedded_json(self):
        """测试从包裹文本中恢复 JSON"""
        assert decode_body('callback({"url": "https://x/v.mp4"});') == {"url": "https://x/v.mp4"}

    def test_decode_body_plain_text(self):
        """测试纯文本被包装"""
        assert decode_body("oops") == {"text": "oops"}

    def test_decode_body_broken_json_fragment(self):
        """测试片段也无法解析时被包装"""
        assert decode_body("{not json}") == {"text": "{not json}"}

    def test_is_known_api(self):
        """测试识别专用格式 API"""
        assert is_known_api(ParserConfig(api_url="https://api.jxcxin.cn/apis/"))
        assert is_known_api(ParserConfig(api_url="https://proxy.example.com", name="jxcxin 镜像"))
        assert not is_known_api(ParserConfig(api_url="https://parser.example.com"))

    def test_validate_media_empty_album(self):
        """测试空图集"""
        info = ParsedVideoInfo(title="T", media_type=MediaType.IMAGE_ALBUM)
        with pytest.raises(NormalizationError):
            validate_media(info)

    def test_validate_media_missing_url(self):
        """测试视频缺少链接"""
        with pytest.raises(NormalizationError):
            validate_media(ParsedVideoInfo(title="T", media_type=MediaType.VIDEO))

    def test_validate_media_relative_image_url(self):
        """测试图集图片链接不完整"""
        info = ParsedVideoInfo(
            title="T",
            media_type=MediaType.IMAGE_ALBUM,
            images=[ImageInfo(url="https://cdn.example.com/1.jpg", filename="image_001.jpg"),
                    ImageInfo(url="/img/2.jpg", filename="image_002.jpg")],
        )
        with pytest.raises(NormalizationError) as exc_info:
            validate_media(info)
        assert "/img/2.jpg" in exc_info.value.message
