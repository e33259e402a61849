"""
解析结果规范化属性测试

Feature: media-relay, Property 2: 任意形状的解析结果被确定地映射为视频或图集
"""
import copy
import pytest
from hypothesis import given, strategies as st, settings, assume

from media_relay.exceptions import NormalizationError
from media_relay.models import MediaType
from media_relay.normalizer import (
    normalize,
    extract_time,
    IMAGE_ARRAY_FIELDS,
    VIDEO_URL_FIELDS,
    SECONDS_THRESHOLD,
)

http_urls = st.builds(
    lambda scheme, path: f"{scheme}://cdn.example.com/{path}",
    st.sampled_from(["http", "https"]),
    st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=12),
)

json_scalars = st.one_of(st.none(), st.booleans(), st.integers(), st.floats(allow_nan=False), st.text(max_size=10))
json_values = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(max_size=8), children, max_size=4),
    ),
    max_leaves=20,
)


class TestNormalizerProperty:
    """规范化器属性测试"""

    @settings(deadline=None)
    @given(
        field_name=st.sampled_from(VIDEO_URL_FIELDS),
        url=http_urls,
        title=st.text(min_size=1, max_size=20),
        sibling=st.one_of(
            st.none(),
            st.tuples(st.sampled_from(["data", "result"]), json_values),
        ),
    )
    def test_top_level_video_field_property(self, field_name, url, title, sibling):
        """
        属性 1：顶层视频字段

        对于任何在已知视频字段中包含 http 链接的负载，结果为视频且链接不变，
        旁边出现无关的 data / result 字段也不影响。
        """
        raw = {field_name: url, "title": title}
        if sibling is not None:
            key, value = sibling
            raw[key] = value
        info = normalize(raw)
        assert info.media_type == MediaType.VIDEO
        assert info.url == url

    @settings(deadline=None)
    @given(
        field_name=st.sampled_from(IMAGE_ARRAY_FIELDS),
        entries=st.lists(st.one_of(http_urls, st.just("not-a-url"), st.builds(lambda u: {"url": u}, http_urls)), min_size=1, max_size=10),
    )
    def test_image_array_property(self, field_name, entries):
        """
        属性 2：图片数组

        每个以 http 开头的条目对应一张图片，按数组顺序编号 image_001.jpg 起。
        """
        expected = [e["url"] if isinstance(e, dict) else e for e in entries]
        expected = [u for u in expected if u.startswith("http")]
        assume(expected)

        info = normalize({field_name: entries})
        assert info.media_type == MediaType.IMAGE_ALBUM
        assert [img.url for img in info.images] == expected
        assert [img.filename for img in info.images] == [f"image_{i:03d}.jpg" for i in range(1, len(expected) + 1)]
        assert info.image_count == len(expected)

    @settings(deadline=None)
    @given(seconds=st.integers(min_value=1, max_value=SECONDS_THRESHOLD - 1))
    def test_seconds_scaled_property(self, seconds):
        """
        属性 3：秒级时间戳乘以 1000
        """
        assert extract_time({"time": seconds}) == seconds * 1000

    @settings(deadline=None)
    @given(millis=st.integers(min_value=SECONDS_THRESHOLD, max_value=10 ** 14))
    def test_millis_unchanged_property(self, millis):
        """
        属性 4：毫秒时间戳保持不变
        """
        assert extract_time({"time": millis}) == millis

    @settings(deadline=None, max_examples=200)
    @given(raw=json_values, known_api=st.booleans())
    def test_normalize_total_and_pure_property(self, raw, known_api):
        """
        属性 5：对任意 JSON 值要么返回结果，要么抛出 NormalizationError

        且不修改输入，两次调用结果一致。
        """
        snapshot = copy.deepcopy(raw)
        try:
            first = normalize(raw, known_api=known_api)
        except NormalizationError:
            with pytest.raises(NormalizationError):
                normalize(raw, known_api=known_api)
        else:
            second = normalize(raw, known_api=known_api)
            assert first.to_dict() == second.to_dict()
            if first.media_type == MediaType.VIDEO:
                assert first.url
            else:
                assert first.images
        assert raw == snapshot
