"""
文件名规范化属性测试

Feature: media-relay, Property 1: 规范化后的文件名可安全写入 WebDAV
"""
import string
from hypothesis import given, strategies as st, settings

from media_relay.filename_sanitizer import FilenameSanitizer, infer_video_format, VIDEO_FORMATS

UNSAFE = set('<>:"/\\|?*')


class TestFilenameSanitizerProperty:
    """文件名规范化属性测试"""

    @settings(deadline=None)
    @given(filename=st.text(max_size=60))
    def test_sanitize_removes_unsafe_chars_property(self, filename):
        """
        属性 1：规范化结果不含不安全字符

        验证：
        1. 结果不为空
        2. 不包含 <>:"/\\|?* 及控制字符
        3. 不包含连续的替换字符
        """
        result = FilenameSanitizer.sanitize(filename)

        assert result
        assert not (set(result) & UNSAFE)
        assert all(ord(c) >= 0x20 for c in result)
        assert "__" not in result

    @settings(deadline=None)
    @given(
        name=st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=30),
        junk=st.lists(st.sampled_from(list('/:*?|<>"')), min_size=1, max_size=5),
    )
    def test_sanitize_preserves_extension_property(self, name, junk):
        """
        属性 2：扩展名在规范化后保留
        """
        result = FilenameSanitizer.sanitize(name + "".join(junk) + ".mp4")
        assert result.endswith(".mp4")
        assert result.startswith(name)

    @settings(deadline=None)
    @given(
        filename=st.text(min_size=1, max_size=300),
        max_length=st.integers(min_value=10, max_value=120),
    )
    def test_sanitize_respects_max_length_property(self, filename, max_length):
        """
        属性 3：结果长度不超过上限（扩展名短于上限时）
        """
        result = FilenameSanitizer.sanitize(filename, max_length=max_length)
        _, extension = FilenameSanitizer.split_name_and_extension(filename.strip())
        if len(extension) < max_length:
            assert len(result) <= max_length

    @settings(deadline=None)
    @given(provided=st.one_of(st.none(), st.text(max_size=6)), url=st.one_of(st.none(), st.text(max_size=40)))
    def test_infer_video_format_whitelist_property(self, provided, url):
        """
        属性 4：推断的格式总在白名单内
        """
        assert infer_video_format(provided, url) in VIDEO_FORMATS
