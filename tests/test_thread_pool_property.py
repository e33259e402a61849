"""
线程池属性测试

Feature: media-relay, Property 4: 并发上传时任务相互隔离
"""
import pytest
import time
from hypothesis import given, strategies as st, settings

from media_relay.thread_pool import ThreadPool


class TestThreadPoolProperty:
    """线程池属性测试"""

    @settings(deadline=None, max_examples=30)
    @given(
        outcomes=st.lists(st.booleans(), min_size=1, max_size=20),
        num_workers=st.integers(min_value=1, max_value=6),
    )
    def test_thread_pool_isolation_property(self, outcomes, num_workers):
        """
        属性 4：并发处理隔离

        对于任何成功与失败混合的任务，每个任务的结果只取决于自身，
        失败任务不会取消或改变其他任务的结果。
        """
        def task(index: int, ok: bool) -> int:
            time.sleep(0.001)
            if not ok:
                raise RuntimeError(f"task {index} failed")
            return index

        with ThreadPool(max_workers=num_workers) as pool:
            for i, ok in enumerate(outcomes):
                pool.submit(f"task_{i}", task, i, ok)
            results = pool.wait_all(timeout=30)

        assert len(results) == len(outcomes)
        for i, (ok, (task_id, result, error)) in enumerate(zip(outcomes, results)):
            assert task_id == f"task_{i}"
            if ok:
                assert result == i
                assert error is None
            else:
                assert result is None
                assert isinstance(error, RuntimeError)
