"""
线程池单元测试
"""
import pytest
import time
from media_relay.thread_pool import ThreadPool
from media_relay.exceptions import MediaRelayError


class TestThreadPoolUnit:
    """线程池单元测试"""

    def test_thread_pool_initialization(self):
        """测试线程池初始化"""
        pool = ThreadPool(max_workers=4)
        assert pool.max_workers == 4
        assert not pool.is_shutdown
        pool.shutdown()

    def test_thread_pool_invalid_workers(self):
        """测试无效的线程数"""
        with pytest.raises(MediaRelayError):
            ThreadPool(max_workers=0)

    def test_thread_pool_results_in_submission_order(self):
        """测试结果按提交顺序返回"""
        with ThreadPool(max_workers=3) as pool:
            for i in range(5):
                pool.submit(f"task_{i}", lambda n: (time.sleep(0.01 * (5 - n)), n)[1], i)
            results = pool.wait_all(timeout=10)

        assert [task_id for task_id, _, _ in results] == [f"task_{i}" for i in range(5)]
        assert [result for _, result, _ in results] == list(range(5))

    def test_thread_pool_failure_does_not_cancel_siblings(self):
        """测试单个任务失败不影响其他任务"""
        def task(n):
            if n == 1:
                raise ValueError("boom")
            return n * 10

        with ThreadPool(max_workers=2) as pool:
            for i in range(3):
                pool.submit(f"task_{i}", task, i)
            results = pool.wait_all(timeout=10)

        assert results[0] == ("task_0", 0, None)
        assert results[1][1] is None
        assert isinstance(results[1][2], ValueError)
        assert results[2] == ("task_2", 20, None)

        stats = pool.get_stats()
        assert stats["completed_count"] == 2
        assert stats["failed_count"] == 1

    def test_thread_pool_submit_after_shutdown(self):
        """测试关闭后提交任务"""
        pool = ThreadPool(max_workers=1)
        pool.shutdown()
        with pytest.raises(MediaRelayError):
            pool.submit("task_1", lambda: None)

    def test_thread_pool_shutdown_idempotent(self):
        """测试重复关闭"""
        pool = ThreadPool(max_workers=1)
        pool.shutdown()
        pool.shutdown()
        assert pool.get_stats()["is_shutdown"] is True
