"""
有界线程池 - 图集图片并发上传
"""
from concurrent.futures import ThreadPoolExecutor, Future, as_completed
from typing import Callable, Any, Optional, Dict, List, Tuple
from threading import Lock

from .logger import get_logger
from .exceptions import MediaRelayError

logger = get_logger(__name__)


class ThreadPool:
    """
    线程池包装类

    特性：
    - 基于 ThreadPoolExecutor，工作线程数有上限
    - 单个任务失败不会取消其他任务
    - 结果按提交顺序返回
    - 线程安全的计数
    """

    def __init__(self, max_workers: int = 1):
        """
        初始化线程池

        Args:
            max_workers: 最大工作线程数
        """
        if max_workers < 1:
            raise MediaRelayError(f"工作线程数必须大于 0: {max_workers}")
        self.max_workers = max_workers
        self.executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="media_relay")
        self.futures: Dict[str, Future] = {}
        self.order: List[str] = []
        self.lock = Lock()
        self.completed_count = 0
        self.failed_count = 0
        self.is_shutdown = False

    def submit(self, task_id: str, func: Callable, *args, **kwargs) -> Future:
        """
        提交任务

        Raises:
            MediaRelayError: 线程池已关闭
        """
        if self.is_shutdown:
            raise MediaRelayError("线程池已关闭")

        future = self.executor.submit(func, *args, **kwargs)
        with self.lock:
            self.futures[task_id] = future
            self.order.append(task_id)
        logger.debug(f"任务提交到线程池: {task_id}")
        return future

    def wait_all(self, timeout: Optional[float] = None) -> List[Tuple[str, Any, Optional[BaseException]]]:
        """
        等待所有任务完成

        Returns:
            按提交顺序排列的 (任务 ID, 结果, 异常) 列表；失败任务的结果为 None
        """
        with self.lock:
            futures = dict(self.futures)
            order = list(self.order)

        for future in as_completed(futures.values(), timeout=timeout):
            if future.exception() is None:
                self.completed_count += 1
            else:
                self.failed_count += 1

        results = []
        for task_id in order:
            future = futures[task_id]
            error = future.exception()
            if error is not None:
                logger.error(f"任务执行失败: {task_id}, 错误: {str(error)}")
                results.append((task_id, None, error))
            else:
                results.append((task_id, future.result(), None))
        return results

    def get_stats(self) -> Dict[str, Any]:
        """获取线程池统计信息"""
        with self.lock:
            return {
                "max_workers": self.max_workers,
                "total_tasks": len(self.futures),
                "active_tasks": sum(1 for f in self.futures.values() if f.running()),
                "completed_count": self.completed_count,
                "failed_count": self.failed_count,
                "is_shutdown": self.is_shutdown,
            }

    def shutdown(self, wait: bool = True) -> None:
        """关闭线程池"""
        if self.is_shutdown:
            return
        self.executor.shutdown(wait=wait)
        self.is_shutdown = True
        logger.debug("线程池已关闭")

    def __enter__(self):
        """上下文管理器入口"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """上下文管理器出口"""
        self.shutdown(wait=True)
