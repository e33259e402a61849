"""
编排器模块 - 协调解析与上传

单个任务按 解析 → 上传 顺序执行；批量任务逐个顺序执行，任务之间固定间隔，
避免触发第三方解析 API 的限流。
"""
import time
from datetime import datetime
from typing import Callable, List, Optional, Union

from .config import BATCH_TASK_DELAY
from .exceptions import InputError, MediaRelayError
from .formatting import estimate_file_size, format_duration, format_file_size
from .links import extract_real_url, is_valid_url, parse_video_urls
from .logger import get_logger
from .models import (
    BatchStatus,
    BatchTask,
    ConversionTask,
    HistoryRecord,
    ParserConfig,
    TaskStatus,
    UploadResult,
    WebDAVConfig,
)
from .parser_gateway import ParserGateway
from .storage import HistoryStore
from .upload_gateway import UploadGateway

logger = get_logger(__name__)

ProgressCallback = Callable[[int, TaskStatus], None]
BatchProgressCallback = Callable[[float, ConversionTask], None]

EMPTY_URL_HINT = "URL为空 - 解析API无法提取视频URL，请尝试其他解析API或检查链接"
INVALID_URL_MESSAGE = "视频链接格式无效，请确保以http://或https://开头"


def friendly_error(error: BaseException) -> str:
    """把异常转换为任务错误信息，空链接类错误改写为更明确的提示"""
    message = getattr(error, "message", None) or str(error) or "转存过程中发生未知错误"
    if "URL为空" in message:
        return EMPTY_URL_HINT
    return message


class ConversionOrchestrator:
    """
    编排器类

    协调管道各阶段的执行：
    - 链接校验
    - 调用解析 API 并规范化结果
    - 上传到 WebDAV

    特性：
    - 任务状态机 PENDING → PARSING → (PARSED) → UPLOADING → SUCCESS / FAILED
    - 预览模式：解析完成后暂停，等待显式确认再上传
    - 任务边界内捕获所有异常，单个任务失败不影响批量中的其他任务
    - 终态时写入历史记录（失败只记录日志）
    """

    def __init__(
        self,
        parser_gateway: Optional[ParserGateway] = None,
        upload_gateway: Optional[UploadGateway] = None,
        history_store: Optional[HistoryStore] = None,
        sleep: Callable[[float], None] = time.sleep,
        batch_delay: float = BATCH_TASK_DELAY,
    ):
        """
        初始化编排器

        Args:
            parser_gateway: 解析网关
            upload_gateway: 上传网关
            history_store: 历史记录存储，None 表示不记录
            sleep: 等待函数（测试中可替换）
            batch_delay: 批量任务之间的间隔（秒）
        """
        self.parser_gateway = parser_gateway or ParserGateway()
        self.upload_gateway = upload_gateway or UploadGateway()
        self.history_store = history_store
        self.sleep = sleep
        self.batch_delay = batch_delay

        logger.info("编排器初始化完成")

    def create_task(self, video_url: str) -> ConversionTask:
        """创建单个任务"""
        return ConversionTask(video_url=(video_url or "").strip())

    def create_batch(
        self,
        urls: Union[str, List[str]],
        parser_config: ParserConfig,
        webdav_config: WebDAVConfig,
        name: Optional[str] = None,
    ) -> BatchTask:
        """
        创建批量任务

        Args:
            urls: 链接列表，或包含多个链接的文本（每行一个或混在分享文案中）
            parser_config: 解析 API 配置
            webdav_config: WebDAV 配置
            name: 批量任务名称

        Raises:
            InputError: 没有任何有效链接
        """
        if isinstance(urls, str):
            video_urls = parse_video_urls(urls)
        else:
            video_urls = [url.strip() for url in urls if url and url.strip()]

        if not video_urls:
            raise InputError("没有有效的视频链接")

        batch = BatchTask(
            tasks=[self.create_task(url) for url in video_urls],
            parser_config=parser_config,
            webdav_config=webdav_config,
            name=name or f"批量任务 {datetime.now():%Y-%m-%d %H:%M:%S}",
        )
        logger.info(f"创建批量任务: {batch.name}，共 {batch.total_tasks} 个链接")
        return batch

    def _parse(self, task: ConversionTask, parser_config: ParserConfig) -> None:
        """解析任务链接，任务须已处于 PARSING 状态"""
        source_url = extract_real_url(task.video_url)
        if not is_valid_url(source_url):
            raise InputError(INVALID_URL_MESSAGE)

        logger.info(f"[{task.id}] 开始解析视频: {source_url}")
        logger.info(f"[{task.id}] 使用解析器: {parser_config.name} ({parser_config.api_url})")

        info = self.parser_gateway.parse(source_url, parser_config)
        task.parsed_info = info
        task.video_title = info.title
        logger.info(f"[{task.id}] 解析完成: {info.title}，媒体类型: {info.media_type.value}")
        if info.is_video and info.duration:
            estimated = info.file_size or estimate_file_size(info.duration)
            logger.info(f"[{task.id}] 视频时长: {format_duration(info.duration)}，预计大小: {format_file_size(estimated)}")

    def _upload(
        self,
        task: ConversionTask,
        webdav_config: WebDAVConfig,
        folder_path: str,
        notify: Callable[[int, TaskStatus], None],
    ) -> None:
        task.transition(TaskStatus.UPLOADING)
        notify(60, TaskStatus.UPLOADING)

        result = self.upload_gateway.upload(task.parsed_info, webdav_config, folder_path)
        task.upload_result = result
        task.transition(TaskStatus.SUCCESS)
        notify(100, TaskStatus.SUCCESS)

        if result.warning_count:
            logger.warning(f"[{task.id}] 转存完成，但有 {result.warning_count} 张图片上传失败")
        logger.info(f"[{task.id}] 转存成功: {result.file_path}")

    def _fail(self, task: ConversionTask, error: BaseException) -> None:
        message = friendly_error(error)
        logger.error(f"[{task.id}] 任务失败: {message}")
        task.progress = 0
        task.fail(message)

    def _record(self, record_type: str, payload: dict) -> None:
        """写入历史记录，失败只记录日志"""
        if self.history_store is None:
            return
        try:
            self.history_store.append_record(HistoryRecord(type=record_type, task=payload))
        except Exception as e:
            logger.error(f"保存历史记录失败: {str(e)}")

    @staticmethod
    def _report(callback: Optional[Callable[..., None]], *args) -> None:
        """调用进度回调，回调自身的异常只记录日志"""
        if not callback:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"进度回调出错: {str(e)}")

    @classmethod
    def _notifier(cls, task: ConversionTask, on_progress: Optional[ProgressCallback]) -> Callable[[int, TaskStatus], None]:
        def notify(progress: int, status: TaskStatus) -> None:
            task.progress = progress
            cls._report(on_progress, progress, status)
        return notify

    def parse_task(self, task: ConversionTask, parser_config: ParserConfig) -> ConversionTask:
        """
        预览模式：只解析不上传

        成功后任务停在 PARSED，等待 confirm_upload；失败时任务为 FAILED。
        """
        if task.status != TaskStatus.PENDING:
            raise InputError(f"任务状态不允许解析: {task.status.value}")

        try:
            task.transition(TaskStatus.PARSING)
            task.progress = 20
            self._parse(task, parser_config)
            task.transition(TaskStatus.PARSED)
            task.progress = 50
        except Exception as e:
            self._fail(task, e)
            self._record("single", task.to_dict())
        return task

    def confirm_upload(
        self,
        task: ConversionTask,
        webdav_config: WebDAVConfig,
        folder_path: str = "",
        on_progress: Optional[ProgressCallback] = None,
    ) -> ConversionTask:
        """
        确认上传已解析的任务

        Raises:
            InputError: 任务尚未解析完成
        """
        if task.status != TaskStatus.PARSED or task.parsed_info is None:
            raise InputError("任务尚未解析完成，无法上传")

        notify = self._notifier(task, on_progress)
        try:
            self._upload(task, webdav_config, folder_path, notify)
        except Exception as e:
            self._fail(task, e)
            task.upload_result = UploadResult(success=False, error=task.error)
            notify(0, TaskStatus.FAILED)
        self._record("single", task.to_dict())
        return task

    def reparse_task(self, task: ConversionTask, parser_config: ParserConfig) -> ConversionTask:
        """
        重新解析：丢弃之前的解析结果并回到 PENDING 后重新预览

        Raises:
            InputError: 任务正在解析或上传
        """
        if task.status in (TaskStatus.PARSING, TaskStatus.UPLOADING):
            raise InputError(f"任务正在执行，无法重新解析: {task.status.value}")

        logger.info(f"[{task.id}] 重新解析")
        task.status = TaskStatus.PENDING
        task.parsed_info = None
        task.upload_result = None
        task.video_title = None
        task.error = None
        task.progress = 0
        task.completed_at = None
        return self.parse_task(task, parser_config)

    def convert_single(
        self,
        task: ConversionTask,
        parser_config: ParserConfig,
        webdav_config: WebDAVConfig,
        on_progress: Optional[ProgressCallback] = None,
        record_history: bool = True,
        folder_path: str = "",
    ) -> ConversionTask:
        """
        转存单个任务

        已处于 PARSED 的任务跳过解析直接上传。

        Args:
            task: 转存任务
            parser_config: 解析 API 配置
            webdav_config: WebDAV 配置
            on_progress: 进度回调 (百分比, 状态)
            record_history: 是否写入历史记录
            folder_path: WebDAV 上的子目录

        Returns:
            处于终态的任务

        Raises:
            InputError: 任务已经执行过
        """
        if task.status not in (TaskStatus.PENDING, TaskStatus.PARSED):
            raise InputError(f"任务状态不允许转存: {task.status.value}")

        notify = self._notifier(task, on_progress)

        try:
            if task.status == TaskStatus.PENDING:
                task.transition(TaskStatus.PARSING)
                notify(20, TaskStatus.PARSING)
                self._parse(task, parser_config)
                notify(50, TaskStatus.PARSING)
        except Exception as e:
            # 解析失败不尝试上传
            self._fail(task, e)
            notify(0, TaskStatus.FAILED)
        else:
            try:
                self._upload(task, webdav_config, folder_path, notify)
            except Exception as e:
                self._fail(task, e)
                task.upload_result = UploadResult(success=False, error=task.error)
                notify(0, TaskStatus.FAILED)

        if record_history:
            self._record("single", task.to_dict())
        return task

    def convert_batch(
        self,
        batch: BatchTask,
        on_progress: Optional[BatchProgressCallback] = None,
    ) -> BatchTask:
        """
        顺序执行批量任务

        进度 = (已处理任务数 + 当前任务进度) / 总任务数。
        全部成功为 SUCCESS，部分成功为 PARTIAL_SUCCESS，全部失败为 FAILED。
        """
        batch.status = BatchStatus.RUNNING
        total = batch.total_tasks
        logger.info(f"开始批量任务: {batch.name}，共 {total} 个任务")

        for index, task in enumerate(batch.tasks):
            if index > 0 and self.batch_delay > 0:
                self.sleep(self.batch_delay)

            def task_progress(progress: int, status: TaskStatus, processed: int = index, current=task) -> None:
                # 失败的任务视为已处理完毕，进度不回退
                done = 100 if status == TaskStatus.FAILED else progress
                self._report(on_progress, (processed + done / 100) / total * 100, current)

            try:
                self.convert_single(
                    task,
                    batch.parser_config,
                    batch.webdav_config,
                    on_progress=task_progress,
                    record_history=False,
                )
            except MediaRelayError as e:
                logger.warning(f"跳过任务 {task.id}: {e.message}")

            self._report(on_progress, (index + 1) / total * 100, task)
            logger.info(f"批量进度: {index + 1}/{total}，成功 {batch.completed_tasks}")

        succeeded = batch.completed_tasks
        if succeeded == total:
            batch.status = BatchStatus.SUCCESS
        elif succeeded > 0:
            batch.status = BatchStatus.PARTIAL_SUCCESS
        else:
            batch.status = BatchStatus.FAILED
        batch.completed_at = datetime.now()

        logger.info(f"批量任务完成: {batch.name}，状态: {batch.status.value}，成功 {succeeded}/{total}")
        self._record("batch", batch.to_dict())
        return batch
