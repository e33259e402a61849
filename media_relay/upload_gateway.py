"""
上传网关 - 下载源媒体并上传到 WebDAV

视频：下载 → PUT，整体在有界重试循环内执行。
图集：MKCOL 创建文件夹 → 逐张下载并 PUT，至少一张成功即视为成功。
"""
import time
from threading import Lock
from typing import Callable, Optional, Set
from urllib.parse import urlparse

import requests

from .config import ALBUM_MAX_WORKERS, DESKTOP_USER_AGENT, DOWNLOAD_TIMEOUT, MOBILE_USER_AGENT
from .exceptions import UploadError
from .filename_sanitizer import (
    generate_file_name,
    generate_folder_name,
    generate_random_file_name,
    infer_video_format,
)
from .formatting import format_file_size
from .logger import get_logger
from .models import ImageInfo, MediaType, ParsedVideoInfo, UploadResult, WebDAVConfig
from .retry import RetryPolicy
from .thread_pool import ThreadPool
from .webdav import WebDAVClient

logger = get_logger(__name__)


def _origin(url: str) -> Optional[str]:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def download_headers(url: str, attempt: int) -> dict:
    """
    下载源视频的请求头

    第二次及以后的尝试改用移动端 User-Agent，并附带来源站点的 Referer。
    """
    headers = {
        "User-Agent": DESKTOP_USER_AGENT if attempt <= 1 else MOBILE_USER_AGENT,
        "Accept": "video/*,*/*;q=0.9",
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }
    if attempt > 1:
        origin = _origin(url)
        if origin:
            headers["Referer"] = origin
    return headers


def _wrap_request_error(error: requests.RequestException, stage: str) -> UploadError:
    network = isinstance(error, (requests.Timeout, requests.ConnectionError))
    prefix = "下载超时 (timeout)" if isinstance(error, requests.Timeout) else "网络错误"
    if stage == "upload":
        prefix = "上传超时 (timeout)" if isinstance(error, requests.Timeout) else "上传网络错误"
    return UploadError(f"{prefix}: {str(error)}", stage=stage, network=network)


class UploadGateway:
    """
    上传网关

    特性：
    - 视频下载 + 上传的有界重试（默认 5 次，指数退避）
    - 图集文件夹创建与逐张上传，部分失败不影响其他图片
    - 可选的有界线程池并发上传图集图片
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        album_workers: int = ALBUM_MAX_WORKERS,
        download_timeout: float = DOWNLOAD_TIMEOUT,
    ):
        """
        初始化上传网关

        Args:
            session: requests 会话，下载和 WebDAV 请求共用
            retry_policy: 重试策略
            sleep: 等待函数（测试中可替换）
            album_workers: 图集并发上传线程数，1 表示顺序上传
            download_timeout: 源文件下载超时（秒）
        """
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        self.album_workers = max(1, album_workers)
        self.download_timeout = download_timeout

    def client_for(self, webdav: WebDAVConfig) -> WebDAVClient:
        return WebDAVClient(webdav, session=self.session)

    def upload(self, media: ParsedVideoInfo, webdav: WebDAVConfig, folder_path: str = "") -> UploadResult:
        """
        上传媒体到 WebDAV

        Args:
            media: 规范化后的媒体信息
            webdav: WebDAV 配置
            folder_path: 额外的子目录

        Returns:
            UploadResult

        Raises:
            UploadError: 重试用尽或遇到不可重试的错误
        """
        if webdav is None or not webdav.url:
            raise UploadError("WebDAV配置无效")

        if media.media_type == MediaType.IMAGE_ALBUM:
            if not media.images:
                raise UploadError("图集中没有图片")
            return self.upload_album(media, webdav, folder_path)

        if not media.url:
            raise UploadError("缺少视频URL")
        return self.upload_video(media, webdav, folder_path)

    def download(self, url: str, attempt: int = 1) -> bytes:
        """
        下载源文件

        Raises:
            UploadError: 状态码不是 2xx（stage="download"）或网络错误
        """
        try:
            response = self.session.get(url, headers=download_headers(url, attempt), timeout=self.download_timeout)
        except requests.RequestException as e:
            raise _wrap_request_error(e, "download")

        if not 200 <= response.status_code < 300:
            raise UploadError(
                f"下载视频失败: {response.status_code} {response.reason or ''}".rstrip(),
                status_code=response.status_code,
                stage="download",
            )
        return response.content

    def upload_video(self, media: ParsedVideoInfo, webdav: WebDAVConfig, folder_path: str = "") -> UploadResult:
        """视频上传：下载与 PUT 共享同一个重试循环"""
        client = self.client_for(webdav)
        video_format = infer_video_format(media.format, media.url)
        file_name = generate_file_name(media.title, video_format)
        upload_url = client.build_url(folder_path, file_name)
        max_attempts = self.retry_policy.max_attempts

        last_error: Optional[UploadError] = None
        for attempt in range(1, max_attempts + 1):
            logger.info(f"视频下载尝试 {attempt}/{max_attempts}")
            try:
                data = self.download(media.url, attempt)
                logger.info(f"视频文件大小: {format_file_size(len(data))}")
                try:
                    client.put(upload_url, data)
                except requests.RequestException as e:
                    raise _wrap_request_error(e, "upload")
                logger.info(f"上传成功: {upload_url}，尝试次数: {attempt}")
                return UploadResult(success=True, file_path=upload_url, attempts=attempt, uploaded_count=1)
            except UploadError as e:
                last_error = e
                decision = self.retry_policy.decide(e, attempt)
                logger.error(f"视频下载或上传错误 (尝试 {attempt}/{max_attempts}): {e.message}")
                if not decision.retry:
                    break
                logger.info(f"{decision.reason}，等待 {decision.delay:g} 秒后重试...")
                self.sleep(decision.delay)

        logger.error("所有上传尝试均失败")
        message = self.retry_policy.final_message(last_error) if last_error else "视频上传失败，已达到最大重试次数"
        raise UploadError(
            message,
            status_code=last_error.status_code if last_error else None,
            stage=last_error.stage if last_error else None,
        )

    def upload_album(self, media: ParsedVideoInfo, webdav: WebDAVConfig, folder_path: str = "") -> UploadResult:
        """图集上传：创建文件夹后逐张上传"""
        client = self.client_for(webdav)
        folder_name = generate_folder_name(media.title)
        album_url = client.build_url(folder_path, folder_name)

        if not client.make_collection(album_url):
            raise UploadError("创建图集文件夹失败", stage="folder")
        logger.info(f"图集文件夹创建成功: {album_url}")

        used_names: Set[str] = set()
        names_lock = Lock()
        total = len(media.images)

        def upload_one(index: int, image: ImageInfo) -> bool:
            with names_lock:
                file_name = generate_random_file_name("jpg")
                while file_name in used_names:
                    file_name = generate_random_file_name("jpg")
                used_names.add(file_name)
            target = f"{album_url}/{file_name}"
            logger.info(f"上传图片 {index}/{total}: {target}")
            return self._upload_image(client, image.url, target)

        if self.album_workers == 1:
            outcomes = [upload_one(i, image) for i, image in enumerate(media.images, start=1)]
        else:
            with ThreadPool(max_workers=self.album_workers) as pool:
                for i, image in enumerate(media.images, start=1):
                    pool.submit(f"image_{i}", upload_one, i, image)
                outcomes = [bool(result) for _, result, _ in pool.wait_all()]

        success_count = sum(1 for ok in outcomes if ok)
        failed_count = total - success_count
        logger.info(f"图集上传完成，成功上传 {success_count}/{total} 张图片")

        if success_count == 0:
            raise UploadError(f"图集上传失败：{total} 张图片均未上传成功", stage="upload")
        if failed_count:
            logger.warning(f"图集中有 {failed_count} 张图片上传失败")

        return UploadResult(
            success=True,
            file_path=album_url,
            uploaded_count=success_count,
            failed_count=failed_count,
        )

    def _upload_image(self, client: WebDAVClient, image_url: str, target: str) -> bool:
        """下载并上传单张图片，失败只记录日志"""
        try:
            response = self.session.get(
                image_url,
                headers={"User-Agent": DESKTOP_USER_AGENT},
                timeout=self.download_timeout,
            )
            if not 200 <= response.status_code < 300:
                logger.error(f"下载图片失败: {response.status_code}, {image_url}")
                return False
            client.put(target, response.content)
            return True
        except UploadError as e:
            logger.error(f"上传图片失败: {e.message}")
            return False
        except requests.RequestException as e:
            if self.retry_policy.is_network_error(e) or isinstance(e, (requests.Timeout, requests.ConnectionError)):
                logger.error(f"网络连接问题导致图片上传失败: {str(e)}")
            else:
                logger.error(f"图片上传错误: {str(e)}")
            return False
