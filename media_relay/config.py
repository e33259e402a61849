"""
系统配置
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 数据目录（配置与历史记录 JSON 文件）
DATA_DIR = Path(os.getenv("MEDIA_RELAY_DATA_DIR", str(PROJECT_ROOT / "data")))
CONFIG_FILE = DATA_DIR / "configs.json"
HISTORY_FILE = DATA_DIR / "history.json"
HISTORY_MAX_RECORDS = 100  # 历史记录最大条数

# 解析 API 配置
PARSE_TIMEOUT = float(os.getenv("MEDIA_RELAY_PARSE_TIMEOUT", "15"))  # 秒
KNOWN_API_MARKERS = ("jxcxin",)  # 专用返回格式的解析 API 标识

# 下载 / 上传配置
DOWNLOAD_TIMEOUT = float(os.getenv("MEDIA_RELAY_DOWNLOAD_TIMEOUT", "30"))  # 秒
UPLOAD_TIMEOUT = 300  # WebDAV PUT 超时（秒）
UPLOAD_MAX_ATTEMPTS = 5  # 最大尝试次数
RETRY_BASE_DELAY = 1.0  # 退避基数（秒）
RETRY_MAX_DELAY = 10.0  # 最大退避时间（秒）
AUTH_RETRY_DELAY = 1.0  # 首次权限错误的固定等待（秒）
ALBUM_MAX_WORKERS = int(os.getenv("MEDIA_RELAY_ALBUM_WORKERS", "1"))  # 1 表示顺序上传

# 批量任务配置
BATCH_TASK_DELAY = 1.0  # 任务间隔（秒），避免触发解析 API 限流

# 请求头
DESKTOP_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1"
)

# 文件名配置
FILENAME_MAX_LENGTH = 100
UPLOAD_FILENAME_MAX_LENGTH = 150

# 日志配置
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
