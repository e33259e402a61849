"""
本地存储 - 解析 API / WebDAV 配置和转存历史记录

两者都以 JSON 文件整体读写，每次写入替换整个文件。
"""
import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import CONFIG_FILE, HISTORY_FILE, HISTORY_MAX_RECORDS
from .exceptions import MediaRelayError, StorageError
from .logger import get_logger
from .models import HistoryRecord, ParserConfig, WebDAVConfig

logger = get_logger(__name__)

EXPORT_VERSION = "1.0.0"


def _read_json(path: Path, default: Any) -> Any:
    """读取 JSON 文件，文件不存在或损坏时返回默认值"""
    if not path.exists():
        return default
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"读取文件失败 {path}: {str(e)}")
        return default


def _write_json(path: Path, data: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError as e:
        logger.error(f"写入文件失败 {path}: {str(e)}")
        raise StorageError(f"写入文件失败: {str(e)}")


class ConfigStore:
    """
    配置存储

    每个配置列表中至多一个默认配置；第一个添加的配置自动成为默认配置。
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else CONFIG_FILE

    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        data = _read_json(self.path, {})
        if not isinstance(data, dict):
            data = {}
        return {
            "parsers": list(data.get("parsers") or []),
            "webdav_servers": list(data.get("webdav_servers") or []),
        }

    def _save(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        _write_json(self.path, data)

    def replace(
        self,
        parsers: Optional[List[ParserConfig]] = None,
        webdav_servers: Optional[List[WebDAVConfig]] = None,
    ) -> None:
        """整体替换配置列表，None 表示保留原列表"""
        data = self._load()
        if parsers is not None:
            data["parsers"] = [config.to_dict() for config in parsers]
        if webdav_servers is not None:
            data["webdav_servers"] = [config.to_dict() for config in webdav_servers]
        self._save(data)

    # 解析 API 配置

    def get_parser_configs(self) -> List[ParserConfig]:
        return [ParserConfig.from_dict(item) for item in self._load()["parsers"]]

    def get_parser(self, config_id: str) -> Optional[ParserConfig]:
        return next((c for c in self.get_parser_configs() if c.id == config_id), None)

    def get_default_parser(self) -> Optional[ParserConfig]:
        return next((c for c in self.get_parser_configs() if c.is_default), None)

    def add_parser(self, config: ParserConfig) -> ParserConfig:
        return self._add("parsers", config)

    def update_parser(self, config: ParserConfig) -> None:
        self._update("parsers", config)

    def delete_parser(self, config_id: str) -> None:
        self._delete("parsers", config_id)

    def set_default_parser(self, config_id: str) -> None:
        self._set_default("parsers", config_id)

    # WebDAV 配置

    def get_webdav_configs(self) -> List[WebDAVConfig]:
        return [WebDAVConfig.from_dict(item) for item in self._load()["webdav_servers"]]

    def get_webdav(self, config_id: str) -> Optional[WebDAVConfig]:
        return next((c for c in self.get_webdav_configs() if c.id == config_id), None)

    def get_default_webdav(self) -> Optional[WebDAVConfig]:
        return next((c for c in self.get_webdav_configs() if c.is_default), None)

    def add_webdav(self, config: WebDAVConfig) -> WebDAVConfig:
        return self._add("webdav_servers", config)

    def update_webdav(self, config: WebDAVConfig) -> None:
        self._update("webdav_servers", config)

    def delete_webdav(self, config_id: str) -> None:
        self._delete("webdav_servers", config_id)

    def set_default_webdav(self, config_id: str) -> None:
        self._set_default("webdav_servers", config_id)

    # 通用实现

    def _add(self, key: str, config):
        data = self._load()
        items = data[key]
        if not config.id:
            config.id = uuid.uuid4().hex
        if not items:
            config.is_default = True
        elif config.is_default:
            for item in items:
                item["is_default"] = False
        items.append(config.to_dict())
        self._save(data)
        logger.info(f"添加配置: {config.name or config.id}")
        return config

    def _update(self, key: str, config) -> None:
        data = self._load()
        items = data[key]
        for index, item in enumerate(items):
            if item.get("id") == config.id:
                if config.is_default:
                    for other in items:
                        other["is_default"] = False
                items[index] = config.to_dict()
                self._save(data)
                return
        raise StorageError(f"配置不存在: {config.id}")

    def _delete(self, key: str, config_id: str) -> None:
        data = self._load()
        items = data[key]
        remaining = [item for item in items if item.get("id") != config_id]
        if len(remaining) == len(items):
            logger.warning(f"要删除的配置不存在: {config_id}")
            return
        # 删除默认配置后由第一个配置接替
        if remaining and not any(item.get("is_default") for item in remaining):
            remaining[0]["is_default"] = True
        data[key] = remaining
        self._save(data)

    def _set_default(self, key: str, config_id: str) -> None:
        data = self._load()
        items = data[key]
        if not any(item.get("id") == config_id for item in items):
            raise StorageError(f"配置不存在: {config_id}")
        for item in items:
            item["is_default"] = item.get("id") == config_id
        self._save(data)


class HistoryStore:
    """
    历史记录存储

    最新的记录在前，超过上限的旧记录被丢弃。
    """

    def __init__(self, path: Optional[Path] = None, max_records: int = HISTORY_MAX_RECORDS):
        self.path = Path(path) if path else HISTORY_FILE
        self.max_records = max_records

    def _load_raw(self) -> List[Dict[str, Any]]:
        data = _read_json(self.path, [])
        return data if isinstance(data, list) else []

    def get_history(self) -> List[HistoryRecord]:
        return [HistoryRecord.from_dict(item) for item in self._load_raw()]

    def save_history(self, records: List[HistoryRecord]) -> None:
        _write_json(self.path, [record.to_dict() for record in records[:self.max_records]])

    def append_record(self, record: HistoryRecord) -> None:
        """添加历史记录（最新在前）"""
        records = self._load_raw()
        records.insert(0, record.to_dict())
        if len(records) > self.max_records:
            del records[self.max_records:]
        _write_json(self.path, records)
        logger.debug(f"历史记录已保存: {record.id}")

    def delete_record(self, record_id: str) -> None:
        records = [item for item in self._load_raw() if item.get("id") != record_id]
        _write_json(self.path, records)

    def clear(self) -> None:
        """清空历史记录"""
        if self.path.exists():
            try:
                self.path.unlink()
            except OSError as e:
                raise StorageError(f"清空历史记录失败: {str(e)}")
        logger.info("历史记录已清空")

    def search(self, keyword: str) -> List[HistoryRecord]:
        """按标题、链接或批量任务名搜索（不区分大小写）"""
        lowered = (keyword or "").lower()
        results = []
        for record in self.get_history():
            task = record.task
            candidates = (task.get("video_title"), task.get("video_url"), task.get("name"))
            if any(isinstance(value, str) and lowered in value.lower() for value in candidates):
                results.append(record)
        return results


def export_data(config_store: ConfigStore, history_store: HistoryStore) -> str:
    """导出配置和历史记录为 JSON 文本"""
    data = {
        "parsers": [config.to_dict() for config in config_store.get_parser_configs()],
        "webdav_servers": [config.to_dict() for config in config_store.get_webdav_configs()],
        "history": [record.to_dict() for record in history_store.get_history()],
        "export_time": datetime.now().isoformat(),
        "version": EXPORT_VERSION,
    }
    return json.dumps(data, ensure_ascii=False, indent=2)


def import_data(json_text: str, config_store: ConfigStore, history_store: HistoryStore) -> Tuple[bool, str]:
    """
    导入 export_data 生成的 JSON 文本

    Returns:
        (是否成功, 提示信息)
    """
    try:
        data = json.loads(json_text)
    except ValueError as e:
        logger.error(f"导入数据失败: {str(e)}")
        return False, f"数据导入失败：{str(e)}"

    if not isinstance(data, dict) or not data.get("version") or not data.get("export_time"):
        return False, "无效的数据格式"

    try:
        parsers = data.get("parsers")
        servers = data.get("webdav_servers")
        config_store.replace(
            parsers=[ParserConfig.from_dict(item) for item in parsers] if isinstance(parsers, list) else None,
            webdav_servers=[WebDAVConfig.from_dict(item) for item in servers] if isinstance(servers, list) else None,
        )

        if isinstance(data.get("history"), list):
            history_store.save_history([HistoryRecord.from_dict(item) for item in data["history"]])
    except (MediaRelayError, ValueError, TypeError, KeyError) as e:
        logger.error(f"导入数据失败: {str(e)}")
        return False, f"数据导入失败：{str(e)}"

    return True, "数据导入成功"
