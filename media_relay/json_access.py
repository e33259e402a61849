"""
无类型 JSON 值的安全访问函数

第三方解析 API 的返回结构不可预知，这里的函数只返回 Optional 值，
类型不符时跳过而不是转换或抛出异常。字段名区分大小写、精确匹配。
"""
from numbers import Number
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

JsonPath = Union[str, Sequence[str]]


def _split(path: JsonPath) -> Sequence[str]:
    if isinstance(path, str):
        return path.split(".") if path else []
    return path


def get_at(value: Any, path: JsonPath) -> Any:
    """按路径取值，路径不存在时返回 None"""
    current = value
    for key in _split(path):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def get_dict(value: Any, path: JsonPath) -> Optional[Dict[str, Any]]:
    found = get_at(value, path)
    return found if isinstance(found, dict) else None


def get_list(value: Any, path: JsonPath) -> Optional[List[Any]]:
    found = get_at(value, path)
    return found if isinstance(found, list) else None


def get_str(value: Any, path: JsonPath, non_empty: bool = True) -> Optional[str]:
    """取字符串；non_empty 为 True 时空串视为缺失"""
    found = get_at(value, path)
    if not isinstance(found, str):
        return None
    if non_empty and not found:
        return None
    return found


def get_number(value: Any, path: JsonPath) -> Optional[Union[int, float]]:
    """取数值（布尔值不算数值）"""
    found = get_at(value, path)
    if isinstance(found, bool) or not isinstance(found, Number):
        return None
    return found


def get_http_url(value: Any, path: JsonPath) -> Optional[str]:
    """取以 http 开头的字符串"""
    found = get_str(value, path)
    if found and found.startswith("http"):
        return found
    return None


def first_str(value: Any, fields: Iterable[str]) -> Optional[str]:
    """按顺序返回第一个非空字符串字段"""
    for name in fields:
        found = get_str(value, [name])
        if found is not None:
            return found
    return None


def first_number(value: Any, fields: Iterable[str]) -> Optional[Union[int, float]]:
    for name in fields:
        found = get_number(value, [name])
        if found is not None:
            return found
    return None


def iter_children(value: Any) -> Iterator[Tuple[str, Any]]:
    """按枚举顺序遍历对象（或数组）中的对象型子节点"""
    if isinstance(value, dict):
        items: Iterable[Tuple[Any, Any]] = value.items()
    elif isinstance(value, list):
        items = enumerate(value)
    else:
        return
    for key, child in items:
        if isinstance(child, (dict, list)) and child:
            yield str(key), child
