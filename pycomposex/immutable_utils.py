# pycomposex/immutable_utils.py
import dataclasses
from typing import Any, Iterable, Sequence

from immutables import Map
from pydantic import BaseModel


def to_immutable(obj: Any) -> Any:
    """將任何對象轉換為不可變形式 (包括 Pydantic 模型)"""
    if isinstance(obj, BaseModel):
        # Pydantic 模型轉為 Map
        return Map({k: to_immutable(v) for k, v in obj.model_dump().items()})
    elif isinstance(obj, dict):
        return Map({k: to_immutable(v) for k, v in obj.items()})
    elif isinstance(obj, list):
        return tuple(to_immutable(i) for i in obj)
    elif isinstance(obj, set):
        return frozenset(to_immutable(i) for i in obj)
    return obj


def to_dict(obj: Any) -> Any:
    """將 Map、dataclass 及其巢狀結構轉換為普通 Python 結構，用於日誌與錯誤訊息"""
    if isinstance(obj, (Map, dict)):
        return {k: to_dict(v) for k, v in obj.items()}
    elif isinstance(obj, BaseModel):
        return to_dict(obj.model_dump())
    elif dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_dict(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    elif isinstance(obj, (tuple, list)):
        return [to_dict(i) for i in obj]
    elif isinstance(obj, frozenset):
        return {to_dict(i) for i in obj}
    return obj


def replace_at(items: Sequence[Any], index: int, value: Any) -> Sequence[Any]:
    """回傳 index 位置被替換的新序列，保留原本的容器類型 (tuple / list)"""
    if isinstance(items, tuple):
        return items[:index] + (value,) + items[index + 1:]
    new_items = list(items)
    new_items[index] = value
    return new_items if isinstance(items, list) else type(items)(new_items)


def append_item(items: Sequence[Any], value: Any) -> Sequence[Any]:
    """回傳尾端加入 value 的新序列，保留原本的容器類型"""
    if isinstance(items, tuple):
        return items + (value,)
    new_items = list(items)
    new_items.append(value)
    return new_items if isinstance(items, list) else type(items)(new_items)


def like(items: Sequence[Any], values: Iterable[Any]) -> Sequence[Any]:
    """以 items 的容器類型包裝 values"""
    if isinstance(items, tuple):
        return tuple(values)
    if isinstance(items, list):
        return list(values)
    return type(items)(values)
