"""
記憶化的 selector。

create_selector 把多個輸入 selector 組合成一個結果函數，只有在輸入改變時才重新計算。
預設以 identity 比較輸入，這與 reducer 不變更時回傳同一物件的約定相符。
"""
import time
from collections import OrderedDict
from typing import Any, Callable, NamedTuple, Optional, Tuple


class CacheInfo(NamedTuple):
    hits: int
    misses: int
    maxsize: int
    currsize: int


class _MemoizedSelector:
    def __init__(self, selectors: Tuple[Callable[[Any], Any], ...], result_fn: Callable[..., Any],
                 deep: bool, ttl: Optional[float], maxsize: int):
        self._selectors = selectors
        self._result_fn = result_fn
        self._same = _deep_equal if deep else _identical
        self._ttl = ttl
        self._maxsize = maxsize
        # key 只是插入序號，命中判斷靠逐筆比較輸入
        self._entries: "OrderedDict[int, Tuple[float, Tuple[Any, ...], Any]]" = OrderedDict()
        self._counter = 0
        self._hits = 0
        self._misses = 0

    def __call__(self, state: Any) -> Any:
        inputs = tuple(select(state) for select in self._selectors)
        now = time.monotonic()
        if self._ttl is not None:
            self._expire(now)

        for key, (_stamp, cached_inputs, cached) in self._entries.items():
            if self._same(inputs, cached_inputs):
                self._hits += 1
                self._entries.move_to_end(key)
                return cached

        self._misses += 1
        result = self._result_fn(*inputs)
        self._counter += 1
        self._entries[self._counter] = (now, inputs, result)
        while len(self._entries) > self._maxsize:
            self._entries.popitem(last=False)
        return result

    def _expire(self, now: float) -> None:
        stale = [key for key, (stamp, _, _) in self._entries.items() if now - stamp > self._ttl]
        for key in stale:
            del self._entries[key]

    def cache_info(self) -> CacheInfo:
        return CacheInfo(self._hits, self._misses, self._maxsize, len(self._entries))

    def cache_clear(self) -> None:
        self._entries.clear()
        self._hits = self._misses = 0


def create_selector(*selectors: Callable[[Any], Any], result_fn: Optional[Callable[..., Any]] = None,
                    deep: bool = False, ttl: Optional[float] = None, maxsize: int = 128) -> Callable[[Any], Any]:
    """
    建立記憶化的 selector。

    Args:
        *selectors: 輸入 selector，各自從 state 取出一個值
        result_fn: 以所有輸入值計算結果；省略時回傳輸入值的 tuple
        deep: 以值（而非 identity）比較輸入
        ttl: 快取條目的存活秒數，None 表示不過期
        maxsize: 最多保留的快取條目數

    Returns:
        可交給 Store.select 或 Store.observe 的函數，附帶 ``cache_info()`` 與
        ``cache_clear()``。只有一個 selector 且沒有 result_fn 時原樣回傳該 selector。
        輸入 selector 或 result_fn 拋出的異常不會被攔截。
    """
    if not selectors:
        raise ValueError("create_selector() requires at least one input selector")
    if result_fn is None and len(selectors) == 1:
        return selectors[0]
    if maxsize < 1:
        raise ValueError("maxsize must be at least 1")
    return _MemoizedSelector(selectors, result_fn or (lambda *values: values), deep, ttl, maxsize)


def _identical(left: Tuple[Any, ...], right: Tuple[Any, ...]) -> bool:
    return len(left) == len(right) and all(a is b for a, b in zip(left, right))


def _deep_equal(left: Any, right: Any) -> bool:
    """結構化比較 dict / list / tuple，其餘以 == 比較；比較本身失敗時視為不相等。"""
    if left is right:
        return True
    if type(left) is not type(right):
        return False
    if isinstance(left, dict):
        return left.keys() == right.keys() and all(_deep_equal(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)):
        return len(left) == len(right) and all(_deep_equal(a, b) for a, b in zip(left, right))
    try:
        return bool(left == right)
    except Exception:
        return False
