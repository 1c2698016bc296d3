"""能力匹配与候选人选择 -- 纯函数

能力名称按大小写/空白规范化后比较；
资格判断要求拥有全部所需能力，不做部分匹配，不看能力等级。
候选人选择为贪心、单次、最小负载：负载最低者胜出，平局取最小 user_id。
"""

from collections.abc import Iterable, Mapping

from .models.user import UserProfile


def normalize_capability(name: str) -> str:
    """规范化能力名称：去首尾空白、折叠内部空白、大小写折叠"""
    return " ".join(name.split()).casefold()


def dedupe_capabilities(names: Iterable[str]) -> list[str]:
    """按规范化名称去重，保留首次出现的展示名称，丢弃空白项"""
    seen: set[str] = set()
    result: list[str] = []
    for raw in names:
        display = " ".join(raw.split())
        key = display.casefold()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(display)
    return result


def is_capable(required: Iterable[str], held: Iterable[str]) -> bool:
    """候选人能力集合是否为所需能力集合的超集"""
    required_set = {normalize_capability(n) for n in required}
    held_set = {normalize_capability(n) for n in held}
    return required_set <= held_set


def filter_capable(
    required: Iterable[str],
    candidates: Iterable[UserProfile],
) -> list[UserProfile]:
    """筛选出拥有全部所需能力的候选人"""
    required_list = list(required)
    return [
        c for c in candidates if is_capable(required_list, c.capability_names)
    ]


def select_least_loaded(
    candidate_ids: Iterable[str],
    loads: Mapping[str, int],
    ceiling: int,
) -> str | None:
    """在未达上限的候选人中选出负载最低者

    Args:
        candidate_ids: 候选人 ID
        loads: user_id -> 活跃任务数（缺省视为 0）
        ceiling: 活跃任务上限，达到或超过即排除

    Returns:
        选中的 user_id；无人可选时返回 None
    """
    eligible = [
        (loads.get(user_id, 0), user_id)
        for user_id in candidate_ids
        if loads.get(user_id, 0) < ceiling
    ]
    if not eligible:
        return None
    return min(eligible)[1]
