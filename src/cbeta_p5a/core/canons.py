"""
藏经代码与编号工具

- canons.json → 藏经代码 → 名称 / 简称 / 底本版本符号（T → 【大】）
- 经号解析：T01n0001 → 藏经 T、册 T01、典籍 T0001
- 跨册典籍合并：T05n0220a ~ T07n0220o → T0220
"""

import json
import re
import logging
from pathlib import Path

log = logging.getLogger(__name__)

# 经号（文件名去掉 .xml）：藏经 + 册号 + n + 编号，如 T01n0001、J15nB005、T05n0220a
SUTRA_NO_RE = re.compile(r"^([A-Z]{1,2})(\d{2,3})n([A-Za-z]?\d+[A-Za-z]?)$")

# 册号：T01、GA001
VOL_RE = re.compile(r"^([A-Z]{1,2})(\d{2,3})$")

# CBETA 自己的修订版本
CBETA_EDITION = "【CBETA】"

# 版本符号：【大】【宋】【CBETA】
EDITION_SYMBOL_RE = re.compile(r"【.*?】")


class CanonRegistry:
    """藏经代码表"""

    def __init__(self, path: str | Path | None = None):
        if path is None:
            from cbeta_p5a import config
            path = config.CANONS_PATH
        with open(path, "r", encoding="utf-8") as f:
            self.canons: dict[str, dict] = json.load(f)

    def get(self, canon: str) -> dict | None:
        return self.canons.get(canon)

    def symbol(self, canon: str) -> str | None:
        """底本版本符号，如 T → 【大】"""
        info = self.canons.get(canon)
        return info["symbol"] if info else None

    def short_name(self, canon: str) -> str:
        """藏经简称，如 T → 大正藏（用于版权信息）"""
        info = self.canons.get(canon)
        return info["short"] if info else canon

    def __contains__(self, canon):
        return canon in self.canons


_registry: CanonRegistry | None = None


def get_canons() -> CanonRegistry:
    """获取全局藏经代码表（单例模式）"""
    global _registry
    if _registry is None:
        _registry = CanonRegistry()
    return _registry


# ================================================================
# 编号解析
# ================================================================

def parse_sutra_no(sutra_no: str) -> tuple[str, str, str] | None:
    """T01n0001 → ('T', 'T01', '0001')；无法解析返回 None"""
    m = SUTRA_NO_RE.match(sutra_no)
    if not m:
        return None
    canon, vol_num, no = m.groups()
    return canon, f"{canon}{vol_num}", no


def canon_of(sutra_no: str) -> str:
    """从经号或行首取藏经代码：T85n2838_p1291a03 → T"""
    m = re.match(r"^([A-Z]{1,2})\d", sutra_no)
    return m.group(1) if m else ""


def canon_from_vol(vol: str) -> str:
    """T01 → T，GA001 → GA"""
    m = VOL_RE.match(vol)
    if not m:
        raise ValueError(f"册号格式错误: {vol}")
    return m.group(1)


def strip_sub_letter(no: str) -> str:
    """
    去掉跨册子编号后缀，如 0220a → 0220。
    仅当末尾是小写字母且前面是数字时才剥离（大写后缀如 1670A 是独立典籍）。
    """
    if no and no[-1].islower() and len(no) > 1 and no[-2].isdigit():
        return no[:-1]
    return no


def work_id(sutra_no: str) -> str:
    """典籍编号：T01n0001 → T0001，T05n0220a → T0220"""
    parsed = parse_sutra_no(sutra_no)
    if parsed is None:
        return sutra_no
    canon, _vol, no = parsed
    return canon + strip_sub_letter(no)


def output_sutra_no(sutra_no: str) -> str:
    """输出目录用的经号：T05n0220a → T05n0220"""
    parsed = parse_sutra_no(sutra_no)
    if parsed is None:
        return sutra_no
    _canon, vol, no = parsed
    return f"{vol}n{strip_sub_letter(no)}"


def edition_short(symbol: str) -> str:
    """【大】 → 大"""
    m = re.match(r"^【(.*)】$", symbol)
    return m.group(1) if m else symbol


def scan_editions(wit: str) -> list[str]:
    """从 wit 属性取出全部版本符号：'【宋】【元】' → ['【宋】', '【元】']"""
    return EDITION_SYMBOL_RE.findall(wit or "")


def edition_filename(edition: str, base: str, suffix: str, orig_suffix: str = "") -> str:
    """
    逐版本输出的文件名：
      CBETA      → CBETA.htm
      底本       → 大.htm（文字版为 大-orig.txt）
      其他版本   → 大→宋.htm
    """
    short = edition_short(edition)
    base_short = edition_short(base)
    if edition == base:
        return f"{short}{orig_suffix}{suffix}"
    if edition == CBETA_EDITION:
        return f"{short}{suffix}"
    return f"{base_short}→{short}{suffix}"
