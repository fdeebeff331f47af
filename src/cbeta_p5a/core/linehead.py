"""
行首（line head）计算与检查

行首 = 经号 + "_p" + lb/@n，如 T85n2838_p1291a03（册 85、经号 2838、页 1291、栏 a、行 03）。
"""

import enum
import re
from pathlib import Path

# lb/@n：页码 4 位（首位可为字母）+ 栏 + 行
LB_N_RE = re.compile(r"^[a-z\d]\d{3}[a-z]\d+$")

# 完整行首
LINEHEAD_RE = re.compile(
    r"^(?P<canon>[A-Z]{1,2})(?P<vol>\d{2,3})n(?P<no>[A-Za-z0-9]{3,6})"
    r"_p(?P<page>[a-z\d]\d{3})(?P<col>[a-z])(?P<line>\d{2,3})$"
)

# 仅供参照的版本（如卍续藏的 R 版 lb），不检查行号重复
REFERENCE_ONLY_RE = re.compile(r"^R\d")


class LineIssue(enum.Enum):
    MALFORMED = "malformed"
    DUPLICATE = "duplicate"


def make_linehead(sutra_no: str, n: str) -> str:
    return f"{sutra_no}_p{n}"


def is_valid_lb(n: str) -> bool:
    return bool(n) and LB_N_RE.match(n) is not None


def is_reference_only(ed: str) -> bool:
    return bool(ed) and REFERENCE_ONLY_RE.match(ed) is not None


def linehead_file(xml_root: str | Path, linehead: str) -> Path | None:
    """
    由行首（或行首区间，如 K30n1002_p0257a01-a23）推出对应 XML 文件路径。
    """
    m = re.match(r"^(([A-Z]{1,2}\d+)n\d+[a-zA-Z]?)", linehead)
    if not m:
        return None
    sutra, vol = m.groups()
    canon = re.match(r"^[A-Z]+", vol).group(0)
    return Path(xml_root) / canon / vol / f"{sutra}.xml"


class LineheadTracker:
    """
    单个文件内的行首状态：当前行首 + 已出现的 (版本, 行号) 集合。
    每个文件新建一个实例。
    """

    def __init__(self, sutra_no: str):
        self.sutra_no = sutra_no
        self.lb = ""            # 当前 lb/@n
        self.line_head = ""     # 当前完整行首
        self._seen: set[tuple[str, str]] = set()

    def observe(self, ed: str, n: str) -> list[LineIssue]:
        """
        登记一个 lb，返回发现的问题。
        格式错误与重复各自最多报一次；参照版本只查格式，不改当前行首。
        """
        issues = []
        if not is_valid_lb(n):
            issues.append(LineIssue.MALFORMED)

        if is_reference_only(ed):
            return issues

        self.stamp(n)
        key = (ed, n)
        if key in self._seen:
            issues.append(LineIssue.DUPLICATE)
        else:
            self._seen.add(key)
        return issues

    def stamp(self, n: str) -> str:
        """设定当前行首（格式有误也照原样保留）"""
        self.lb = n
        self.line_head = make_linehead(self.sutra_no, n)
        return self.line_head
