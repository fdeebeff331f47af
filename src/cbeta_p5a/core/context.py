"""
遍历状态与输出片段

输出流是 Fragment / JuanBreak 的列表：
  - Fragment.editions 为 None 表示所有版本都有；否则只属于列出的版本
  - Fragment.excluded 列出看不到该片段的版本（lem 用：被 rdg 认领的版本之外都读 lem）
  - JuanBreak 标记卷的分界，写出时据此一卷一档
卷末附录（缺字说明、原注、修订注、校勘注）由 BackMatterBuilder 按卷收集，
整份文件遍历完才 finalize()。
"""

import enum
from dataclasses import dataclass, field
from types import MappingProxyType

from cbeta_p5a.core.linehead import LineheadTracker


class Mode(enum.Enum):
    RENDER = "render"          # 正文：输出标记，计算行内字数
    PLAIN = "plain"            # 纯文字：经名、目录标题
    APPARATUS = "apparatus"    # 校勘/注释内容：输出但不计字数


@dataclass(frozen=True)
class Fragment:
    text: str
    editions: frozenset | None = None
    excluded: frozenset = frozenset()

    def visible_to(self, edition) -> bool:
        if edition in self.excluded:
            return False
        return self.editions is None or edition in self.editions


@dataclass(frozen=True)
class JuanBreak:
    juan: int


def frag(text, editions=None):
    """单个片段的输出列表（空字符串返回空列表）"""
    if not text:
        return []
    return [Fragment(text, editions)]


def restrict(pieces, editions):
    """把输出限定在 editions 内（与片段原有的版本集合取交集）"""
    editions = frozenset(editions)
    result = []
    for piece in pieces:
        if isinstance(piece, JuanBreak):
            result.append(piece)
        elif piece.editions is None:
            result.append(Fragment(piece.text, editions, piece.excluded))
        else:
            result.append(Fragment(piece.text, piece.editions & editions, piece.excluded))
    return result


def exclude(pieces, editions):
    """从输出中排除 editions（其余版本，包括范围外的版本，照旧可见）"""
    editions = frozenset(editions)
    if not editions:
        return pieces
    return [
        piece if isinstance(piece, JuanBreak)
        else Fragment(piece.text, piece.editions, piece.excluded | editions)
        for piece in pieces
    ]


def select_edition(pieces, edition):
    """取某一版本看到的文字"""
    return "".join(p.text for p in pieces if isinstance(p, Fragment) and p.visible_to(edition))


def plain_text(pieces):
    """不分版本直接拼接（用于纯文字模式）"""
    return "".join(p.text for p in pieces if isinstance(p, Fragment))


def split_juans(pieces):
    """
    按 JuanBreak 切成 [(卷号, 片段列表)]。
    第一个分界之前的内容并入第一卷；全文没有分界时视为第 1 卷。
    """
    juans = []
    buf = []
    juan_no = None
    for piece in pieces:
        if isinstance(piece, JuanBreak):
            if juan_no is not None:
                juans.append((juan_no, buf))
                buf = []
            juan_no = piece.juan
        else:
            buf.append(piece)
    if juan_no is None:
        return [(1, buf)] if buf else []
    juans.append((juan_no, buf))
    return juans


# ============================================================
# 卷末附录
# ============================================================
@dataclass
class JuanBackMatter:
    """一卷的附录"""
    glossary: dict = field(default_factory=dict)     # 缺字码 → 缺字说明（字符串）
    notes_orig: dict = field(default_factory=dict)   # 注号 → 底本原注（片段列表）
    notes_cbeta: dict = field(default_factory=dict)  # 注号 → CBETA 所见注（修订注覆盖原注）
    notes_dila: list = field(default_factory=list)   # CBETA 校勘说明（片段列表）


class BackMatterBuilder:
    """
    按卷收集附录。
    第 0 卷存放第一个卷分界之前收集到的内容：
      - 开第一卷时整份并入（这些注的锚点随正文落在第一卷）
      - 之后每开新卷只复制缺字说明
    """

    def __init__(self):
        self._juans = {0: JuanBackMatter()}
        self._current = 0
        self._final = None

    @property
    def current(self) -> JuanBackMatter:
        self._check_open()
        return self._juans[self._current]

    def _check_open(self):
        if self._final is not None:
            raise RuntimeError("附录已封存，不能再修改")

    def start_juan(self, juan: int):
        self._check_open()
        first = self._current == 0
        self._current = juan
        if juan in self._juans:
            return
        early = self._juans[0]
        if first:
            self._juans[juan] = JuanBackMatter(
                glossary=dict(early.glossary),
                notes_orig=dict(early.notes_orig),
                notes_cbeta=dict(early.notes_cbeta),
                notes_dila=list(early.notes_dila),
            )
        else:
            self._juans[juan] = JuanBackMatter(glossary=dict(early.glossary))

    def add_gaiji(self, code, entry):
        self.current.glossary.setdefault(code, entry)

    def add_orig_note(self, n, pieces):
        back = self.current
        back.notes_orig[n] = pieces
        back.notes_cbeta[n] = pieces

    def add_mod_note(self, n, pieces):
        self.current.notes_cbeta[n] = pieces

    def add_dila_note(self, pieces) -> int:
        """登记一条校勘说明，返回本卷内的序号（从 1 起）"""
        back = self.current
        back.notes_dila.append(pieces)
        return len(back.notes_dila)

    def finalize(self):
        if self._final is None:
            self._final = MappingProxyType(dict(self._juans))
        return self._final


@dataclass
class TocEntry:
    """目录项（来自 cb:mulu）"""
    label: str
    level: int
    juan: int
    anchor: str
    kind: str = ""


# ============================================================
# 遍历状态
# ============================================================
@dataclass
class TraversalContext:
    sutra_no: str
    canon: str
    base: str                                   # 底本版本符号，如 【大】
    editions: frozenset = frozenset()
    mod_notes: set = field(default_factory=set)

    juan: int = 0
    open_divs: list = field(default_factory=list)
    lg_row_open: bool = False
    in_l: bool = False
    lg_type: str = ""
    first_l: bool = False
    next_line_buf: list = field(default_factory=list)
    tt_rows: tuple = field(default_factory=lambda: ([], []))
    char_count: int = 1
    pass_stack: list = field(default_factory=lambda: [True])
    mulu_count: int = 0

    lines: LineheadTracker = None
    back: BackMatterBuilder = field(default_factory=BackMatterBuilder)
    toc: list = field(default_factory=list)
    images: list = field(default_factory=list)   # 需要打包的图片（EPUB）
    warnings: list = field(default_factory=list)

    def __post_init__(self):
        if self.lines is None:
            self.lines = LineheadTracker(self.sutra_no)

    @property
    def lb(self) -> str:
        return self.lines.lb

    @property
    def counting(self) -> bool:
        """当前是否在正文中（计算行内字数、文字包 span）"""
        return self.pass_stack[-1]
