"""
XML 检查器

检查 CBETA XML P5a 的结构错误：
  - 文件层：U+200B、XML not well-formed
  - 元素层：E01–E16（错误）、W01–W03（警告）
  - 缺字：缺字码在缺字资料中找不到，最后按缺字码汇总出现的文件

报告文字与 CBETA 既有检查报告一致（繁体）。
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path

from cbeta_p5a.core.canons import canon_of
from cbeta_p5a.core.document import load_anomalies, parse_xml_text
from cbeta_p5a.core.errors import MalformedDocumentError
from cbeta_p5a.core.linehead import LineIssue, LineheadTracker
from cbeta_p5a.core.nodes import TEI_NS, children_named, local_name, parent_name

log = logging.getLogger(__name__)

# 错误类别 → 说明
MESSAGES = {
    "E01": "行號重複",
    "E02": "文字直接出現在 div 下",
    "E03": "星號校勘 app 沒有對應的 note",
    "E04": "rdg 缺少 wit 屬性",
    "E05": "圖檔 不存在",
    "E06": "lb format error",
    "E07": "lem 缺少 wit 屬性",
    "E08": "item 下有多個 list",
    "E09": "table cols 屬性值錯誤",
    "E10": "p 不應直接出現在 list 下",
    "E11": "note 直接出現在 div 下",
    "E12": "note 直接出現在 lg 下",
    "E13": "tt 直接出現在 lg 下",
    "E14": '<anchor type="circle"> 不應直接出現在 div 或 body 下',
    "E15": "<note> corresp 無對應的 <note>",
    "E16": "第一個 lb 之前出現文字",
    "W01": "夾注包夾注",
    "W02": "出現罕用字元",
    "W03": "不應出現 TAB 字元",
    "U200B": "含有 U+200B Zero Width Space 字元",
    "XML": "not well-formed",
    "GAIJI": "無缺字資料",
}

# 允许出现 TAB 的元素
ALLOW_TAB = {"change"}

RARE_CHAR_RE = re.compile(r"[${}]")

SUCCESS_MESSAGE = "檢查完成，未發現錯誤。"


@dataclass(frozen=True)
class Diagnostic:
    code: str
    message: str
    document: str
    lb: str = ""

    @property
    def line_head(self):
        stem = Path(self.document).stem
        return f"{stem}_p{self.lb}" if self.lb else stem

    @property
    def is_warning(self):
        return self.code.startswith("W")

    def __str__(self):
        if self.code in ("U200B", "XML"):
            return f"{self.document} {self.message}"
        return f"[{self.code}] {self.message}, {self.document}, lb: {self.line_head}"


class ValidationEngine:
    """
    参数:
        gaiji: GaijiResolver（None 时不检查缺字）
        figures_dir: 插图目录（None 时不检查 E05）
        anomalies: 已知用例（默认读 anomalies.yaml）
    """

    def __init__(self, gaiji=None, figures_dir=None, anomalies=None):
        self.gaiji = gaiji
        self.figures_dir = Path(figures_dir) if figures_dir else None
        self.anomalies = anomalies if anomalies is not None else load_anomalies()
        self.diagnostics: list[Diagnostic] = []

    # ============================================================
    # 入口
    # ============================================================
    def check_paths(self, paths):
        for path in paths:
            self.check_file(path)
        return self.diagnostics

    def check_file(self, path) -> list[Diagnostic]:
        path = Path(path)
        return self.check_text(path.read_text(encoding="utf-8"), path.name)

    def check_text(self, text, name) -> list[Diagnostic]:
        """检查一份 XML 文字，返回本文件的诊断（同时累积到 self.diagnostics）"""
        found = []
        if "\u200b" in text:
            found.append(Diagnostic("U200B", MESSAGES["U200B"], name))
        try:
            root = parse_xml_text(text, name)
        except MalformedDocumentError:
            found.append(Diagnostic("XML", MESSAGES["XML"], name))
        else:
            found += _FileCheck(self, root, name).run()

        for d in found:
            log.debug(str(d))
        self.diagnostics += found
        return found

    def extend(self, diagnostics):
        """并入其他进程的检查结果"""
        self.diagnostics += diagnostics

    # ============================================================
    # 报告
    # ============================================================
    def by_code(self) -> dict[str, list[Diagnostic]]:
        groups = defaultdict(list)
        for d in self.diagnostics:
            if d.code != "GAIJI":
                groups[d.code].append(d)
        return dict(sorted(groups.items()))

    def by_document(self) -> dict[str, list[Diagnostic]]:
        groups = defaultdict(list)
        for d in self.diagnostics:
            groups[d.document].append(d)
        return dict(groups)

    def missing_gaiji(self) -> dict[str, list[str]]:
        """缺字码 → 出现的文件"""
        found = defaultdict(list)
        for d in self.diagnostics:
            if d.code == "GAIJI" and d.document not in found[d.message]:
                found[d.message].append(d.document)
        return dict(sorted(found.items()))

    def error_lines(self) -> list[str]:
        lines = []
        for items in self.by_code().values():
            lines.extend(str(d) for d in items)
        for code, docs in self.missing_gaiji().items():
            lines.append(f"{code} 無缺字資料，出現於：{','.join(docs)}")
        return lines

    def report(self) -> str:
        lines = self.error_lines()
        if not lines:
            return SUCCESS_MESSAGE
        return f"發現 {len(lines)} 錯誤：\n" + "\n".join(lines)

    def display(self, log_path=None) -> str:
        """输出报告；指定 log_path 且有错误时写入文件"""
        lines = self.error_lines()
        if not lines or not log_path:
            text = self.report()
            print(text)
            return text

        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text("\n".join(lines), encoding="utf-8")
        text = f"發現 {len(lines)} 錯誤，請查看 {log_path}"
        print(text)
        return text


class _FileCheck:
    """单个文件的检查状态"""

    def __init__(self, engine, root, name):
        self.engine = engine
        self.root = root
        self.name = name
        self.sutra_no = Path(name).stem
        self.canon = canon_of(self.sutra_no)
        self.lines = LineheadTracker(self.sutra_no)
        self.found = []
        self.notes = set()
        self.inline_depth = 0
        self.text_before_lb = False

    def run(self):
        for note in self.root.iter(f"{{{TEI_NS}}}note"):
            n = note.get("n")
            if n:
                self.notes.add(n)
        self._walk(self.root)
        return self.found

    def error(self, code, detail="", char=""):
        if char and self.engine.anomalies.is_allowed(self.sutra_no, self.lines.lb, code, char):
            return
        message = MESSAGES[code] + (f", {detail}" if detail else "")
        self.found.append(Diagnostic(code, message, self.name, self.lines.lb))

    # ---- 遍历 ----
    def _walk(self, node):
        if node.text:
            self._text(node, node.text)
        for child in node:
            if isinstance(child.tag, str):
                self._element(child)
            if child.tail:
                self._text(node, child.tail)

    def _text(self, parent, s):
        if not s.strip():
            return
        name = local_name(parent)
        # 每个文件只报一次
        if not self.lines.lb and not self.text_before_lb:
            self.text_before_lb = True
            self.error("E16", f"text: {s.strip()[:20]!r}")
        if name == "div":
            self.error("E02", f"text: {s.strip()!r}")

        m = RARE_CHAR_RE.search(s)
        if m:
            self.error("W02", f"char: {m.group(0)}", char=m.group(0))

        if "\t" in s and name not in ALLOW_TAB:
            self.error("W03", f"<{name}>")

    def _element(self, node):
        handler = getattr(self, f"_e_{local_name(node)}", None)
        if handler is None:
            self._walk(node)
        else:
            handler(node)

    # ---- 各元素 ----
    def _e_anchor(self, node):
        if node.get("type") == "circle" and parent_name(node) in ("body", "div"):
            self.error("E14")

    def _e_app(self, node):
        if node.get("type") == "star":
            n = node.get("corresp", "").lstrip("#")
            if n not in self.notes:
                self.error("E03", f"corresp: {n}")
        self._walk(node)

    def _e_g(self, node):
        gaiji = self.engine.gaiji
        if gaiji is None:
            return
        code = node.get("ref", "").lstrip("#")
        if code and code not in gaiji:
            self.found.append(Diagnostic("GAIJI", code, self.name, self.lines.lb))

    def _e_graphic(self, node):
        figures = self.engine.figures_dir
        if figures is None:
            return
        url = Path(node.get("url", "")).name
        if not (figures / self.canon / url).exists():
            self.error("E05", f"url: {url}")

    def _e_item(self, node):
        if len(children_named(node, "list")) > 1:
            self.error("E08")
        self._walk(node)

    def _e_lb(self, node):
        if node.get("type") == "old":
            return
        ed = node.get("ed", "")
        n = node.get("n", "")
        for issue in self.lines.observe(ed, n):
            if issue is LineIssue.MALFORMED:
                self.error("E06", n)
            else:
                self.error("E01", f"ed: {ed}")

    def _e_lem(self, node):
        if node.get("wit") is None:
            self.error("E07")
        self._walk(node)

    def _e_note(self, node):
        parent = parent_name(node)
        if parent == "div":
            self.error("E11")
        if parent == "lg":
            self.error("E12")
        if node.get("corresp") is not None:
            n = node.get("corresp").lstrip("#")
            if n not in self.notes:
                self.error("E15", n)

        if node.get("place") != "inline":
            self._walk(node)
            return
        if self.inline_depth:
            self.error("W01")
        self.inline_depth += 1
        self._walk(node)
        self.inline_depth -= 1

    def _e_p(self, node):
        if parent_name(node) == "list":
            self.error("E10")
        self._walk(node)

    def _e_rdg(self, node):
        if node.get("type") == "cbetaRemark":
            return
        if node.get("wit") is None:
            self.error("E04")

    def _e_table(self, node):
        max_cols = 0
        for row in children_named(node, "row"):
            cols = 0
            for cell in children_named(row, "cell"):
                try:
                    cols += int(cell.get("cols", "1"))
                except ValueError:
                    cols += 1
            max_cols = max(max_cols, cols)

        try:
            declared = int(node.get("cols", "0"))
        except ValueError:
            declared = 0
        if declared != max_cols:
            self.error("E09", f"table/@cols: {node.get('cols')}, 根據 cell 計算的 cols: {max_cols}")
        self._walk(node)

    def _e_teiHeader(self, node):
        # 元数据不检查
        return

    def _e_tt(self, node):
        if parent_name(node) == "lg":
            self.error("E13")
        self._walk(node)
