"""
输出规则（emission policy）

同一个转换器对应多种输出格式，各格式的差异集中在这里：
  - HtmlPolicy       逐版本 HTML（互动标记、行内字数、卷末注释与缺字说明）
  - SimpleHtmlPolicy 简易 HTML（只有行号锚点与文字）
  - TextPolicy       纯文本（可选 app 格式：每行前加行号）
  - PdfHtmlPolicy    PDF 用 HTML（双行对照排成表格、目录）
  - EpubPolicy       EPUB 章节 XHTML
"""

import html
import re
from pathlib import PurePosixPath

from cbeta_p5a.core.canons import CBETA_EDITION
from cbeta_p5a.core.context import frag, select_edition
from cbeta_p5a.core.nodes import CB_NS, NodeKind, get_attr, parent_name
from cbeta_p5a.etl.gaiji_map import (
    NORMAL_PRIORITY, PUA_PRIORITY, SIDDHAM_PARENS, TEXT_PRIORITY, is_rare,
)

# 缺字说明中的字形图片
GAIJI_FIGURE_URL = "http://dict.cbeta.org/dict_word/gaiji-cb/{}/{}.gif"


class HtmlPolicy:
    """逐版本 HTML（每个版本一个 HTML 档）"""

    name = "html"
    suffix = ".htm"
    per_edition = True
    text_spans = True        # 正文文字包 span.t，带行首与行内字序
    footnotes = True         # 原注、修订注、校勘说明收入卷末
    notes_visible = True     # 无 type 也非夹注的 note 照常输出内容
    double_column = "buffer"  # 双行对照：第二行暂存到下一个 lb

    # ---- 文字 ----
    def escape(self, s):
        return html.escape(s)

    def attr(self, s):
        return html.escape(s or "", quote=True)

    def text(self, ctx, s, counting):
        r = self.escape(s)
        if counting and self.text_spans:
            r = f"<span class='t' l='{ctx.lb}' w='{ctx.char_count}'>{r}</span>"
        return r

    def line_info(self, ctx):
        return f"<span class='lineInfo' line='{ctx.lb}'></span>"

    # ---- 区块 ----
    def block(self, kind, node, ctx):
        """返回 (开始, 结束)；None 表示整个元素不输出"""
        if kind is NodeKind.P:
            p_type = node.get("type") or get_attr(node, "type", CB_NS)
            open_tag = f"<p class='{self.attr(p_type)}'>" if p_type else "<p>"
            return open_tag + self.line_info(ctx), "</p>"
        if kind is NodeKind.BYLINE:
            return "<p class='byline'>" + self.line_info(ctx), "</p>"
        if kind is NodeKind.HEAD:
            level = len(ctx.open_divs)
            return f"<p class='head' data-head-level='{level}'>", "</p>"
        if kind is NodeKind.CELL:
            return f"<div class='bip-table-cell'{self._span_attrs(node)}>", "</div>"
        if kind is NodeKind.ROW:
            return "<div class='bip-table-row'>", "</div>"
        if kind is NodeKind.TABLE:
            return "<div class='bip-table'>", "</div>"
        if kind is NodeKind.LIST:
            return "<ul>", "</ul>"
        if kind is NodeKind.ITEM:
            return "<li>", "</li>\n"
        if kind is NodeKind.JUAN:
            return "<p class='juan'>", "</p>"
        if kind is NodeKind.FIGURE:
            return "<p class='figure'>", "</p>"
        if kind is NodeKind.SG:
            return "(", ")"
        if kind is NodeKind.CAESURA:
            return "<span class='caesura'>　</span>", ""
        if kind is NodeKind.FOREIGN:
            return None
        return "", ""

    def _span_attrs(self, node):
        r = ""
        if node.get("rows"):
            r += f" rowspan='{self.attr(node.get('rows'))}'"
        if node.get("cols"):
            r += f" colspan='{self.attr(node.get('cols'))}'"
        return r

    def open_div(self, div_type):
        return f"<div class='div-{self.attr(div_type)}'>"

    def close_div(self, div_type):
        return "</div>"

    # ---- 行 ----
    def lb(self, ctx, n, line_head):
        return f"<span class='lb' id='{line_head}'>{line_head}</span>"

    def column_break(self):
        """双行对照第二行输出后接的内容"""
        return ""

    def tt_table(self, rows):
        return []

    # ---- 偈颂 ----
    def lg_open(self, style):
        style_attr = f" style='{self.attr(style)}'" if style else ""
        return f"\n<div class='lg'{style_attr}>"

    def lg_close(self):
        return "</div>"

    def lg_abnormal(self):
        return "<p class='lg-abnormal'>", "</p>"

    def lg_row_open(self):
        return "\n<div class='lg-row'>"

    def lg_row_close(self):
        return "</div>"

    def l_cell(self, style):
        style_attr = f" style='{self.attr(style)}'" if style else ""
        return f"<div class='lg-cell'{style_attr}>", "</div>"

    # ---- 注释与锚点 ----
    def note_anchor(self, n, css, label=""):
        label_attr = f" data-label='{self.attr(label)}'" if label else ""
        return f"<a class='noteAnchor {css}' href='#n{self.attr(n)}'{label_attr}></a>"

    def star_anchor(self, corresp):
        return f"<a class='noteAnchor star' href='#n{self.attr(corresp)}'></a>"

    def dila_anchor(self, k):
        return f"<a class='noteAnchor dila' href='#dila_note{k}'></a>"

    def star_mark(self):
        return "<span class='star'>[＊]</span>"

    def cbeta_span(self):
        return "<span class='cbeta'>", "</span>"

    def inline_note(self):
        return "<span class='doube-line-note'>", "</span>"

    def interlinear_note(self):
        return "<span class='interlinear-note'>", "</span>"

    def cf_ref(self, s, exists):
        s = self.escape(s)
        return f"<span class='note_cf'>{s}</span>" if exists else s

    # ---- 其他 ----
    def mulu(self, ctx, node, label, anchor):
        if node.get("type") == "品":
            return f"<span class='mulu pin' data-s='{self.attr(label)}' hidden></span>"
        return ""

    def graphic(self, ctx, url):
        name = PurePosixPath(url).name
        return f"<span imgsrc='{self.attr(name)}' class='graphic'></span>"

    def space(self, n):
        return "　" * n

    def unclear(self):
        return "▆"

    def gaiji(self, ctx, code, entry, resolver):
        """
        呈现缺字：
          - 有 Unicode 且不在 Ext C/D/E → 直接用
          - 否则以 Unicode / 通用字 / 组字式为默认字形，仍附缺字资讯（卷末 gaijiInfo）
        """
        roman = self.attr(entry.get("romanized", ""))
        if code.startswith("SD"):
            return f"<span class='siddam' roman='{roman}' code='{code}'></span>"
        if code.startswith("RJ"):
            return f"<span class='ranja' roman='{roman}' code='{code}'></span>"

        uni = entry.get("uni_char", "")
        if uni and not is_rare(uni):
            return uni

        default = uni or resolver.resolve(code, NORMAL_PRIORITY) or code
        nor = ", ".join(v for v in (entry.get("norm_uni_char"), entry.get("norm_big5_char")) if v)
        zzs = entry.get("composition", "")
        href = GAIJI_FIGURE_URL.format(code[2:4], code)
        ctx.back.add_gaiji(
            code,
            f"<span id='{code}' class='gaijiInfo' figure_url='{href}' "
            f"zzs='{self.attr(zzs)}' nor='{self.attr(nor)}'>{self.escape(default)}</span>\n",
        )
        return f"<a class='gaijiAnchor' href='#{code}'>{self.escape(default)}</a>"

    # ---- 卷末 ----
    def back_matter(self, back, edition, base, canon):
        """某版本的卷末：缺字说明 + 该版本的注释"""
        parts = list(back.glossary.values())
        if edition == CBETA_EDITION:
            for n, pieces in back.notes_cbeta.items():
                parts.append(f"<span class='footnote cb' id='n{self.attr(n)}'>"
                             f"{select_edition(pieces, edition)}</span>\n")
            for k, pieces in enumerate(back.notes_dila, 1):
                parts.append(f"<span class='footnote dila' id='dila_note{k}'>"
                             f"{select_edition(pieces, edition)}</span>\n")
        elif edition == base:
            for n, pieces in back.notes_orig.items():
                parts.append(f"<span class='footnote {canon}' id='n{self.attr(n)}'>"
                             f"{select_edition(pieces, edition)}</span>\n")
        return "".join(parts)


class TextPolicy(HtmlPolicy):
    """
    纯文本。
    fmt='app' 时每行以「行号║」开头，区块结尾用 TAB 而非换行（写出时再做 appify）。
    gaiji='PUA' 时缺字一律使用 Unicode PUA。
    """

    name = "text"
    suffix = ".txt"
    text_spans = False
    footnotes = False
    notes_visible = False

    def __init__(self, fmt=None, gaiji="default"):
        self.fmt = fmt
        self.gaiji_mode = gaiji

    @property
    def end(self):
        return "\t" if self.fmt == "app" else "\n"

    def escape(self, s):
        return s

    def attr(self, s):
        return s or ""

    def line_info(self, ctx):
        return ""

    def block(self, kind, node, ctx):
        if kind in (NodeKind.P, NodeKind.BYLINE, NodeKind.HEAD, NodeKind.CELL, NodeKind.ITEM,
                    NodeKind.JUAN, NodeKind.FIGURE, NodeKind.DOC_NUMBER):
            return "", self.end
        if kind is NodeKind.LIST:
            return ("" if self.fmt == "app" else "\n"), ""
        if kind is NodeKind.SG:
            return "(", ")"
        if kind is NodeKind.CAESURA:
            return "　", ""
        if kind is NodeKind.FOREIGN:
            return None
        return "", ""

    def open_div(self, div_type):
        return ""

    def close_div(self, div_type):
        return ""

    def lb(self, ctx, n, line_head):
        return f"\n{n}║" if self.fmt == "app" else ""

    def column_break(self):
        return "\n"

    def lg_open(self, style):
        return ""

    def lg_close(self):
        return ""

    def lg_abnormal(self):
        return "", ""

    def lg_row_open(self):
        return ""

    def lg_row_close(self):
        return ""

    def l_cell(self, style):
        return "", self.end

    def note_anchor(self, n, css, label=""):
        return ""

    def star_anchor(self, corresp):
        return ""

    def dila_anchor(self, k):
        return ""

    def star_mark(self):
        return ""

    def cbeta_span(self):
        return "", ""

    def inline_note(self):
        return "（", "）"

    def interlinear_note(self):
        return "（", "）"

    def mulu(self, ctx, node, label, anchor):
        return ""

    def graphic(self, ctx, url):
        return ""

    def gaiji(self, ctx, code, entry, resolver):
        """悉昙字、兰札体用 PUA；其他依 Unicode → 通用字 → PUA"""
        if self.gaiji_mode == "PUA" or code.startswith(("SD", "RJ")):
            return resolver.resolve(code, PUA_PRIORITY) or code
        return resolver.resolve(code, TEXT_PRIORITY) or code

    def back_matter(self, back, edition, base, canon):
        return ""


class SimpleHtmlPolicy(TextPolicy):
    """简易 HTML：文字 + 行号锚点，夹注加括号，其他注释不输出"""

    name = "simple-html"
    suffix = ".html"

    def __init__(self, gaiji="default"):
        super().__init__(fmt=None, gaiji=gaiji)

    def escape(self, s):
        return html.escape(s)

    def attr(self, s):
        return html.escape(s or "", quote=True)

    def block(self, kind, node, ctx):
        if kind is NodeKind.SG:
            return "(", ")"
        if kind is NodeKind.FOREIGN:
            return None
        return "", ""

    def lb(self, ctx, n, line_head):
        return f"<a id='lb{self.attr(n)}'></a>"

    def l_cell(self, style):
        return "", ""


class PdfHtmlPolicy(HtmlPolicy):
    """PDF 用 HTML：只输出 CBETA 版，注释除夹注外不输出，双行对照排成两行表格"""

    name = "pdf-html"
    suffix = ".htm"
    per_edition = False
    text_spans = False
    footnotes = False
    double_column = "table"

    def line_info(self, ctx):
        return ""

    def block(self, kind, node, ctx):
        if kind is NodeKind.HEAD:
            if parent_name(node) == "list":
                return "", ""
            return f"<p class='h{len(ctx.open_divs)}'>", "</p>"
        if kind is NodeKind.CELL:
            return f"<td{self._span_attrs(node)}>", "</td>"
        if kind is NodeKind.ROW:
            return "<tr>", "</tr>\n"
        if kind is NodeKind.TABLE:
            return "<table>", "</table>"
        return super().block(kind, node, ctx)

    def lb(self, ctx, n, line_head):
        return ""

    def tt_table(self, rows):
        out = frag("<table class='tt'>\n")
        for row in rows:
            out += frag("<tr>\n")
            for cell in row:
                out += frag("<td>") + cell + frag("</td>")
            out += frag("</tr>\n")
        return out + frag("</table>\n")

    def note_anchor(self, n, css, label=""):
        return ""

    def star_anchor(self, corresp):
        return ""

    def dila_anchor(self, k):
        return ""

    def inline_note(self):
        return "(", ")"

    def interlinear_note(self):
        return "(", ")"

    def mulu(self, ctx, node, label, anchor):
        return f"<a id='{anchor}'></a>"

    def graphic(self, ctx, url):
        return f"<img src='{self.attr(url)}'/>"

    def gaiji(self, ctx, code, entry, resolver):
        if code.startswith(("SD", "RJ")):
            return f"<img src='{code}.gif'/>"
        uni = entry.get("uni_char", "")
        if uni and not is_rare(uni):
            return uni
        return self.escape(resolver.resolve(code, NORMAL_PRIORITY) or code)

    def back_matter(self, back, edition, base, canon):
        return ""


class EpubPolicy(PdfHtmlPolicy):
    """EPUB 章节 XHTML（CBETA 版）"""

    name = "epub"
    suffix = ".xhtml"
    double_column = "buffer"

    def block(self, kind, node, ctx):
        if kind is NodeKind.P:
            return "<div class='p'>\n", "</div>\n"
        if kind is NodeKind.FIGURE:
            return "<div class='figure'>", "</div>"
        if kind is NodeKind.HEAD:
            return f"<p class='h{len(ctx.open_divs)}'>", "</p>"
        return super().block(kind, node, ctx)

    def cbeta_span(self):
        return "<span class='corr'>", "</span>"

    def mulu(self, ctx, node, label, anchor):
        return f"<a id='{anchor}'></a>"

    def graphic(self, ctx, url):
        name = PurePosixPath(url).name
        ctx.images.append(("figures", f"{ctx.canon}/{name}"))
        return f"<img src='../img/{self.attr(name)}' />"

    def gaiji(self, ctx, code, entry, resolver):
        if code.startswith(("SD", "RJ")):
            roman = entry.get("romanized")
            if roman:
                return self.escape(roman)
            folder = "sd-gif" if code.startswith("SD") else "rj-gif"
            ctx.images.append((folder, f"{code[3:5]}/{code}.gif"))
            return f"<img src='../img/{code}.gif' />"
        uni = entry.get("uni_char", "")
        if uni and not is_rare(uni):
            return uni
        return self.escape(
            resolver.resolve(code, ("composition", "norm_uni_char", "norm_big5_char")) or code
        )


POLICIES = {
    "html": HtmlPolicy,
    "text": TextPolicy,
    "simple-html": SimpleHtmlPolicy,
    "pdf-html": PdfHtmlPolicy,
    "epub": EpubPolicy,
}


def make_policy(name, **options):
    """依格式名建立输出规则；options 只传给支持它们的规则"""
    cls = POLICIES[name]
    if cls is TextPolicy:
        return cls(fmt=options.get("text_format"), gaiji=options.get("gaiji", "default"))
    if cls is SimpleHtmlPolicy:
        return cls(gaiji=options.get("gaiji", "default"))
    return cls()


def strip_text_indent(rend):
    """lg/@rend 去掉 text-indent（只给第一句用）"""
    return re.sub(r"text-indent:[^;]*;?", "", rend or "").strip()


def first_text_indent(rend):
    m = re.search(r"text-indent:[^;]*", rend or "")
    return m.group(0) if m else ""
