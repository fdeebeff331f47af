"""
结构转换器：XML 树 → 带版本标记的输出片段

一次遍历同时产生所有版本的输出（片段各自带有所属版本），
卷分界以 JuanBreak 标记，格式差异交给 policies 中的输出规则。

流程：
  1) new_context()  读底本、版本范围、修订注清单
  2) traverse()     按 NodeKind 分派处理各元素
  3) convert()      读元数据、遍历正文、封存附录、切卷
"""

import logging
from dataclasses import dataclass, field

from cbeta_p5a.core.canons import CBETA_EDITION, get_canons
from cbeta_p5a.core.context import (
    JuanBreak, Mode, TocEntry, TraversalContext,
    exclude, frag, plain_text, restrict, select_edition, split_juans,
)
from cbeta_p5a.core.document import Document, read_header
from cbeta_p5a.core.editions import EditionResolver
from cbeta_p5a.core.errors import MissingGaijiError, UnknownCanonError
from cbeta_p5a.core.linehead import LineIssue, linehead_file
from cbeta_p5a.core.nodes import (
    TEI_NS, XML_NS, NodeKind, children_named, classify, get_attr, local_name,
)
from cbeta_p5a.core.policies import first_text_indent, strip_text_indent
from cbeta_p5a.etl.gaiji_map import SIDDHAM_PARENS

log = logging.getLogger(__name__)

# 缺少异读内容时的占位
MISSING = "－"

# 纯文字模式下整个跳过的元素
PLAIN_SKIP = {
    NodeKind.NOTE, NodeKind.LB, NodeKind.PB, NodeKind.MILESTONE, NodeKind.MULU,
    NodeKind.RDG, NodeKind.SIC, NodeKind.REG, NodeKind.FOREIGN, NodeKind.GRAPHIC,
    NodeKind.ANCHOR, NodeKind.SUPPRESSED,
}


@dataclass
class ConvertedDocument:
    """一个 XML 文件的转换结果"""
    doc: Document
    meta: dict
    base: str
    editions: frozenset
    juans: list                    # [(卷号, 片段列表)]
    back: object                   # 卷号 → JuanBackMatter（只读）
    toc: list = field(default_factory=list)
    images: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    def juan_text(self, juan, edition):
        for n, pieces in self.juans:
            if n == juan:
                return select_edition(pieces, edition)
        raise KeyError(juan)

    def back_for(self, juan):
        return self.back.get(juan) or self.back[0]

    @property
    def sorted_editions(self):
        """底本在前、CBETA 其次，其余依符号排序"""
        rest = sorted(self.editions - {self.base, CBETA_EDITION})
        return [self.base, CBETA_EDITION] + rest


class StructuralTransducer:
    """
    参数:
        policy: 输出规则（policies.HtmlPolicy 等）
        gaiji: GaijiResolver
        xml_root: XML 根目录（校勘说明中判断参照经文是否存在）
    """

    def __init__(self, policy, gaiji, xml_root=None):
        self.policy = policy
        self.gaiji = gaiji
        self.xml_root = xml_root
        self.resolver = None

        self._handlers = {
            NodeKind.ANCHOR: self._anchor,
            NodeKind.APP: self._app,
            NodeKind.BYLINE: self._block,
            NodeKind.CAESURA: self._block,
            NodeKind.CELL: self._block,
            NodeKind.CORR: self._corr,
            NodeKind.DIV: self._div,
            NodeKind.DOC_NUMBER: self._block,
            NodeKind.FIGURE: self._block,
            NodeKind.FOREIGN: self._block,
            NodeKind.G: self._g,
            NodeKind.GRAPHIC: self._graphic,
            NodeKind.HEAD: self._head,
            NodeKind.ITEM: self._block,
            NodeKind.JUAN: self._block,
            NodeKind.L: self._l,
            NodeKind.LB: self._lb,
            NodeKind.LEM: self._lem,
            NodeKind.LG: self._lg,
            NodeKind.LIST: self._block,
            NodeKind.MILESTONE: self._milestone,
            NodeKind.MULU: self._mulu,
            NodeKind.NOTE: self._note,
            NodeKind.P: self._block,
            NodeKind.PB: self._skip,
            NodeKind.RDG: self._rdg,
            NodeKind.REG: self._skip,
            NodeKind.ROW: self._block,
            NodeKind.SG: self._block,
            NodeKind.SIC: self._sic,
            NodeKind.SPACE: self._space,
            NodeKind.T: self._t,
            NodeKind.TABLE: self._block,
            NodeKind.TT: self._block,
            NodeKind.UNCLEAR: self._unclear,
            NodeKind.SUPPRESSED: self._skip,
            NodeKind.PASSTHROUGH: self.traverse,
        }
        missing = set(NodeKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"未处理的节点种类: {sorted(k.value for k in missing)}")

    # ============================================================
    # 入口
    # ============================================================
    def new_context(self, doc: Document) -> TraversalContext:
        base = get_canons().symbol(doc.canon)
        if base is None:
            raise UnknownCanonError(doc.canon, doc.path.name)
        self.resolver = EditionResolver(base)

        mod_notes = {
            note.get("n") for note in doc.root.iter(f"{{{TEI_NS}}}note")
            if note.get("n") and note.get("type") == "mod"
        }

        return TraversalContext(
            sutra_no=doc.sutra_no,
            canon=doc.canon,
            base=base,
            editions=self.resolver.editions_in_scope(doc.root),
            mod_notes=mod_notes,
        )

    def convert(self, doc: Document) -> ConvertedDocument:
        ctx = self.new_context(doc)
        meta = read_header(doc, plain=lambda el: self.plain(ctx, el))

        pieces = self.traverse(ctx, doc.body, Mode.RENDER)
        pieces += self._flush_columns(ctx)
        back = ctx.back.finalize()

        juans = split_juans(pieces)
        log.info(f"{doc.sutra_no}: {len(juans)} 卷, 版本 {len(ctx.editions)} 个")
        return ConvertedDocument(
            doc=doc,
            meta=meta,
            base=ctx.base,
            editions=ctx.editions,
            juans=juans,
            back=back,
            toc=ctx.toc,
            images=ctx.images,
            warnings=ctx.warnings,
        )

    def plain(self, ctx, node) -> str:
        """元素的纯文字（缺字用组字式）"""
        ctx.pass_stack.append(False)
        try:
            return plain_text(self.traverse(ctx, node, Mode.PLAIN)).strip()
        finally:
            ctx.pass_stack.pop()

    # ============================================================
    # 遍历
    # ============================================================
    def traverse(self, ctx, node, mode=Mode.RENDER):
        out = []
        if node.text:
            out += self._text(ctx, node, node.text, mode)
        for child in node:
            if isinstance(child.tag, str):
                out += self.handle(ctx, child, mode)
            if child.tail:
                out += self._text(ctx, node, child.tail, mode)
        return out

    def handle(self, ctx, node, mode=Mode.RENDER):
        kind = classify(node)
        if mode is Mode.PLAIN and kind is not NodeKind.G:
            if kind in PLAIN_SKIP:
                return []
            return self.traverse(ctx, node, mode)
        return self._handlers[kind](ctx, node, mode)

    def _text(self, ctx, parent, s, mode):
        # app 直接包含的文字是排版空白
        if local_name(parent) == "app":
            return []
        s = s.replace("\n", "").replace("\r", "")
        if not s:
            return []
        if mode is Mode.PLAIN:
            return frag(s)

        counting = mode is Mode.RENDER and ctx.counting
        r = self.policy.text(ctx, s, counting)
        if counting:
            ctx.char_count += len(s)
        return frag(r)

    def _skip(self, ctx, node, mode):
        return []

    def _block(self, ctx, node, mode):
        wrap = self.policy.block(classify(node), node, ctx)
        if wrap is None:
            return []
        open_tag, close_tag = wrap
        return frag(open_tag) + self.traverse(ctx, node, mode) + frag(close_tag)

    def _in_apparatus(self, ctx, node):
        """以校勘模式取子节点内容（不计字数）"""
        ctx.pass_stack.append(False)
        try:
            return self.traverse(ctx, node, Mode.APPARATUS)
        finally:
            ctx.pass_stack.pop()

    # ============================================================
    # 结构
    # ============================================================
    def _div(self, ctx, node, mode):
        div_type = node.get("type")
        if not div_type:
            return self.traverse(ctx, node, mode)
        ctx.open_divs.append(div_type)
        body = self.traverse(ctx, node, mode)
        ctx.open_divs.pop()
        return frag(self.policy.open_div(div_type)) + body + frag(self.policy.close_div(div_type))

    def _head(self, ctx, node, mode):
        if node.get("type") == "added":
            return []
        return self._block(ctx, node, mode)

    def _milestone(self, ctx, node, mode):
        """
        卷分界：关闭所有开着的 div → 换卷 → 依原层次重新打开。
        n 不大于当前卷号或无法解析时改用「当前卷 + 1」。
        """
        if node.get("unit") != "juan" or mode is not Mode.RENDER:
            return []
        try:
            n = int(node.get("n", ""))
        except ValueError:
            n = None
        if n is None or n <= ctx.juan:
            new = ctx.juan + 1
            self._warn(ctx, f"milestone n={node.get('n')!r} 不合理，改为第 {new} 卷")
        else:
            new = n

        # 暂存的双行对照要留在上一卷的 div 之内
        out = self._flush_columns(ctx)
        for div_type in reversed(ctx.open_divs):
            out += frag(self.policy.close_div(div_type))
        ctx.juan = new
        ctx.back.start_juan(new)
        out.append(JuanBreak(new))
        for div_type in ctx.open_divs:
            out += frag(self.policy.open_div(div_type))
        return out

    def _mulu(self, ctx, node, mode):
        if mode is not Mode.RENDER:
            return []
        ctx.mulu_count += 1
        label = self.plain(ctx, node)
        anchor = f"mulu{ctx.mulu_count}"
        try:
            level = int(node.get("level", "0"))
        except ValueError:
            level = 0
        ctx.toc.append(TocEntry(label, level, ctx.juan, anchor, node.get("type", "")))
        return frag(self.policy.mulu(ctx, node, label, anchor))

    # ============================================================
    # 行
    # ============================================================
    def _lb(self, ctx, node, mode):
        if mode is not Mode.RENDER:
            return []
        if node.get("type") == "old":
            return []
        ed = node.get("ed", "")
        if ed and ed != ctx.canon:
            return []

        n = node.get("n", "")
        for issue in ctx.lines.observe(ed or ctx.canon, n):
            if issue is LineIssue.DUPLICATE:
                self._warn(ctx, f"行号重复: {ctx.lines.line_head}")
            else:
                self._warn(ctx, f"lb/@n 格式错误: {n!r}")
        ctx.char_count = 1

        out = []
        if ctx.lg_row_open and not ctx.in_l:
            out += frag(self.policy.lg_row_close())
            ctx.lg_row_open = False
        out += frag(self.policy.lb(ctx, n, ctx.lines.line_head))
        out += self._flush_columns(ctx)
        return out

    def _flush_columns(self, ctx):
        """输出暂存的双行对照内容"""
        if self.policy.double_column == "table":
            rows = ctx.tt_rows
            if not (rows[0] or rows[1]):
                return []
            out = self.policy.tt_table(rows)
            ctx.tt_rows = ([], [])
            return out
        if not ctx.next_line_buf:
            return []
        out = ctx.next_line_buf + frag(self.policy.column_break())
        ctx.next_line_buf = []
        return out

    @staticmethod
    def _double_line(tt):
        """cb:tt 是否为上下两行对照（而非单行、夹注或校勘用）"""
        if tt is None or local_name(tt) != "tt":
            return False
        if tt.get("type") in ("app", "single-line"):
            return False
        if tt.get("place") == "inline" or tt.get("rend") == "normal":
            return False
        return True

    def _t(self, ctx, node, mode):
        if "foot" in node.get("place", ""):
            return []
        r = self.traverse(ctx, node, mode)
        tt = node.getparent()
        if mode is not Mode.RENDER or not self._double_line(tt):
            return r

        i = children_named(tt, "t").index(node)
        if self.policy.double_column == "table":
            if i < 2:
                ctx.tt_rows[i].append(r)
                return []
            return r
        if i == 0:
            return r + frag("　")
        if i == 1:
            ctx.next_line_buf.extend(r + frag("　"))
            return []
        return r

    # ============================================================
    # 偈颂
    # ============================================================
    def _lg(self, ctx, node, mode):
        saved = (ctx.lg_type, ctx.first_l)
        ctx.lg_type = node.get("type", "")
        if ctx.lg_type == "abnormal":
            open_tag, close_tag = self.policy.lg_abnormal()
            out = frag(open_tag) + self.traverse(ctx, node, mode) + frag(close_tag)
        else:
            ctx.first_l = True
            ctx.lg_row_open = False
            out = frag(self.policy.lg_open(strip_text_indent(node.get("rend"))))
            out += self.traverse(ctx, node, mode)
            if ctx.lg_row_open:
                out += frag(self.policy.lg_row_close())
                ctx.lg_row_open = False
            out += frag(self.policy.lg_close())
        ctx.lg_type, ctx.first_l = saved
        return out

    def _l(self, ctx, node, mode):
        if ctx.lg_type == "abnormal":
            return self.traverse(ctx, node, mode)

        style = ""
        if ctx.first_l:
            parent = node.getparent()
            style = first_text_indent(parent.get("rend") if parent is not None else "")
            ctx.first_l = False

        out = []
        if not ctx.lg_row_open:
            out += frag(self.policy.lg_row_open())
            ctx.lg_row_open = True
        ctx.in_l = True
        open_tag, close_tag = self.policy.l_cell(style)
        out += frag(open_tag) + self.traverse(ctx, node, mode) + frag(close_tag)
        ctx.in_l = False
        return out

    # ============================================================
    # 校勘
    # ============================================================
    def _app(self, ctx, node, mode):
        out = []
        if node.get("type") == "star":
            corresp = node.get("corresp", "").lstrip("#")
            out += frag(self.policy.star_anchor(corresp))
        return out + self.traverse(ctx, node, mode)

    def _lem(self, ctx, node, mode):
        content = self.traverse(ctx, node, mode)
        # 没被同组 rdg 认领的版本都读 lem（包括 wit 里没提到的版本）
        claimed = self.resolver.claimed_by_readings(node)
        wit = node.get("wit", "")

        out = []
        if "CBETA" in wit and ctx.base not in wit:
            # CBETA 依他本修订：CBETA 版带校勘说明，其余版本照原样
            anchor = ""
            if self.policy.footnotes:
                note = self._lem_note_cf(node) + self._lem_note_rdg(ctx, node)
                k = ctx.back.add_dila_note(note)
                anchor = self.policy.dila_anchor(k)
            open_tag, close_tag = self.policy.cbeta_span()
            out += restrict(frag(anchor) + frag(open_tag) + content + frag(close_tag),
                            {CBETA_EDITION})
            claimed = claimed | {CBETA_EDITION}
        out += exclude(content, claimed)
        return out

    def _lem_note_cf(self, lem):
        refs = []
        for note in children_named(lem, "note"):
            if not note.get("type", "").startswith("cf"):
                continue
            s = "".join(note.itertext()).strip()
            exists = bool(self.xml_root) and self._ref_exists(s)
            refs.append(self.policy.cf_ref(s, exists))
        if not refs:
            return []
        return frag("修訂依據：" + "；".join(refs) + "。")

    def _ref_exists(self, linehead):
        path = linehead_file(self.xml_root, linehead)
        return path is not None and path.exists()

    def _lem_note_rdg(self, ctx, lem):
        app = lem.getparent()
        out = []
        for rdg in children_named(app, "rdg"):
            if ctx.base not in rdg.get("wit", ""):
                continue
            s = self._in_apparatus(ctx, rdg)
            out += frag(ctx.base) + (s or frag(MISSING))
        if out:
            out += frag("。")
        return out

    def _rdg(self, ctx, node, mode):
        return restrict(self.traverse(ctx, node, mode), self.resolver.witnesses(node))

    def _sic(self, ctx, node, mode):
        content = self.traverse(ctx, node, mode)
        editions = self.resolver.sic_editions(node)
        if editions is None:
            return exclude(content, {CBETA_EDITION})
        return restrict(content, editions)

    def _corr(self, ctx, node, mode):
        editions = self.resolver.corr_editions(node)
        out = []
        parent = node.getparent()
        if self.policy.footnotes and parent is not None and local_name(parent) == "choice":
            sics = children_named(parent, "sic")
            if sics:
                s = self._in_apparatus(ctx, sics[0])
                k = ctx.back.add_dila_note(frag(ctx.base) + (s or frag(MISSING)))
                out += frag(self.policy.dila_anchor(k), frozenset({CBETA_EDITION}))
        open_tag, close_tag = self.policy.cbeta_span()
        out += restrict(frag(open_tag) + self.traverse(ctx, node, mode) + frag(close_tag),
                        editions)
        return out

    # ============================================================
    # 注释与锚点
    # ============================================================
    def _note(self, ctx, node, mode):
        note_type = node.get("type", "")
        if note_type in ("equivalent", "rest"):
            return []
        if note_type in ("orig", "orig_biao", "orig_ke"):
            return self._note_orig(ctx, node, note_type)
        if note_type == "mod":
            return self._note_mod(ctx, node)
        if note_type.startswith("cf"):
            return []
        if node.get("resp", "").startswith("CBETA"):
            return []

        place = node.get("place", "")
        if place in ("inline", "inline2"):
            open_tag, close_tag = self.policy.inline_note()
        elif place == "interlinear":
            open_tag, close_tag = self.policy.interlinear_note()
        elif self.policy.notes_visible:
            return self.traverse(ctx, node, mode)
        else:
            return []
        return frag(open_tag) + self.traverse(ctx, node, mode) + frag(close_tag)

    def _note_orig(self, ctx, node, note_type):
        if not self.policy.footnotes:
            return []
        n = node.get("n", "")
        ctx.back.add_orig_note(n, self._in_apparatus(ctx, node))

        # 有修订注的原注只出现在底本
        revised = n in ctx.mod_notes
        css = ctx.canon if revised else f"{ctx.canon} cb"
        label = {"orig_biao": f"標{n[-2:]}", "orig_ke": f"科{n[-2:]}"}.get(note_type, "")
        editions = {ctx.base} if revised else {ctx.base, CBETA_EDITION}
        return frag(self.policy.note_anchor(n, css, label), frozenset(editions))

    def _note_mod(self, ctx, node):
        if not self.policy.footnotes:
            return []
        n = node.get("n", "")
        ctx.back.add_mod_note(n, self._in_apparatus(ctx, node))
        return frag(self.policy.note_anchor(n, "cb"), frozenset({CBETA_EDITION}))

    def _anchor(self, ctx, node, mode):
        anchor_id = get_attr(node, "id", XML_NS)
        if anchor_id.startswith("fx"):
            return frag(self.policy.star_mark())
        if node.get("type") == "circle":
            return frag("◎")
        return []

    # ============================================================
    # 字
    # ============================================================
    def _g(self, ctx, node, mode):
        code = node.get("ref", "").lstrip("#")
        if code in SIDDHAM_PARENS:
            return frag(SIDDHAM_PARENS[code])

        entry = self.gaiji.get(code)
        if entry is None:
            raise MissingGaijiError(code, ctx.sutra_no)

        if mode is Mode.PLAIN:
            if code.startswith(("SD", "RJ")):
                return frag(entry.get("romanized") or code)
            composition = entry.get("composition")
            if not composition:
                raise MissingGaijiError(code, ctx.sutra_no, reason="缺少组字式")
            return frag(composition)

        if mode is Mode.RENDER and ctx.counting:
            ctx.char_count += 1
        return frag(self.policy.gaiji(ctx, code, entry, self.gaiji))

    def _graphic(self, ctx, node, mode):
        return frag(self.policy.graphic(ctx, node.get("url", "")))

    def _space(self, ctx, node, mode):
        try:
            n = int(node.get("quantity", "1"))
        except ValueError:
            n = 1
        return frag(self.policy.space(n))

    def _unclear(self, ctx, node, mode):
        return frag(self.policy.unclear())

    def _warn(self, ctx, message):
        message = f"{ctx.sutra_no} {ctx.lines.line_head}: {message}"
        log.warning(message)
        ctx.warnings.append(message)


def convert_document(doc, policy, gaiji, xml_root=None) -> ConvertedDocument:
    """转换一个已解析的文件"""
    return StructuralTransducer(policy, gaiji, xml_root=xml_root).convert(doc)
