"""
转换结果写出

一卷一档，卷目录每次转换时整个重建：
  - HtmlWriter        <out>/<典籍>/<卷>/{CBETA,大,大→宋}.htm
  - TextWriter        <out>/<藏经>/<册>/<经号>/<卷>/{CBETA,大-orig,大→宋}.txt
  - SimpleHtmlWriter  <out>/<藏经>/<册>/<经号>/<卷>/{CBETA,大,大→宋}.html
  - PdfHtmlWriter     <out>/<经号>/main.htm（整部一档，供 PDF 排版）
EPUB 见 epub.py。
"""

import logging
import re
import shutil
from pathlib import Path

from jinja2 import Environment, FileSystemLoader
from opencc import OpenCC

from cbeta_p5a.core.canons import CBETA_EDITION, edition_filename, get_canons
from cbeta_p5a.core.context import select_edition
from cbeta_p5a.core.policies import HtmlPolicy

log = logging.getLogger(__name__)

_env = None


def get_env() -> Environment:
    """模板环境（正文已是 HTML，不自动转义）"""
    global _env
    if _env is None:
        from cbeta_p5a import config
        _env = Environment(
            loader=FileSystemLoader(str(config.TEMPLATES_DIR)),
            autoescape=False,
            keep_trailing_newline=True,
        )
    return _env


# ============================================================
# 共用
# ============================================================
def copyright_html(converted) -> str:
    """卷末版权信息"""
    doc = converted.doc
    meta = converted.meta
    short = get_canons().short_name(doc.canon)
    v = re.sub(r"^[A-Z]+0*", "", doc.vol) or doc.vol
    n = re.sub(r"^[A-Z]+\d{2,3}n0*", "", doc.out_sutra_no)
    return (
        f"【經文資訊】{short}第 {v} 冊 No. {n} {meta['title']}<br/>\n"
        f"【版本記錄】CBETA 電子佛典 版本日期：{meta['edition_date']}<br/>\n"
        f"【編輯說明】本資料庫由中華電子佛典協會（CBETA）依{short}所編輯<br/>\n"
        f"【原始資料】{meta['contributors']}<br/>\n"
        "【其他事項】本資料庫可自由免費流通，詳細內容請參閱【中華電子佛典協會資料庫版權宣告】\n"
    )


def clean_title(title: str) -> str:
    """跨册典籍合并时去掉经名末尾的括注，如 大般若波羅蜜多經(第1卷-第200卷)"""
    title = re.sub(r"^(.*)\(.*?\)$", r"\1", title)
    title = re.sub(r"^(.*?)(（.*?）)+$", r"\1", title)
    return title


def appify(text: str) -> str:
    """
    app 格式：每行「行号(NN)║正文」。
    跨行的词移到下一行开头，NN 为从上一行移来的字数。
    """
    out = []
    carried = ""
    for line in text.splitlines():
        m = re.match(r"^(.*)║(.*)$", line)
        if not m:
            continue
        head, body = m.groups()
        out.append(f"{head}({len(carried):02d})║{carried}")
        carried = ""
        chars = list(body)
        while chars:
            c = chars.pop()
            if c == "\t":
                break
            if c in " 　：》」』、；，！？。":
                chars.append(c)
                break
            carried = c + carried
            if c in "《「『":
                break
        out[-1] += "".join(chars).replace("\t", "") + "\n"
    return "".join(out)


def _reset_folder(folder: Path):
    shutil.rmtree(folder, ignore_errors=True)
    folder.mkdir(parents=True, exist_ok=True)


def _pad(juan: int) -> str:
    return f"{juan:03d}"


# 注标移到 lg-cell 里面，偈颂以表格呈现时注标才不会自成一栏
_ANCHOR_BEFORE_CELL = re.compile(r"(<a class='noteAnchor[^']*'[^>]*></a>)(<div class='lg-cell'[^>]*>)")


# ============================================================
# 逐版本 HTML
# ============================================================
def render_juan_page(converted, juan, pieces, edition) -> str:
    """某卷某版本的完整 HTML"""
    body = _ANCHOR_BEFORE_CELL.sub(r"\2\1", select_edition(pieces, edition))
    back = converted.back_for(juan)
    back_html = HtmlPolicy().back_matter(
        back, edition, converted.base, converted.doc.canon
    )
    return get_env().get_template("juan.html").render(
        title=converted.meta["title"],
        edition=edition,
        sutra_no=converted.doc.sutra_no,
        juan=juan,
        body=body,
        back=back_html,
        copyright=copyright_html(converted),
    )


class HtmlWriter:
    def __init__(self, out_root):
        self.out_root = Path(out_root)

    def write(self, converted) -> list[Path]:
        written = []
        for juan, pieces in converted.juans:
            folder = self.out_root / converted.doc.work / _pad(juan)
            _reset_folder(folder)
            for edition in converted.sorted_editions:
                path = folder / edition_filename(edition, converted.base, ".htm")
                path.write_text(render_juan_page(converted, juan, pieces, edition), encoding="utf-8")
                written.append(path)
        return written


# ============================================================
# 纯文本
# ============================================================
class TextWriter:
    """
    参数:
        fmt: None 一般格式；'app' 每行前加行号
        simplified: 是否转为简体（OpenCC t2s）
        encoding: 输出编码
    """

    def __init__(self, out_root, fmt=None, simplified=False, encoding="utf-8"):
        self.out_root = Path(out_root)
        self.fmt = fmt
        self.encoding = encoding
        self.cc = OpenCC("t2s") if simplified else None

    def folder_for(self, converted, juan) -> Path:
        doc = converted.doc
        return self.out_root / doc.canon / doc.vol / doc.out_sutra_no / _pad(juan)

    def render(self, pieces, edition) -> str:
        text = select_edition(pieces, edition)
        if self.fmt == "app":
            text = appify(text)
        if self.cc is not None:
            text = self.cc.convert(text)
        return text

    def write(self, converted) -> list[Path]:
        written = []
        for juan, pieces in converted.juans:
            folder = self.folder_for(converted, juan)
            _reset_folder(folder)
            for edition in converted.sorted_editions:
                name = edition_filename(edition, converted.base, ".txt", orig_suffix="-orig")
                path = folder / name
                path.write_text(self.render(pieces, edition), encoding=self.encoding)
                written.append(path)
        return written


# ============================================================
# 简易 HTML
# ============================================================
class SimpleHtmlWriter(TextWriter):
    def __init__(self, out_root):
        super().__init__(out_root)

    def write(self, converted) -> list[Path]:
        written = []
        template = get_env().get_template("simple.html")
        for juan, pieces in converted.juans:
            folder = self.folder_for(converted, juan)
            _reset_folder(folder)
            for edition in converted.sorted_editions:
                path = folder / edition_filename(edition, converted.base, ".html")
                html = template.render(
                    title=converted.meta["title"],
                    body=select_edition(pieces, edition),
                )
                path.write_text(html, encoding="utf-8")
                written.append(path)
        return written


# ============================================================
# PDF 用 HTML
# ============================================================
class PdfHtmlWriter:
    """整部经一个 HTML（CBETA 版），附目录"""

    def __init__(self, out_root):
        self.out_root = Path(out_root)

    def render(self, converted) -> str:
        toc = [e for e in converted.toc if e.kind != "卷"]
        return get_env().get_template("pdf.html").render(
            title=converted.meta["title"],
            author=converted.meta.get("author", ""),
            toc=toc,
            juans=[(juan, select_edition(pieces, CBETA_EDITION)) for juan, pieces in converted.juans],
        )

    def write(self, converted) -> list[Path]:
        folder = self.out_root / converted.doc.sutra_no
        _reset_folder(folder)
        path = folder / "main.htm"
        path.write_text(self.render(converted), encoding="utf-8")
        return [path]
