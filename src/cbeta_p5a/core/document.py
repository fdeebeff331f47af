"""
XML 文件读取

1) 读原始文字，套用已知输入异常的改写（anomalies.yaml，按文件 ID）
2) 严格解析（not well-formed 直接报错）
3) 读 teiHeader 元数据
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from lxml import etree

from cbeta_p5a.core.canons import parse_sutra_no, work_id, output_sutra_no
from cbeta_p5a.core.errors import MalformedDocumentError, MissingMetadataError
from cbeta_p5a.core.nodes import NS_MAP, TEI_NS, XML_NS

log = logging.getLogger(__name__)

_anomalies = None


# ============================================================
# 已知输入异常
# ============================================================
@dataclass(frozen=True)
class Rewrite:
    doc_id: str
    pattern: re.Pattern
    replace: str
    count: int = 0
    description: str = ""

    def applies_to(self, sutra_no):
        return self.doc_id == "*" or sutra_no.startswith(self.doc_id)


@dataclass
class Anomalies:
    rewrites: list = field(default_factory=list)
    checker_allow: list = field(default_factory=list)

    def rewrite(self, text, sutra_no):
        """依序套用适用于此文件的改写"""
        for rw in self.rewrites:
            if rw.applies_to(sutra_no):
                text, n = rw.pattern.subn(rw.replace, text, count=rw.count)
                if n and rw.doc_id != "*":
                    log.info(f"{sutra_no}: 套用已知异常改写「{rw.description}」")
        return text

    def is_allowed(self, sutra_no, lb, code, char=""):
        """检查器允许的已知用例"""
        for item in self.checker_allow:
            if (sutra_no.startswith(item.get("id", "")) and item.get("lb") == lb
                    and item.get("code") == code and item.get("char", char) == char):
                return True
        return False


def load_anomalies(path=None) -> Anomalies:
    """加载 anomalies.yaml（默认路径只读一次）"""
    global _anomalies
    if path is None and _anomalies is not None:
        return _anomalies

    from cbeta_p5a import config
    with open(path or config.ANOMALIES_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    rewrites = [
        Rewrite(
            doc_id=str(item["id"]),
            pattern=re.compile(item["pattern"]),
            replace=item["replace"],
            count=int(item.get("count", 0)),
            description=item.get("description", ""),
        )
        for item in data.get("rewrites", [])
    ]
    result = Anomalies(rewrites=rewrites, checker_allow=data.get("checker_allow", []))
    if path is None:
        _anomalies = result
    return result


# ============================================================
# 文件
# ============================================================
@dataclass
class Document:
    path: Path
    sutra_no: str          # T01n0001
    canon: str             # T
    vol: str               # T01
    work: str              # T0001
    out_sutra_no: str      # T05n0220a → T05n0220
    root: object = None

    @property
    def body(self):
        body = self.root.find(f"{{{TEI_NS}}}text/{{{TEI_NS}}}body")
        if body is None:
            body = self.root.find(f".//{{{TEI_NS}}}body")
        return body


def parse_xml_text(text, name="<string>"):
    """严格解析 XML 文字"""
    parser = etree.XMLParser(huge_tree=True)
    try:
        return etree.fromstring(text.encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise MalformedDocumentError(f"XML not well-formed: {e}", name) from e


def load_document(path, anomalies=None, text=None) -> Document:
    """读取并解析一个 XML 文件"""
    path = Path(path)
    sutra_no = path.stem
    parsed = parse_sutra_no(sutra_no)
    if parsed is None:
        canon, vol = re.match(r"^([A-Z]*)", sutra_no).group(1), ""
    else:
        canon, vol, _no = parsed

    if text is None:
        text = path.read_text(encoding="utf-8")
    if anomalies is None:
        anomalies = load_anomalies()
    text = anomalies.rewrite(text, sutra_no)

    root = parse_xml_text(text, path.name)
    return Document(
        path=path,
        sutra_no=sutra_no,
        canon=canon,
        vol=vol,
        work=work_id(sutra_no),
        out_sutra_no=output_sutra_no(sutra_no),
        root=root,
    )


# ============================================================
# teiHeader
# ============================================================
def read_header(doc: Document, plain=None) -> dict:
    """
    读取元数据。经名、版本日期、贡献者为必要字段，缺少则中止该文件。

    参数:
        plain: 元素 → 纯文字 的函数（经名中可能含缺字，需转为组字式）
    """
    ns = NS_MAP
    root = doc.root
    name = doc.path.name
    meta = {}

    # --- 经名：取 titleStmt/title 最后一段 ---
    title_el = root.find(".//tei:titleStmt/tei:title", ns)
    if title_el is None:
        raise MissingMetadataError("经名", name)
    title_text = plain(title_el) if plain else "".join(title_el.itertext())
    tokens = title_text.split()
    if not tokens:
        raise MissingMetadataError("经名", name)
    meta["title"] = tokens[-1]

    # --- 版本日期 ---
    date_el = root.find(".//tei:editionStmt/tei:edition/tei:date", ns)
    if date_el is None:
        raise MissingMetadataError("版本日期", name)
    date_text = "".join(date_el.itertext()).strip()
    meta["edition_date"] = re.sub(r"^\$Date: (.*?) \$$", r"\1", date_text)

    # --- 数据贡献者 ---
    contributors = None
    for proj_p in root.findall(".//tei:projectDesc/tei:p", ns):
        lang = proj_p.get(f"{{{XML_NS}}}lang", "") or proj_p.get("lang", "")
        if lang.startswith("zh"):
            contributors = "".join(proj_p.itertext()).strip()
            break
    if contributors is None:
        raise MissingMetadataError("贡献者", name)
    meta["contributors"] = contributors

    # --- 作者/译者 ---
    author_el = root.find(".//tei:titleStmt/tei:author", ns)
    if author_el is not None:
        author_text = "".join(author_el.itertext()).strip()
        if author_text:
            meta["author"] = author_text

    # --- 卷数 ---
    extent_el = root.find(".//tei:extent", ns)
    if extent_el is not None:
        meta["extent"] = (extent_el.text or "").strip()

    # --- 校勘版本（witness 列表） ---
    witnesses = []
    for w in root.findall(".//tei:tagsDecl//tei:witness", ns):
        w_text = (w.text or "").strip()
        if w_text:
            witnesses.append(w_text)
    if witnesses:
        meta["witnesses"] = " ".join(witnesses)

    return meta
