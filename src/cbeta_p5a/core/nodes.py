"""
节点种类

把 XML 元素归入一个封闭的种类集合：已知标签各有一个种类，
不输出内容的标签归入 SUPPRESSED，其余一律归入 PASSTHROUGH（透明递归）。
"""

import enum

# ============================================================
# 命名空间
# ============================================================
TEI_NS = "http://www.tei-c.org/ns/1.0"
CB_NS = "http://www.cbeta.org/ns/1.0"
XML_NS = "http://www.w3.org/XML/1998/namespace"

NS_MAP = {
    "cb": CB_NS,
    "tei": TEI_NS,
}


class NodeKind(enum.Enum):
    ANCHOR = "anchor"
    APP = "app"
    BYLINE = "byline"
    CAESURA = "caesura"
    CELL = "cell"
    CORR = "corr"
    DIV = "div"
    DOC_NUMBER = "docNumber"
    FIGURE = "figure"
    FOREIGN = "foreign"
    G = "g"
    GRAPHIC = "graphic"
    HEAD = "head"
    ITEM = "item"
    JUAN = "juan"
    L = "l"
    LB = "lb"
    LEM = "lem"
    LG = "lg"
    LIST = "list"
    MILESTONE = "milestone"
    MULU = "mulu"
    NOTE = "note"
    P = "p"
    PB = "pb"
    RDG = "rdg"
    REG = "reg"
    ROW = "row"
    SG = "sg"
    SIC = "sic"
    SPACE = "space"
    T = "t"
    TABLE = "table"
    TT = "tt"
    UNCLEAR = "unclear"
    # 内容不输出
    SUPPRESSED = "#suppressed"
    # 未列出的标签：原样递归子节点
    PASSTHROUGH = "#passthrough"


# 内容不输出的元素
SUPPRESSED_TAGS = {"back", "teiHeader", "charDecl"}

_BY_TAG = {
    kind.value: kind for kind in NodeKind
    if not kind.value.startswith("#")
}


def local_name(node) -> str:
    """获取本地标签名（去除命名空间）；注释、处理指令返回空字符串"""
    tag = node.tag
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}")[1]
    return tag


def classify(node) -> NodeKind:
    name = local_name(node)
    if name in SUPPRESSED_TAGS:
        return NodeKind.SUPPRESSED
    return _BY_TAG.get(name, NodeKind.PASSTHROUGH)


def get_attr(node, attr, ns=None, default=""):
    """获取属性值；xml:id、xml:lang 等带命名空间的属性传 ns"""
    if ns:
        return node.get(f"{{{ns}}}{attr}", default)
    return node.get(attr, default)


def parent_name(node) -> str:
    parent = node.getparent()
    return local_name(parent) if parent is not None else ""


def children_named(node, name):
    """直接子元素中本地名为 name 的元素"""
    return [c for c in node if local_name(c) == name]
