"""
版本异读判定

规则：
  - 文件涉及的版本 = 底本 + 【CBETA】 + 所有 lem/rdg/@wit 中出现的版本符号
  - 一组校勘（app）里，某版本若被某个 rdg 的 wit 列出，就读该 rdg；否则读 lem
    （wit 都没提到的版本也读 lem）
  - 每组分别判定，不做全局缓存
"""

from cbeta_p5a.core.canons import CBETA_EDITION, scan_editions
from cbeta_p5a.core.nodes import TEI_NS, children_named, local_name


def _plain(node):
    """lem/rdg 的纯文字（不含其中的 note）"""
    parts = [node.text or ""]
    for child in node:
        if isinstance(child.tag, str) and local_name(child) != "note":
            parts.append(_plain(child))
        parts.append(child.tail or "")
    return "".join(parts)


class EditionResolver:
    """
    版本异读解析器。

    参数:
        base: 底本版本符号，如 '【大】'
    """

    def __init__(self, base: str):
        self.base = base

    def editions_in_scope(self, root) -> frozenset:
        """至少有底本及 CBETA 两个版本，再并入所有 lem/rdg 的 wit"""
        editions = {self.base, CBETA_EDITION}
        for node in root.iter(f"{{{TEI_NS}}}lem", f"{{{TEI_NS}}}rdg"):
            editions.update(scan_editions(node.get("wit", "")))
        return frozenset(editions)

    @staticmethod
    def witnesses(node) -> frozenset:
        return frozenset(scan_editions(node.get("wit", "")))

    def claimed_by_readings(self, lem) -> frozenset:
        """同组 rdg 列出的全部版本"""
        app = lem.getparent()
        claimed = set()
        if app is None:
            return frozenset()
        for rdg in children_named(app, "rdg"):
            claimed.update(self.witnesses(rdg))
        return frozenset(claimed)

    def sic_editions(self, sic):
        """sic（底本原字）：有 wit 依 wit；没有 wit 返回 None，表示除 CBETA 以外的版本都读"""
        return self.witnesses(sic) or None

    def corr_editions(self, corr) -> frozenset:
        """corr（CBETA 校正）：有 wit 依 wit，否则仅 CBETA"""
        return self.witnesses(corr) or frozenset({CBETA_EDITION})

    def reading_node(self, app, edition):
        """某版本在这一组校勘里读哪个节点（rdg 或 lem）"""
        for rdg in children_named(app, "rdg"):
            if edition in self.witnesses(rdg):
                return rdg
        lems = children_named(app, "lem")
        return lems[0] if lems else None

    def reading_for(self, app, edition, render=None) -> str:
        """
        某版本在这一组校勘里的文字。

        参数:
            app: <app> 元素
            edition: 版本符号
            render: 节点 → 文字 的函数，默认取纯文字
        """
        node = self.reading_node(app, edition)
        if node is None:
            return ""
        return (render or _plain)(node)
