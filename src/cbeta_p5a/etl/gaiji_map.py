"""
Gaiji（缺字）映射模块
将 CBETA 缺字码（CB00178、SD-A5A9、RJ-C0E0）按调用方给定的优先级解析为可显示的字符。

缺字资料（cbeta_gaiji.json）格式：
    {"CB00178": {"uni_char": "𠮷", "norm_uni_char": "吉", "norm_big5_char": "吉",
                 "composition": "[土/口]", "romanized": "..."}}
"""

import json
from pathlib import Path

# 全局缓存，避免重复读取（每个进程只读一次）
_gaiji_map = None

# 优先级里的特殊属性名：由缺字码本身推算 Unicode PUA
PUA = "PUA"

# 常用优先级
TEXT_PRIORITY = ("uni_char", "norm_uni_char", "norm_big5_char", PUA)
PUA_PRIORITY = (PUA,)
PLAIN_PRIORITY = ("composition",)
NO_NORM_PRIORITY = ("uni_char", "composition")
NORMAL_PRIORITY = ("norm_uni_char", "norm_big5_char", "composition")

# Unicode Extension C, D, E：不少字型尚未支持，呈现时仍附缺字资讯
RARE_RANGE = range(0x2A700, 0x2CEB0)

# 悉昙字中固定当作括号的两个码
SIDDHAM_PARENS = {
    "SD-E35A": "（",
    "SD-E35B": "）",
}


def load_gaiji_map(json_path=None):
    """
    加载 cbeta_gaiji.json 映射表。

    参数:
        json_path: JSON 文件路径，默认从 config.GAIJI_PATH 获取

    返回:
        dict: 缺字码 → 字符信息的映射字典
    """
    global _gaiji_map
    if _gaiji_map is not None and json_path is None:
        return _gaiji_map

    if json_path is None:
        from cbeta_p5a import config
        json_path = config.GAIJI_PATH

    with open(json_path, "r", encoding="utf-8") as f:
        _gaiji_map = json.load(f)

    return _gaiji_map


def pua(code):
    """
    由缺字码推算 Unicode 私用区字符。
    悉昙字 SD-xxxx、兰札体 RJ-xxxx 以十六进制偏移，CB 码以十进制偏移；
    其他码（或无法解析的码）返回 None。
    """
    try:
        if code.startswith("SD-"):
            return chr(0xFA000 + int(code[3:], 16))
        if code.startswith("RJ-"):
            return chr(0x101000 + int(code[3:], 16))
        if code.startswith("CB"):
            return chr(0xF0000 + int(code[2:]))
    except ValueError:
        return None
    return None


def is_rare(char):
    """是否位于 Unicode Ext C/D/E 范围"""
    return bool(char) and ord(char[0]) in RARE_RANGE


class GaijiResolver:
    """
    缺字解析器。
    resolve() 只依赖缺字码与优先级两个输入，查不到时返回 None，由调用方决定是否致命。
    """

    def __init__(self, gaiji_map=None, json_path=None):
        if gaiji_map is None:
            gaiji_map = load_gaiji_map(json_path)
        self.gaiji_map = gaiji_map

    def __contains__(self, code):
        return code.lstrip("#") in self.gaiji_map

    def get(self, code):
        """取缺字资讯（不存在返回 None）"""
        return self.gaiji_map.get(code.lstrip("#"))

    def resolve(self, code, priority):
        """
        按优先级依次取第一个非空属性。

        参数:
            code: 缺字码，如 'CB00178'（带或不带 # 前缀均可）
            priority: 属性名序列，可含特殊名 'PUA'
        """
        code = code.lstrip("#")
        entry = self.gaiji_map.get(code) or {}
        for attr in priority:
            if attr == PUA:
                value = pua(code)
            else:
                value = entry.get(attr)
            if value:
                return value
        return None


def resolve(cb_id, priority=TEXT_PRIORITY, gaiji_map=None):
    """
    便捷函数：以全局缺字表解析，找不到时用 [缺字码] 作为回退文本。
    """
    resolver = GaijiResolver(gaiji_map if gaiji_map is not None else load_gaiji_map())
    return resolver.resolve(cb_id, priority) or f"[{cb_id.lstrip('#')}]"
