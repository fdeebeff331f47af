"""
CBETA XML P5a 转换工具

将 CBETA TEI P5a XML 转为纯文本、逐版本 HTML、简易 HTML、EPUB 与 PDF 用 HTML，
并提供结构检查（行号重复、校勘缺 wit、缺字无资料等）。
"""

__version__ = "0.1.0"
