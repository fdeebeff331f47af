"""
转换错误分类

单个文件的致命错误：缺少必要元数据、缺字无资料、XML 格式错误、未知藏经。
批量转换时只中止该文件，记录后继续处理下一个。
"""


class ConversionError(Exception):
    """转换失败（仅中止当前文件）"""

    def __init__(self, message, document=None):
        self.document = document
        if document:
            message = f"{message} ({document})"
        super().__init__(message)


class MissingGaijiError(ConversionError):
    """缺字码在缺字资料库中不存在，或纯文字模式缺组字式"""

    def __init__(self, code, document=None, reason="无缺字资料"):
        self.code = code
        super().__init__(f"{reason}: {code}", document)


class MissingMetadataError(ConversionError):
    """teiHeader 缺少必要字段（经名、版本日期、贡献者）"""

    def __init__(self, field, document=None):
        self.field = field
        super().__init__(f"找不到{field}", document)


class MalformedDocumentError(ConversionError):
    """XML not well-formed"""


class UnknownCanonError(ConversionError):
    """藏经 ID 没有对应的底本版本符号"""

    def __init__(self, canon, document=None):
        self.canon = canon
        super().__init__(f"未处理底本: {canon}", document)
