"""订阅精炼过程中使用的异常类型"""


class RefinerError(Exception):
    """所有 subrefiner 异常的基类"""


class ValidationError(RefinerError, ValueError):
    """单行节点结构无效"""

    def __init__(self, message: str, scheme: str = ""):
        super().__init__(message)
        self.scheme = scheme


class UnsupportedScheme(ValidationError):
    pass


class ExtractError(ValidationError):
    """无法从节点中取得 host/port"""


class ExportError(RefinerError, OSError):
    pass


class ConfigError(RefinerError):
    pass


class FetchError(RefinerError):
    pass
