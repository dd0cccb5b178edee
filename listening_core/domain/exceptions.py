"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于服务层或 UI 层统一捕获并给出用户提示。

注意：RateLimitError 与 DistillationError 是兄弟关系而非父子关系，
调用方需要分别捕获，以便展示不同的提示文案。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 file_name、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误。消息文本可直接展示给用户，核心层不做重试。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ConcurrencyError(BusinessError):
    """上一次生成或规则提炼尚未结束时再次发起请求。"""


class DistillationError(BusinessError):
    """规则提炼的通用失败（限流以外的一切错误）。"""


class RuleFormatError(BusinessError):
    """上传的规则文件结构不合法。"""


class IngestFormatError(BusinessError):
    """单个文档读取/解码失败，只影响该文件本身。"""
