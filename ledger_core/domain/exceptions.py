"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在服务层或聊天通道层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 partition_key、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


# ---- 模型调用 ----


class ModelUnavailable(BusinessError):
    """模型调用失败（超时、网络、限流、响应被拒绝），不会降级为 Default。"""


class NetworkError(ModelUnavailable):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(ModelUnavailable):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(ModelUnavailable):
    """Provider 限流错误，由调用方决定是否重试。"""


class MalformedResponse(ModelUnavailable):
    """模型返回的结构化内容不是 JSON，或字段类型不符合响应契约。"""


# ---- 存储 ----


class StoreError(BusinessError):
    """本地表存储读写失败。"""


class EntityExistsError(StoreError):
    """create 操作的目标行已存在。"""


class EntityNotFoundError(StoreError):
    """delete 操作的目标行不存在。"""


class BatchSubmissionFailure(StoreError):
    """某个分块的原子事务被存储拒绝。

    之前已提交的分块保持提交状态，之后的分块不会再提交。
    """


# ---- 外部记录 ----


class SinkError(BusinessError):
    """Notion 等外部记录写入失败。"""
