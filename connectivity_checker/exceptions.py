"""
异常定义

连通性验证过程中使用的统一异常层次，所有异常都继承自 ConnectivityCheckerError。
"""


class ConnectivityCheckerError(Exception):
    """连通性验证基础异常"""
    pass


class ConfigurationError(ConnectivityCheckerError):
    """配置值非法（例如重试次数为负数）"""
    pass


class TestCaseFormatError(ConnectivityCheckerError):
    """测试用例文件格式错误"""
    __test__ = False


class ProvisioningError(ConnectivityCheckerError):
    """
    集群资源操作失败（应用/删除/读取 NetworkPolicy，修改标签等）

    对当前测试用例是致命的，但不会中断整个运行。
    """
    pass


class VerificationError(ConnectivityCheckerError):
    """扰动之后回读的集群状态与期望写入的状态不一致"""
    pass


class ProbeExecutionError(ConnectivityCheckerError):
    """
    单次探测执行失败（exec 通道异常、网络抖动等）

    与明确的 "连接被拒绝/超时" 不同，这类错误会被探测器重试。
    """
    pass


class RunCancelled(ConnectivityCheckerError):
    """运行被调用方取消（例如用户中断）"""
    pass
