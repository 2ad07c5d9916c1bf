"""疲劳评分流水线的异常定义"""


class DrowsinessError(Exception):
    """流水线异常基类"""


class DegenerateGeometry(DrowsinessError, ValueError):
    """关键点几何退化（距离为零、索引缺失或坐标非有限值），本周期指标无法计算"""


class UpstreamModelFailure(DrowsinessError, RuntimeError):
    """人脸关键点模型初始化或推理失败，由外部协作者负责恢复"""
