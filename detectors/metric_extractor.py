"""几何指标提取模块，负责从单帧关键点计算 EAR（眼睛张开度）和 MAR（嘴巴张开度）"""

import math
from typing import Sequence, Tuple

from models.data_models import LandmarkFrame
from models.errors import DegenerateGeometry

# MediaPipe FaceMesh 关键点索引，顺序为 p1..p6
LEFT_EYE_INDICES = (33, 160, 158, 133, 153, 144)
RIGHT_EYE_INDICES = (362, 385, 387, 263, 373, 380)

# 嘴巴轮廓 p1..p8：p1/p5 为左右嘴角，(p2,p8) (p3,p7) (p4,p6) 为上下对应点
MOUTH_INDICES = (78, 81, 13, 311, 308, 402, 14, 178)


def _dist(a: Sequence[float], b: Sequence[float]) -> float:
    """二维欧氏距离，忽略 z 坐标"""
    return math.dist(a[:2], b[:2])


def _check_points(points: Sequence[Sequence[float]], expected: int, name: str):
    if len(points) != expected:
        raise DegenerateGeometry(f"{name} 需要 {expected} 个关键点，实际 {len(points)} 个")
    for p in points:
        if len(p) < 2 or not (math.isfinite(p[0]) and math.isfinite(p[1])):
            raise DegenerateGeometry(f"{name} 关键点坐标无效: {p!r}")


def _finite(ratio: float, name: str) -> float:
    # 水平距离极小时比值可能溢出
    if not math.isfinite(ratio):
        raise DegenerateGeometry(f"{name}比值溢出")
    return ratio


def calculate_ear(eye_points: Sequence[Sequence[float]]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

    Returns:
        EAR 值（非负）

    Raises:
        DegenerateGeometry: 水平距离为零或关键点不合法
    """
    _check_points(eye_points, 6, "眼睛")
    p1, p2, p3, p4, p5, p6 = eye_points

    horizontal = _dist(p1, p4)
    if horizontal == 0.0:
        raise DegenerateGeometry("眼睛水平距离为零")

    vertical_1 = _dist(p2, p6)
    vertical_2 = _dist(p3, p5)

    return _finite((vertical_1 + vertical_2) / (2.0 * horizontal), "眼睛")


def calculate_mar(mouth_points: Sequence[Sequence[float]]) -> float:
    """
    计算 MAR 值。

    公式: MAR = (|p2-p8| + |p3-p7| + |p4-p6|) / (3 * |p1-p5|)

    Args:
        mouth_points: 8 个嘴巴轮廓关键点 [(x,y), ...]

    Returns:
        MAR 值（非负）

    Raises:
        DegenerateGeometry: 水平距离为零或关键点不合法
    """
    _check_points(mouth_points, 8, "嘴巴")
    p1, p2, p3, p4, p5, p6, p7, p8 = mouth_points

    horizontal = _dist(p1, p5)
    if horizontal == 0.0:
        raise DegenerateGeometry("嘴巴水平距离为零")

    vertical_1 = _dist(p2, p8)
    vertical_2 = _dist(p3, p7)
    vertical_3 = _dist(p4, p6)

    return _finite((vertical_1 + vertical_2 + vertical_3) / (3.0 * horizontal), "嘴巴")


def _pick(frame: LandmarkFrame, indices: Sequence[int]):
    try:
        return [frame[i] for i in indices]
    except IndexError:
        raise DegenerateGeometry(
            f"关键点数量不足: 需要索引 {max(indices)}，实际仅 {len(frame)} 个"
        ) from None


def extract_metrics(
    frame: LandmarkFrame,
    left_eye: Sequence[int] = LEFT_EYE_INDICES,
    right_eye: Sequence[int] = RIGHT_EYE_INDICES,
    mouth: Sequence[int] = MOUTH_INDICES,
) -> Tuple[float, float]:
    """
    从一帧关键点提取 (eye_openness, mouth_openness)。

    eye_openness 为左右眼 EAR 的平均值。纯函数，无副作用。
    """
    left_ear = calculate_ear(_pick(frame, left_eye))
    right_ear = calculate_ear(_pick(frame, right_eye))
    mar = calculate_mar(_pick(frame, mouth))
    return (left_ear + right_ear) / 2.0, mar
