"""综合疲劳评分模块：眼睛、嘴巴、闭眼比例和外部情绪信号加权求和，结果限定在 [0, 100]"""

from typing import Optional

from models.data_models import AffectSignal

# 各子分数权重
EYE_WEIGHT = 0.4
MOUTH_WEIGHT = 0.3
CLOSURE_WEIGHT = 0.2
AFFECT_WEIGHT = 0.1

EYE_OPENNESS_THRESHOLD = 0.2
DROWSY_CONFIDENCE_THRESHOLD = 0.7
STRESSED_CONFIDENCE_THRESHOLD = 0.6

# 分数等级上限（不含），超过最后一档即为 critical
_LEVELS = (
    (30.0, "alert"),
    (60.0, "mild_fatigue"),
    (80.0, "drowsy"),
)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def eye_score(eye_openness: float) -> float:
    """EAR 低于 0.2 后线性增长，0.2 及以上为 0"""
    return clamp(100.0 * (EYE_OPENNESS_THRESHOLD - eye_openness) * 5.0)


def mouth_score(mouth_openness: float) -> float:
    return clamp(mouth_openness * 50.0)


def closure_score(closure_fraction: float) -> float:
    return clamp(closure_fraction * 100.0)


def affect_score(affect: Optional[AffectSignal]) -> float:
    """困倦置信度 > 0.7 加 30，紧张置信度 > 0.6 加 20"""
    if affect is None:
        return 0.0
    score = 0.0
    if affect.drowsy_confidence > DROWSY_CONFIDENCE_THRESHOLD:
        score += 30.0
    if affect.stressed_confidence > STRESSED_CONFIDENCE_THRESHOLD:
        score += 20.0
    return score


def compute_score(
    eye_openness: float,
    mouth_openness: float,
    closure_fraction: float,
    affect: Optional[AffectSignal] = None,
) -> float:
    """
    计算综合疲劳分数。

    Args:
        eye_openness: 双眼平均 EAR
        mouth_openness: MAR
        closure_fraction: 最近窗口内闭眼比例 (0~1)
        affect: 外部情绪信号，None 视为中性

    Returns:
        [0, 100] 范围内的分数
    """
    total = (
        EYE_WEIGHT * eye_score(eye_openness)
        + MOUTH_WEIGHT * mouth_score(mouth_openness)
        + CLOSURE_WEIGHT * closure_score(closure_fraction)
        + AFFECT_WEIGHT * affect_score(affect)
    )
    return clamp(total)


def score_level(score: float) -> str:
    """将分数映射为状态等级：alert / mild_fatigue / drowsy / critical"""
    for upper, level in _LEVELS:
        if score < upper:
            return level
    return "critical"
