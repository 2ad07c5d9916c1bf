"""核心数据模型定义"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

# 单帧人脸关键点：按索引排列的 (x, y) 或 (x, y, z) 坐标序列
LandmarkFrame = Tuple[Tuple[float, ...], ...]


class Severity(str, Enum):
    """告警等级"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CycleStatus(str, Enum):
    """单周期处理结果状态"""
    OK = "ok"
    NO_FACE = "no_face"
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    UPSTREAM_FAILURE = "upstream_failure"


def make_landmark_frame(points: Sequence[Sequence[float]]) -> LandmarkFrame:
    """将任意坐标序列转换为不可变的 LandmarkFrame"""
    return tuple(tuple(float(c) for c in p) for p in points)


@dataclass(frozen=True)
class MetricSample:
    """单帧几何指标样本，captured_at 单位为毫秒"""
    eye_openness: float
    mouth_openness: float
    captured_at: float


@dataclass(frozen=True)
class AffectSignal:
    """外部情绪估计信号（置信度 0~1）"""
    drowsy_confidence: float = 0.0
    stressed_confidence: float = 0.0

    @classmethod
    def neutral(cls) -> "AffectSignal":
        return cls(0.0, 0.0)


@dataclass(frozen=True)
class AlertEvent:
    """告警事件，创建后不可变"""
    message: str
    severity: Severity
    emitted_at: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "severity": self.severity.value,
            "emitted_at": self.emitted_at,
        }


@dataclass
class CooldownState:
    """告警冷却状态；per_severity 策略下按等级分别记录到期时间"""
    active: bool = False
    expires_at: float = 0.0
    severity_expires_at: Dict[Severity, float] = field(default_factory=dict)

    def clear(self):
        self.active = False
        self.expires_at = 0.0
        self.severity_expires_at.clear()


@dataclass
class CycleMetrics:
    """单周期的原始指标"""
    eye_openness: float
    mouth_openness: float
    closure_fraction: float

    def to_dict(self) -> dict:
        return {
            "eye_openness": round(self.eye_openness, 4),
            "mouth_openness": round(self.mouth_openness, 4),
            "closure_fraction": round(self.closure_fraction, 4),
        }


@dataclass
class CycleResult:
    """单周期输出，供界面和告警投递方消费"""
    score: float
    status: CycleStatus
    level: str
    captured_at: float
    metrics: Optional[CycleMetrics] = None
    alert: Optional[AlertEvent] = None
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "score": round(self.score, 2),
            "level": self.level,
            "status": self.status.value,
            "message": self.message,
            "captured_at": self.captured_at,
            "metrics": self.metrics.to_dict() if self.metrics is not None else None,
            "alert": self.alert.to_dict() if self.alert is not None else None,
        }


# 外部情绪估计协作者：无参调用，返回 AffectSignal 或 None（视为中性）
AffectProvider = Callable[[], Optional[AffectSignal]]


def neutral_affect() -> AffectSignal:
    """默认情绪提供者，始终返回中性信号"""
    return AffectSignal.neutral()
