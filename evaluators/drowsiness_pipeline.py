"""疲劳检测流水线：协调指标提取、历史缓冲、综合评分和告警判断，每次调用处理一个检测周期"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from detectors.metric_extractor import extract_metrics
from evaluators.alert_evaluator import AlertEvaluator
from evaluators.composite_scorer import compute_score, score_level
from evaluators.history_buffer import HistoryBuffer
from models.data_models import (
    AffectSignal,
    CooldownState,
    CycleMetrics,
    CycleResult,
    CycleStatus,
    LandmarkFrame,
    MetricSample,
)
from models.errors import DegenerateGeometry

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class PipelineState:
    """单个流水线实例独占的可变状态，不可在实例之间共享"""
    history: HistoryBuffer = field(default_factory=HistoryBuffer)
    cooldown: CooldownState = field(default_factory=CooldownState)
    last_score: float = 0.0


class DrowsinessPipeline:
    """单路摄像头的疲劳评分流水线。多路摄像头需各自创建实例。"""

    def __init__(
        self,
        closure_threshold: float = 0.2,
        history_horizon_ms: float = 5000.0,
        min_closure_samples: int = 10,
        closure_window: int = 30,
        cooldown_policy: str = "global",
    ):
        self.closure_threshold = closure_threshold
        self.state = PipelineState(
            history=HistoryBuffer(
                horizon_ms=history_horizon_ms,
                min_samples=min_closure_samples,
                window=closure_window,
            ),
        )
        self.alert_evaluator = AlertEvaluator(
            cooldown_policy=cooldown_policy, state=self.state.cooldown,
        )

    @classmethod
    def from_config(cls, config: dict) -> "DrowsinessPipeline":
        """由配置字典创建流水线，缺失字段使用默认值"""
        return cls(
            closure_threshold=config.get("closure_threshold", 0.2),
            history_horizon_ms=config.get("history_horizon_ms", 5000.0),
            min_closure_samples=config.get("min_closure_samples", 10),
            closure_window=config.get("closure_window", 30),
            cooldown_policy=config.get("cooldown_policy", "global"),
        )

    @property
    def history(self) -> HistoryBuffer:
        return self.state.history

    def process(
        self,
        frame: Optional[LandmarkFrame],
        affect: Optional[AffectSignal] = None,
        now: Optional[float] = None,
    ) -> CycleResult:
        """
        处理一个检测周期。

        Args:
            frame: 关键点帧；None 表示未检测到人脸
            affect: 外部情绪信号，None 视为中性
            now: 当前时间（毫秒），默认取单调时钟

        Returns:
            CycleResult；未检测到人脸和几何退化不会抛出异常
        """
        if now is None:
            now = _now_ms()

        if frame is None:
            return CycleResult(
                score=0.0, status=CycleStatus.NO_FACE, level=score_level(0.0),
                captured_at=now, message="No face detected",
            )

        try:
            eye_openness, mouth_openness = extract_metrics(frame)
        except DegenerateGeometry as e:
            logger.debug("关键点几何退化，跳过本周期: %s", e)
            score = self.state.last_score
            return CycleResult(
                score=score, status=CycleStatus.DEGENERATE_GEOMETRY,
                level=score_level(score), captured_at=now, message=str(e),
            )

        history = self.state.history
        history.append(MetricSample(eye_openness, mouth_openness, now))
        closure_fraction = history.closure_fraction(self.closure_threshold)

        if affect is None:
            affect = AffectSignal.neutral()

        score = compute_score(eye_openness, mouth_openness, closure_fraction, affect)
        self.state.last_score = score

        alert = self.alert_evaluator.evaluate(
            score, eye_openness, mouth_openness, closure_fraction, now,
        )

        return CycleResult(
            score=score,
            status=CycleStatus.OK,
            level=score_level(score),
            captured_at=now,
            metrics=CycleMetrics(eye_openness, mouth_openness, closure_fraction),
            alert=alert,
            message=alert.message if alert is not None else "",
        )

    def report_upstream_failure(self, error: Exception, now: Optional[float] = None) -> CycleResult:
        """人脸模型失败时返回 0 分和诊断信息，不改动内部状态"""
        if now is None:
            now = _now_ms()
        logger.error("人脸关键点模型失败: %s", error)
        return CycleResult(
            score=0.0, status=CycleStatus.UPSTREAM_FAILURE, level=score_level(0.0),
            captured_at=now, message=f"Model failure: {error}",
        )

    def reset(self):
        """停止检测时调用：清空历史缓冲并将冷却状态恢复为 Idle"""
        self.state.history.clear()
        self.alert_evaluator.reset()
        self.state.last_score = 0.0
