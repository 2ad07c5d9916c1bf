"""告警判断模块：按优先级阈值阶梯匹配告警，并通过冷却状态机限制告警频率"""

import logging
from typing import Optional

from models.data_models import AlertEvent, CooldownState, Severity

logger = logging.getLogger(__name__)

COOLDOWN_POLICIES = ("global", "per_severity")

# 各等级冷却时长（毫秒）
COOLDOWN_MS = {
    Severity.CRITICAL: 10000.0,
    Severity.HIGH: 10000.0,
    Severity.MEDIUM: 3000.0,
    Severity.LOW: 5000.0,
}

ALERT_MESSAGES = {
    Severity.CRITICAL: "CRITICAL: Extreme drowsiness detected! Immediate attention required!",
    Severity.HIGH: "HIGH ALERT: Significant drowsiness detected. Take a break!",
    Severity.MEDIUM: "WARNING: Early signs of drowsiness detected",
    Severity.LOW: "Notice: Mild fatigue detected. Stay alert!",
}


def match_severity(
    score: float,
    eye_openness: float,
    mouth_openness: float,
    closure_fraction: float,
) -> Optional[Severity]:
    """按优先级匹配阈值阶梯，返回首个命中的等级，均未命中返回 None"""
    if eye_openness < 0.15 and closure_fraction > 0.8:
        return Severity.CRITICAL
    if score > 75 or (eye_openness < 0.2 and mouth_openness > 1.0):
        return Severity.HIGH
    if score > 50 or closure_fraction > 0.5:
        return Severity.MEDIUM
    if score > 30:
        return Severity.LOW
    return None


class AlertEvaluator:
    """
    告警状态机，状态为 Idle / Cooldown。

    冷却到期在每次 evaluate 开始时惰性检查，不使用后台定时器。
    global 策略下冷却对所有等级生效；per_severity 策略下仅抑制同等级告警。
    """

    def __init__(self, cooldown_policy: str = "global", state: Optional[CooldownState] = None):
        if cooldown_policy not in COOLDOWN_POLICIES:
            raise ValueError(f"不支持的冷却策略: {cooldown_policy}")
        self.cooldown_policy = cooldown_policy
        self.state = state if state is not None else CooldownState()

    @property
    def in_cooldown(self) -> bool:
        return self.state.active

    def evaluate(
        self,
        score: float,
        eye_openness: float,
        mouth_openness: float,
        closure_fraction: float,
        now: float,
    ) -> Optional[AlertEvent]:
        """
        根据分数和原始指标判断是否产生告警。

        Args:
            score: 综合疲劳分数
            eye_openness: EAR
            mouth_openness: MAR
            closure_fraction: 闭眼比例
            now: 当前时间（毫秒）

        Returns:
            AlertEvent，或在冷却中 / 未命中阈值时返回 None
        """
        self._expire(now)

        if self.cooldown_policy == "global":
            if self.state.active:
                return None
            severity = match_severity(score, eye_openness, mouth_openness, closure_fraction)
        else:
            severity = match_severity(score, eye_openness, mouth_openness, closure_fraction)
            if severity is not None and severity in self.state.severity_expires_at:
                return None

        if severity is None:
            return None

        return self._emit(severity, now)

    def _expire(self, now: float):
        state = self.state
        if state.active and now >= state.expires_at:
            state.active = False
            state.expires_at = 0.0
        for severity, expires_at in list(state.severity_expires_at.items()):
            if now >= expires_at:
                del state.severity_expires_at[severity]

    def _emit(self, severity: Severity, now: float) -> AlertEvent:
        duration = COOLDOWN_MS[severity]
        expires_at = now + duration
        state = self.state

        if self.cooldown_policy == "global":
            state.active = True
            state.expires_at = expires_at
        else:
            state.severity_expires_at[severity] = expires_at
            state.active = True
            state.expires_at = max(state.expires_at, expires_at)

        alert = AlertEvent(message=ALERT_MESSAGES[severity], severity=severity, emitted_at=now)
        logger.warning("告警 [%s] %s，冷却 %d ms", severity.value, alert.message, duration)
        return alert

    def reset(self):
        """回到 Idle 状态"""
        self.state.clear()
