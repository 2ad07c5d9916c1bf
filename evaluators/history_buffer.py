"""时间窗口历史缓冲区，维护最近若干秒的指标样本并计算闭眼比例（PERCLOS）"""

from collections import deque
from typing import Iterator, Optional

from models.data_models import MetricSample


class HistoryBuffer:
    """按时间顺序保存 MetricSample，每次追加时淘汰超出保留时长的旧样本"""

    def __init__(self, horizon_ms: float = 5000.0, min_samples: int = 10, window: int = 30):
        """
        Args:
            horizon_ms: 保留时长（毫秒），相对最新样本计算
            min_samples: 计算闭眼比例所需的最少样本数，不足时返回 0
            window: 计算闭眼比例时只看最近的 window 个样本
        """
        if horizon_ms <= 0:
            raise ValueError(f"保留时长必须为正数: {horizon_ms}")
        if min_samples < 1 or window < 1:
            raise ValueError("min_samples 和 window 必须 >= 1")
        self.horizon_ms = horizon_ms
        self.min_samples = min_samples
        self.window = window
        self._samples = deque()

    def append(self, sample: MetricSample) -> None:
        """在尾部追加样本，并淘汰 captured_at 早于 (最新时间 - horizon) 的样本"""
        latest = self.latest
        if latest is not None and sample.captured_at < latest.captured_at:
            raise ValueError(
                f"样本时间倒序: {sample.captured_at} < {latest.captured_at}"
            )
        self._samples.append(sample)

        cutoff = sample.captured_at - self.horizon_ms
        while self._samples and self._samples[0].captured_at < cutoff:
            self._samples.popleft()

    def closure_fraction(self, threshold: float = 0.2) -> float:
        """
        计算最近样本中 eye_openness < threshold 的比例。

        样本数少于 min_samples 时返回 0（冷启动时避免噪声）。
        """
        count = len(self._samples)
        if count < self.min_samples:
            return 0.0

        recent = list(self._samples)[-self.window:]
        closed = sum(1 for s in recent if s.eye_openness < threshold)
        return closed / len(recent)

    @property
    def latest(self) -> Optional[MetricSample]:
        return self._samples[-1] if self._samples else None

    @property
    def span_ms(self) -> float:
        """最新与最旧样本的时间差"""
        if not self._samples:
            return 0.0
        return self._samples[-1].captured_at - self._samples[0].captured_at

    def clear(self):
        """清空缓冲区"""
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[MetricSample]:
        return iter(self._samples)
