"""疲劳驾驶检测系统命令行入口"""

import argparse
import logging
import sys
import time

import cv2

from config import load_config, validate_config
from detectors.face_detector import FaceDetector
from evaluators.drowsiness_pipeline import DrowsinessPipeline
from models.data_models import CycleStatus, neutral_affect
from models.errors import UpstreamModelFailure


class DetectionSystem:
    """疲劳驾驶检测系统主程序，按固定周期采样摄像头并驱动评分流水线。"""

    def __init__(self, config_path=None, affect_provider=None, overrides=None):
        config = load_config(config_path)
        if overrides:
            config.update({k: v for k, v in overrides.items() if v is not None})
        self.config = validate_config(config)

        self.pipeline = DrowsinessPipeline.from_config(self.config)
        self.affect_provider = affect_provider or neutral_affect
        self.face_detector = None
        self._cap = None

    def run(self):
        """启动主检测循环。"""
        try:
            self.face_detector = FaceDetector()
        except UpstreamModelFailure as e:
            print(self.pipeline.report_upstream_failure(e).message)
            sys.exit(1)

        self._cap = cv2.VideoCapture(self.config["camera_index"])
        if not self._cap.isOpened():
            print("无法打开摄像头")
            sys.exit(1)

        try:
            self._main_loop()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def _main_loop(self):
        """视频流处理主循环，每 evaluation_interval_ms 评估一次。"""
        interval = self.config["evaluation_interval_ms"] / 1000.0
        next_tick = time.monotonic()

        while True:
            ret, frame = self._cap.read()
            if not ret:
                continue

            if time.monotonic() >= next_tick:
                next_tick = time.monotonic() + interval
                self.report(self.run_cycle(frame))

            cv2.imshow("Drowsiness Monitor", frame)
            if cv2.waitKey(1) & 0xFF == ord("q"):
                break

    def run_cycle(self, frame, now=None):
        """对单帧图像执行一次检测周期。"""
        try:
            landmarks = self.face_detector.detect(frame)
        except UpstreamModelFailure as e:
            return self.pipeline.report_upstream_failure(e, now=now)
        return self.pipeline.process(landmarks, affect=self.affect_provider(), now=now)

    @staticmethod
    def report(result):
        """在终端输出周期结果。"""
        if result.status == CycleStatus.OK:
            m = result.metrics
            print(
                f"score={result.score:5.1f} [{result.level}] "
                f"EAR={m.eye_openness:.3f} MAR={m.mouth_openness:.3f} "
                f"PERCLOS={m.closure_fraction:.2f}"
            )
        else:
            print(f"score={result.score:5.1f} [{result.status.value}] {result.message}")

        if result.alert is not None:
            print(f"!!! [{result.alert.severity.value.upper()}] {result.alert.message}")

    def stop(self):
        """释放摄像头资源、关闭窗口，流水线恢复冷启动状态。"""
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        cv2.destroyAllWindows()
        if self.face_detector is not None:
            self.face_detector.close()
            self.face_detector = None
        self.pipeline.reset()


def main():
    parser = argparse.ArgumentParser(description="疲劳驾驶检测系统")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 配置文件路径",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=None,
        help="摄像头编号",
    )
    parser.add_argument(
        "--cooldown-policy",
        choices=["global", "per_severity"],
        default=None,
        help="告警冷却策略: global(全局), per_severity(按等级)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    system = DetectionSystem(
        config_path=args.config,
        overrides={"camera_index": args.camera, "cooldown_policy": args.cooldown_policy},
    )
    system.run()


if __name__ == "__main__":
    main()
