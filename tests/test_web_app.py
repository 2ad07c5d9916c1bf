"""Flask Web 接口单元测试"""

import threading
from unittest.mock import MagicMock

import numpy as np
import pytest

import web_app
from models.errors import UpstreamModelFailure
from web_app import WebDetectionSystem


def _image():
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def detector():
    return MagicMock()


@pytest.fixture
def system(detector, monkeypatch):
    s = WebDetectionSystem(detector_factory=lambda: detector)
    s.face_detector = detector
    monkeypatch.setattr(web_app, "system", s)
    return s


@pytest.fixture
def client(system):
    web_app.app.config["TESTING"] = True
    with web_app.app.test_client() as c:
        yield c


def _drive_critical(system, detector, frame_factory):
    detector.detect.return_value = frame_factory(ear=0.1, mar=0.3)
    for i in range(10):
        system.run_cycle(_image(), now=i * 100.0)


class TestRunCycle:
    def test_data_reflects_latest_cycle(self, system, detector, frame_factory, client):
        detector.detect.return_value = frame_factory(ear=0.25, mar=0.3)
        system.run_cycle(_image(), now=0.0)

        data = client.get("/api/data").get_json()
        assert data["status"] == "ok"
        assert data["score"] == 4.5
        assert data["level"] == "alert"
        assert data["alert"] is None

    def test_alert_history_and_counts(self, system, detector, frame_factory, client):
        _drive_critical(system, detector, frame_factory)

        body = client.get("/api/alerts").get_json()
        assert body["total"] == 1
        assert body["critical"] == 1
        assert body["alerts"][0]["severity"] == "critical"

        assert client.post("/api/alerts/clear").get_json()["success"] is True
        assert client.get("/api/alerts").get_json()["total"] == 0

    def test_alert_history_capped(self, detector, frame_factory):
        s = WebDetectionSystem(config={**web_app.DEFAULTS, "max_alert_history": 2})
        s.face_detector = detector
        # 每次都超过 low 冷却时间，且分数 > 30
        detector.detect.return_value = frame_factory(ear=0.05, mar=0.3)
        for i in range(4):
            s.run_cycle(_image(), now=i * 6000.0)
        assert s.get_alerts()["total"] == 2

    def test_upstream_failure_logged(self, system, detector, client):
        detector.detect.side_effect = UpstreamModelFailure("model crashed")
        result = system.run_cycle(_image(), now=0.0)
        assert result.score == 0.0

        logs = client.get("/api/logs").get_json()["logs"]
        assert any("model crashed" in entry["message"] for entry in logs)
        assert logs[-1]["level"] == "danger"

    def test_face_lost_logged(self, system, detector, frame_factory):
        detector.detect.return_value = frame_factory()
        system.run_cycle(_image(), now=0.0)
        detector.detect.return_value = None
        system.run_cycle(_image(), now=1000.0)

        logs, total = system.get_logs()
        messages = [entry["message"] for entry in logs]
        assert "检测到人脸" in messages
        assert "人脸丢失" in messages
        assert total == len(logs)

    def test_logs_since(self, system):
        system._add_log("info", "a")
        system._add_log("info", "b")
        logs, total = system.get_logs(since=1)
        assert [entry["message"] for entry in logs] == ["b"]
        assert total == 2


class TestStartStop:
    def test_start_fails_on_model_failure(self):
        def factory():
            raise UpstreamModelFailure("init failed")

        s = WebDetectionSystem(detector_factory=factory)
        assert s.start() is False
        assert s.get_data()["status"] == "upstream_failure"

    def test_stop_resets_pipeline(self, system, detector, frame_factory, client):
        _drive_critical(system, detector, frame_factory)
        assert system.pipeline.state.cooldown.active

        assert client.post("/api/stop").get_json()["success"] is True
        assert len(system.pipeline.history) == 0
        assert not system.pipeline.state.cooldown.active
        assert system.get_data()["running"] is False

    def test_stop_waits_for_running_cycle(self, system, detector, frame_factory):
        entered = threading.Event()
        release = threading.Event()

        def slow_detect(frame):
            entered.set()
            release.wait(2.0)
            return frame_factory(ear=0.1)

        detector.detect.side_effect = slow_detect
        worker = threading.Thread(target=system.run_cycle, args=(_image(),), kwargs={"now": 0.0})
        worker.start()
        assert entered.wait(2.0)

        stopper = threading.Thread(target=system.stop)
        stopper.start()
        stopper.join(0.2)
        # 周期未结束前不能关闭检测器或重置流水线
        assert stopper.is_alive()
        detector.close.assert_not_called()

        release.set()
        worker.join(2.0)
        stopper.join(2.0)
        assert not stopper.is_alive()
        detector.close.assert_called_once()
        assert len(system.pipeline.history) == 0

    def test_run_cycle_after_stop_is_noop(self, system, detector, frame_factory):
        system.stop()
        assert system.run_cycle(_image(), now=0.0) is None
        assert len(system.pipeline.history) == 0


class TestConfigApi:
    def test_update_policy_rebuilds_pipeline(self, system, detector, frame_factory, client):
        _drive_critical(system, detector, frame_factory)
        resp = client.post("/api/config", json={"cooldown_policy": "per_severity"})
        assert resp.get_json()["success"] is True
        assert system.pipeline.alert_evaluator.cooldown_policy == "per_severity"
        assert len(system.pipeline.history) == 0

    def test_invalid_policy_rejected(self, system, client):
        resp = client.post("/api/config", json={"cooldown_policy": "nope"})
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert system.pipeline.alert_evaluator.cooldown_policy == "global"

    @pytest.mark.parametrize("body", [
        {"closure_threshold": "0.3"},
        {"history_horizon_ms": "abc"},
        {"closure_window": 2.5},
        {"max_alert_history": -1},
        [1, 2, 3],
    ])
    def test_wrongly_typed_values_rejected(self, system, client, body):
        old_pipeline = system.pipeline
        resp = client.post("/api/config", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert system.pipeline is old_pipeline
        assert system.config["closure_threshold"] == 0.2

    def test_config_swap_waits_for_running_cycle(self, system, detector, frame_factory):
        entered = threading.Event()
        release = threading.Event()

        def slow_detect(frame):
            entered.set()
            release.wait(2.0)
            return frame_factory(ear=0.1)

        detector.detect.side_effect = slow_detect
        old_pipeline = system.pipeline
        worker = threading.Thread(target=system.run_cycle, args=(_image(),), kwargs={"now": 0.0})
        worker.start()
        assert entered.wait(2.0)

        updater = threading.Thread(target=system.update_config, args=({"cooldown_policy": "per_severity"},))
        updater.start()
        updater.join(0.2)
        assert updater.is_alive()
        assert system.pipeline is old_pipeline

        release.set()
        worker.join(2.0)
        updater.join(2.0)
        # 旧流水线的周期在切换前完成，新流水线从冷启动开始
        assert len(old_pipeline.history) == 1
        assert system.pipeline is not old_pipeline
        assert len(system.pipeline.history) == 0
        assert system.pipeline.alert_evaluator.cooldown_policy == "per_severity"
