"""阈值与运行参数配置加载"""

import json
import math

from evaluators.alert_evaluator import COOLDOWN_POLICIES

# 默认配置
DEFAULTS = {
    "closure_threshold": 0.2,
    "history_horizon_ms": 5000,
    "min_closure_samples": 10,
    "closure_window": 30,
    "cooldown_policy": "global",
    "evaluation_interval_ms": 1000,
    "camera_index": 0,
    "max_alert_history": 200,
}


def load_config(config_path=None):
    """从 JSON 配置文件加载参数，缺失字段或 null 使用默认值，未知字段忽略。"""
    config = dict(DEFAULTS)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        print(f"警告: 配置文件不存在 {config_path}，使用默认配置")
        return config
    except json.JSONDecodeError:
        print(f"警告: 配置文件格式错误 {config_path}，使用默认配置")
        return config

    if not isinstance(data, dict):
        print(f"警告: 配置文件内容应为对象 {config_path}，使用默认配置")
        return config

    # 用配置文件中的值覆盖默认值
    for key in DEFAULTS:
        if key in data and data[key] is not None:
            config[key] = data[key]

    return config


def _require_number(config, key, integer=False):
    value = config[key]
    # bool 是 int 的子类，需单独排除
    kinds = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds):
        kind = "整数" if integer else "数值"
        raise ValueError(f"{key} 必须为{kind}: {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"{key} 必须为有限值: {value!r}")
    return value


def validate_config(config):
    """检查类型和取值范围，不合法时抛出 ValueError"""
    if config["cooldown_policy"] not in COOLDOWN_POLICIES:
        raise ValueError(f"不支持的冷却策略: {config['cooldown_policy']}")
    for key in ("closure_threshold", "history_horizon_ms", "evaluation_interval_ms"):
        _require_number(config, key)
    for key in ("min_closure_samples", "closure_window", "camera_index", "max_alert_history"):
        _require_number(config, key, integer=True)

    if config["closure_threshold"] < 0:
        raise ValueError("closure_threshold 不能为负数")
    if config["history_horizon_ms"] <= 0:
        raise ValueError("history_horizon_ms 必须为正数")
    if config["evaluation_interval_ms"] <= 0:
        raise ValueError("evaluation_interval_ms 必须为正数")
    if config["min_closure_samples"] < 1 or config["closure_window"] < 1:
        raise ValueError("min_closure_samples 和 closure_window 必须 >= 1")
    if config["max_alert_history"] < 0:
        raise ValueError("max_alert_history 不能为负数")
    return config
