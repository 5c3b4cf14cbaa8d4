"""配置加载：默认值 + JSON 配置文件覆盖"""

import json
import logging

logger = logging.getLogger(__name__)

DEFAULTS = {
    "ear_threshold": 0.22,
    "blink_debounce_s": 0.3,
    "frame_width": 640,
    "frame_height": 480,
    "brightness_compensation": True,
    "voice_enabled": True,
    "advice_interval_s": 12,
    "calibration_distance_cm": 60.0,
    "toast_limit": 4,
    "toast_duration_s": 7.0,
    "camera_index": 0,
}

# 必须为正数的字段，非法值保留原配置
_POSITIVE_KEYS = ("advice_interval_s", "calibration_distance_cm", "toast_duration_s")


def load_config(config_path=None):
    """从 JSON 配置文件加载参数，缺失或为 null 的字段使用默认值，未知字段忽略。"""
    config = dict(DEFAULTS)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认配置", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认配置", config_path)
        return config

    if not isinstance(data, dict):
        logger.warning("配置文件格式错误 %s，使用默认配置", config_path)
        return config

    return merge_config(config, data)


def merge_config(config, overrides):
    """用 overrides 中已知且非 null 的字段覆盖 config，返回新字典"""
    merged = dict(config)
    for key in DEFAULTS:
        value = overrides.get(key)
        if value is None:
            continue
        if key in _POSITIVE_KEYS and not _is_positive(value):
            logger.warning("配置项 %s 必须为正数，忽略 %r", key, value)
            continue
        merged[key] = value
    return merged


def _is_positive(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
