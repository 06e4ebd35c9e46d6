"""
Settings store for the setpoint and hysteresis.

Keeps the last target temperature and hysteresis across restarts in a small
JSON document (``{"targetTemperature": {"value", "hysteresis", "updatedAt"}}``)
so the control loop boots with what the user last chose.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Any

from thermostat.config import MAX_HYSTERESIS, MAX_TARGET_TEMPERATURE, MIN_TARGET_TEMPERATURE
from thermostat.utils.persistent_store import load_json, save_json
from thermostat.utils.time import iso_now

logger = logging.getLogger(__name__)

TARGET_KEY = "targetTemperature"


def _valid_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class SettingsStore:
    """JSON-file backed ConfigStore used by the control loop."""

    def __init__(self, path: str, default_target: float = 22.0, default_hysteresis: float = 1.5):
        self.path = path
        self.default_target = default_target
        self.default_hysteresis = default_hysteresis
        self._lock = threading.Lock()

    def load_initial_target(self) -> tuple[float, float]:
        """
        Return the persisted ``(target, hysteresis)``.

        Missing or out-of-range values fall back to the configured defaults
        independently of each other.
        """
        record = load_json(self.path).get(TARGET_KEY) or {}
        if not isinstance(record, dict):
            record = {}

        target = record.get("value")
        if not (_valid_number(target) and MIN_TARGET_TEMPERATURE <= target <= MAX_TARGET_TEMPERATURE):
            if target is not None:
                logger.warning("Ignoring stored target temperature %r (out of range)", target)
            target = self.default_target

        hysteresis = record.get("hysteresis")
        if not (_valid_number(hysteresis) and 0 < hysteresis <= MAX_HYSTERESIS):
            if hysteresis is not None:
                logger.warning("Ignoring stored hysteresis %r (out of range)", hysteresis)
            hysteresis = self.default_hysteresis

        logger.info("Loaded settings: targetTemperature=%.1f°C, hysteresis=%.1f°C", target, hysteresis)
        return float(target), float(hysteresis)

    def persist_target(self, value: float) -> None:
        self._update(value=float(value))

    def persist_hysteresis(self, value: float) -> None:
        self._update(hysteresis=float(value))

    def _update(self, **fields: float) -> None:
        with self._lock:
            data = load_json(self.path)
            record = data.get(TARGET_KEY)
            if not isinstance(record, dict):
                record = {"value": self.default_target, "hysteresis": self.default_hysteresis}
            record.update(fields)
            record["updatedAt"] = iso_now()
            data[TARGET_KEY] = record
            save_json(self.path, data)
        logger.debug("Persisted settings %s to %s", fields, self.path)
