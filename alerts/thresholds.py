"""Alert threshold loading from YAML."""
import logging
import yaml
from pathlib import Path

from models.alerts import AlertThreshold

logger = logging.getLogger("governor.alerts.thresholds")


class ThresholdLoader:
    def __init__(self, path="config/alert_thresholds.yaml"):
        self.path = Path(path)

    def load(self):
        """Parse the thresholds file. Invalid entries are logged and skipped."""
        if not self.path.exists():
            logger.warning(f"Alert thresholds file not found: {self.path}")
            return []
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        thresholds = self.parse(data.get("thresholds", []))
        logger.info(f"Loaded {len(thresholds)} alert thresholds from {self.path}")
        return thresholds

    @staticmethod
    def parse(raw_thresholds):
        thresholds = []
        seen = set()
        for raw in raw_thresholds:
            try:
                threshold = AlertThreshold.from_dict(raw)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Invalid alert threshold {raw.get('id', '?')}: {e}")
                continue
            if threshold.id in seen:
                logger.warning(f"Duplicate alert threshold id {threshold.id}; keeping the last one")
                thresholds = [t for t in thresholds if t.id != threshold.id]
            seen.add(threshold.id)
            thresholds.append(threshold)
        return thresholds

    def load_into(self, manager):
        thresholds = self.load()
        for threshold in thresholds:
            manager.add_threshold(threshold)
        return len(thresholds)
