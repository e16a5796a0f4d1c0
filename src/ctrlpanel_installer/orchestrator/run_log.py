"""JSON run log written under install_logs/ for every install or uninstall."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import paths

logger = logging.getLogger(__name__)

LOG_FORMAT_VERSION = "1.0"


class RunLog:
    """
    运行日志

    One JSON document per run, rewritten after every step so an interrupted
    run still leaves a readable record. Secrets never enter the document:
    callers pass the masked config summary.
    """

    def __init__(self, log_dir: Optional[str] = None) -> None:
        self.log_dir = Path(log_dir) if log_dir else Path.cwd() / paths.LOGS_DIR
        self.data: Dict[str, Any] = {}
        self.path: Optional[Path] = None

    def start(self, mode: str, target: str, config_summary: Dict[str, Any]) -> Path:
        """初始化日志文件"""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.path = self.log_dir / f"{mode}_{paths.APP_NAME}_{timestamp}.json"
        self.data = {
            "version": LOG_FORMAT_VERSION,
            "mode": mode,
            "target": target,
            "host_info": None,
            "config": config_summary,
            "start_time": datetime.now().isoformat(),
            "end_time": None,
            "status": "running",
            "plan": [],
            "steps": [],
            "rollback": None,
        }
        self.save()
        logger.info(f"📝 Logging to: {self.path}")
        return self.path

    def update(self, **fields: Any) -> None:
        self.data.update(fields)
        self.save()

    def finalize(self, status: str) -> None:
        """完成日志记录"""
        self.data["end_time"] = datetime.now().isoformat()
        self.data["status"] = status

        steps = self.data.get("steps", [])
        self.data["summary"] = {
            "total_steps": len(steps),
            "succeeded": sum(1 for s in steps if s.get("outcome") == "succeeded"),
            "skipped": sum(1 for s in steps if s.get("outcome") == "skipped"),
            "tolerated_failures": sum(1 for s in steps if s.get("tolerated")),
            "duration_seconds": self._calculate_duration(),
        }
        self.save()
        logger.info(f"📄 Log saved to: {self.path}")

    def _calculate_duration(self) -> float:
        try:
            start = datetime.fromisoformat(self.data["start_time"])
            end = datetime.fromisoformat(self.data["end_time"])
        except (KeyError, TypeError, ValueError):
            return 0.0
        return (end - start).total_seconds()

    def save(self) -> None:
        if self.path:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)


def list_run_logs(log_dir: Path) -> List[Path]:
    """Newest first."""
    if not log_dir.exists():
        return []
    return sorted(log_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)


def load_run_log(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
