"""Combined product export.

Collects every stored product into a single ``products.json`` plus a
``products.csv`` copy, either on demand or periodically through
APScheduler.
"""

import asyncio
import csv
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from product_scraper.services.cache_service import ResultCache

logger = structlog.get_logger(__name__)

CSV_COLUMNS = [
    "id",
    "site",
    "title",
    "brand",
    "price",
    "availability",
    "description",
    "images",
    "sizes",
    "lastUpdated",
]


class ExportService:
    """Writes the combined product export files."""

    def __init__(self, cache: ResultCache, export_dir: str):
        """Initialize export service.

        Args:
            cache: Result cache; its durable store is read when present
            export_dir: Directory receiving products.json and products.csv
        """
        self.cache = cache
        self.export_dir = Path(export_dir)
        self.logger = logger.bind(service="export_service")

    async def collect_products(self) -> List[Dict[str, Any]]:
        """Gather one flat product dict per key, newest timestamp winning."""
        latest: Dict[str, Dict[str, Any]] = {}

        if self.cache.store is not None:
            for key, payload in await self.cache.store.list_all():
                data = payload.get("data")
                if isinstance(data, dict):
                    latest[key] = {"timestamp": payload.get("timestamp", 0), "data": data}

        for entry in self.cache.entries():
            current = latest.get(entry.key)
            if current is None or current["timestamp"] < entry.timestamp:
                latest[entry.key] = {"timestamp": entry.timestamp, "data": entry.data}

        products = []
        for key in sorted(latest):
            item = latest[key]
            product = {"id": key, **item["data"]}
            product["lastUpdated"] = _iso(item["timestamp"])
            products.append(product)
        return products

    async def build_combined_export(self) -> Dict[str, Any]:
        """Write products.json and products.csv.

        Returns:
            Dict with the output paths and product count
        """
        products = await self.collect_products()
        payload = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "products": products,
        }
        json_path, csv_path = await asyncio.to_thread(self._write_files, payload)

        self.logger.info("export_written", count=len(products), path=str(json_path))
        return {"count": len(products), "json_path": str(json_path), "csv_path": str(csv_path)}

    def _write_files(self, payload: Dict[str, Any]):
        self.export_dir.mkdir(parents=True, exist_ok=True)
        json_path = self.export_dir / "products.json"
        csv_path = self.export_dir / "products.csv"

        tmp_path = json_path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, json_path)

        with open(csv_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction="ignore")
            writer.writeheader()
            for product in payload["products"]:
                row = dict(product)
                row["images"] = "|".join(product.get("images") or [])
                row["sizes"] = "|".join(product.get("sizes") or [])
                writer.writerow(row)

        return json_path, csv_path


class ExportScheduler:
    """Runs the combined export on a fixed interval."""

    def __init__(self, export_service: ExportService, interval_minutes: int = 60):
        self.export_service = export_service
        self.interval_minutes = interval_minutes
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.logger = logger.bind(service="export_scheduler")

    def start(self) -> None:
        """Start the periodic export job. Must be called from a running event loop."""
        if self.interval_minutes <= 0:
            self.logger.info("export_job_disabled")
            return
        if self.scheduler is not None and self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.start()
        trigger = IntervalTrigger(minutes=self.interval_minutes, timezone="UTC")
        job = self.scheduler.add_job(
            func=self._run_export_wrapper,
            trigger=trigger,
            id="combined_export",
            name="Combined product export",
            replace_existing=True,
            max_instances=1,
        )
        self.logger.info(
            "export_job_added",
            interval_minutes=self.interval_minutes,
            next_run=job.next_run_time.isoformat() if job.next_run_time else None,
        )

    def stop(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")
        self.scheduler = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    async def _run_export_wrapper(self) -> None:
        """Job entry point; failures are logged so the schedule keeps running."""
        try:
            await self.export_service.build_combined_export()
        except Exception as e:
            self.logger.error("export_job_failed", error=str(e), exc_info=True)


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(float(timestamp), tz=timezone.utc).isoformat()
