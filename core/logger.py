"""Run log for stock scans and inventory transfers."""
import json
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.models import NoStockCandidate, TransferOutcome, UpdateOutcome, UpdateSummary


class RunLogger:
    """Collect what a run did and save it as a JSON file."""

    def __init__(self, kind: str = "stock_scan", log_dir: str = "logs"):
        """Initialize run logger.

        Args:
            kind: Run type, used in the file name ("stock_scan", "transfer", ...)
            log_dir: Directory to store log files
        """
        self.log_dir = Path(log_dir)
        self.kind = kind

        self.log_data: Dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "kind": kind,
            "dry_run": False,
            "summary": {
                "total_found": 0,
                "excluded_count": 0,
                "eligible_count": 0,
                "successful_updates": 0,
                "failed_updates": 0,
                "warnings": 0,
                "errors": 0
            },
            "candidates": [],
            "updates": [],
            "transfers": [],
            "warnings": [],
            "errors": []
        }

        timestamp_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        self.log_file = self.log_dir / f"{kind}_{timestamp_str}.json"

    def set_dry_run(self, dry_run: bool):
        self.log_data["dry_run"] = dry_run

    def log_candidates(self, candidates: List[NoStockCandidate]):
        for candidate in candidates:
            entry = asdict(candidate)
            entry["status"] = candidate.status.value
            self.log_data["candidates"].append(entry)

    def log_update_outcomes(self, outcomes: List[UpdateOutcome]):
        self.log_data["updates"].extend(asdict(o) for o in outcomes)

    def log_summary(self, summary: UpdateSummary):
        self.log_data["summary"].update(asdict(summary))

    def log_transfer(self, outcome: TransferOutcome, context: Optional[Dict[str, Any]] = None):
        """Record a transfer outcome; its diagnostics become warnings."""
        entry = {
            "status": outcome.status.value,
            "message": outcome.message,
            "status_changed": outcome.status_changed,
            "timestamp": datetime.now().isoformat()
        }
        if context:
            entry["context"] = context
        self.log_data["transfers"].append(entry)

        for diagnostic in outcome.diagnostics:
            self.log_warning("post_commit", diagnostic)

    def log_warning(self, warning_type: str, message: str):
        self.log_data["warnings"].append({
            "type": warning_type,
            "message": message,
            "timestamp": datetime.now().isoformat()
        })
        self.log_data["summary"]["warnings"] += 1
        print(f"⚠️  WARNING ({warning_type}): {message}")

    def log_error(
        self,
        error_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """Log error.

        Args:
            error_type: Type of error
            message: Error message
            context: Additional context information
        """
        error_entry = {
            "type": error_type,
            "message": message,
            "timestamp": datetime.now().isoformat()
        }
        if context:
            error_entry["context"] = context

        self.log_data["errors"].append(error_entry)
        self.log_data["summary"]["errors"] += 1

        print(f"❌ ERROR ({error_type}): {message}")

    def print_summary(self):
        """Print summary table to console."""
        summary = self.log_data["summary"]
        print(f"\n{'='*60}")
        print("STOCK SCAN SUMMARY" + (" (DRY RUN)" if self.log_data["dry_run"] else ""))
        print(f"{'='*60}")
        print(f"  Active products with no stock: {summary['total_found']}")
        print(f"  Excluded:                      {summary['excluded_count']}")
        print(f"  Eligible for draft:            {summary['eligible_count']}")
        print(f"  Successfully updated:          {summary['successful_updates']}")
        print(f"  Failed:                        {summary['failed_updates']}")
        if summary["warnings"] or summary["errors"]:
            print(f"\n  Warnings: {summary['warnings']}   Errors: {summary['errors']}")
        print(f"\nLog file: {self.log_file}")
        print(f"{'='*60}\n")

    def save(self):
        """Save log data to JSON file."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, 'w', encoding='utf-8') as f:
            json.dump(self.log_data, f, indent=2, ensure_ascii=False)

    def get_summary(self) -> Dict[str, Any]:
        return self.log_data["summary"]

    def has_errors(self) -> bool:
        return self.log_data["summary"]["errors"] > 0
