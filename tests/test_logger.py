"""Tests for the run logger."""
import json

from core.logger import RunLogger
from core.models import NoStockCandidate, ProductStatus, TransferOutcome, TransferStatus, UpdateSummary


def test_save_writes_summary_and_candidates(tmp_path):
    logger = RunLogger(kind="stock_scan", log_dir=str(tmp_path / "logs"))
    logger.set_dry_run(True)
    logger.log_candidates([NoStockCandidate("7", "Product 7", ProductStatus.ACTIVE, False)])
    logger.log_summary(UpdateSummary(1, 0, 1, 0, 0))

    logger.save()

    data = json.loads(logger.log_file.read_text(encoding="utf-8"))
    assert logger.log_file.name.startswith("stock_scan_")
    assert data["dry_run"] is True
    assert data["candidates"] == [{"id": "7", "title": "Product 7", "status": "active", "is_excluded": False}]
    assert data["summary"]["eligible_count"] == 1


def test_transfer_diagnostics_become_warnings(tmp_path):
    logger = RunLogger(kind="transfer", log_dir=str(tmp_path))
    outcome = TransferOutcome(
        status=TransferStatus.COMMITTED,
        message="Trasferimento completato",
        diagnostics=["audit log failed: HTTP 403"]
    )

    logger.log_transfer(outcome, {"product_id": "101"})

    assert logger.log_data["transfers"][0]["status"] == "committed"
    assert logger.get_summary()["warnings"] == 1
    assert not logger.has_errors()


def test_errors_are_counted(tmp_path):
    logger = RunLogger(log_dir=str(tmp_path))
    logger.log_error("draft_update", "HTTP 404: Not Found", {"product_id": "7"})

    assert logger.has_errors()
    assert logger.log_data["errors"][0]["context"] == {"product_id": "7"}
