import json
import logging
from datetime import timedelta

from registry_purge.models import RunStatistics
from registry_purge.utils import (
    ColoredFormatter,
    init_logger,
    log_summary,
    true_utcnow,
    write_report,
)


def make_stats(dry_run: bool = False, **kwargs) -> RunStatistics:
    now = true_utcnow()
    return RunStatistics(
        namespace="apps",
        dry_run=dry_run,
        retention_days=30,
        cutoff=now - timedelta(days=30),
        started_at=now,
        finished_at=now,
        **kwargs,
    )


def test_write_report(tmp_path):
    stats = make_stats(deleted_tags=3, error_tags=1, errors=["Failed to delete tag web:b"])
    path = tmp_path / "reports" / "latest.json"

    write_report(stats, path)

    with open(path) as f:
        report = json.load(f)
    assert report["namespace"] == "apps"
    assert report["deleted_tags"] == 3
    assert report["error_tags"] == 1
    assert report["errors"] == ["Failed to delete tag web:b"]


def test_log_summary(caplog):
    stats = make_stats(deleted_tags=1, skipped_tags=2, preserved_tags=3, error_images=1)

    with caplog.at_level(logging.INFO):
        log_summary(stats)

    assert "1 tags deleted, 2 tags skipped, 3 tags preserved, 0 errors" in caplog.text
    assert "1 images errors" in caplog.text


def test_dry_run_summary_is_marked(caplog):
    with caplog.at_level(logging.INFO):
        log_summary(make_stats(dry_run=True))

    assert "[DRY RUN] Purge summary" in caplog.text


def test_colored_formatter_wraps_errors():
    formatter = ColoredFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)

    assert formatter.format(record) == "\033[31mERROR boom\033[0m"


def test_init_logger_with_file(tmp_path):
    path = tmp_path / "logs" / "purge.log"

    init_logger(logging.DEBUG, http_logs=False, path=path)
    logging.debug("hello from the purge job")

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert logging.getLogger("httpx").disabled is True
    for handler in root.handlers:
        handler.flush()
    assert "hello from the purge job" in path.read_text()

    logging.getLogger("httpx").disabled = False
    logging.getLogger("httpcore").disabled = False
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.WARNING)
