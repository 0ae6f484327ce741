import re
from datetime import datetime, timedelta, timezone

import pytest

from registry_purge.config import DEFAULT_TAG_PATTERN
from registry_purge.models import Tag, Verdict
from registry_purge.policy import evaluate, retention_cutoff

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
CUTOFF = retention_cutoff(NOW, 30)
DEFAULT_PATTERN = re.compile(DEFAULT_TAG_PATTERN)


def make_tag(name: str, age_days: float) -> Tag:
    return Tag(id=f"id-{name}", name=name, updated_at=NOW - timedelta(days=age_days))


def test_retention_cutoff():
    assert retention_cutoff(NOW, 30) == datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("name", ["latest", "1.0.0", "build-42", "anything"])
def test_recent_tags_are_skipped_regardless_of_name(name):
    assert evaluate(make_tag(name, 5), CUTOFF, DEFAULT_PATTERN) == Verdict.SKIP


def test_tag_exactly_at_cutoff_is_skipped():
    tag = Tag(id="1", name="build-1", updated_at=CUTOFF)
    assert evaluate(tag, CUTOFF, DEFAULT_PATTERN) == Verdict.SKIP

    older = Tag(id="2", name="build-1", updated_at=CUTOFF - timedelta(microseconds=1))
    assert evaluate(older, CUTOFF, DEFAULT_PATTERN) == Verdict.DELETE


@pytest.mark.parametrize(
    "name",
    [
        "latest",
        "latest-arm64",
        "2.3.1",
        "0.0.0",
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-rc.1+build.5",
        "10.20.30+meta",
    ],
)
def test_default_pattern_preserves_stable_tags(name):
    assert evaluate(make_tag(name, 40), CUTOFF, DEFAULT_PATTERN) == Verdict.PRESERVE


@pytest.mark.parametrize(
    "name",
    ["build-42", "v1", "v1.2.3", "1.2", "01.2.3", "1.2.3.4", "latestfoo", "my-latest", "main"],
)
def test_default_pattern_deletes_other_tags(name):
    assert evaluate(make_tag(name, 40), CUTOFF, DEFAULT_PATTERN) == Verdict.DELETE


def test_custom_pattern_must_match_whole_name():
    pattern = re.compile(r"release-\d+")
    assert evaluate(make_tag("release-12", 40), CUTOFF, pattern) == Verdict.PRESERVE
    assert evaluate(make_tag("release-12-hotfix", 40), CUTOFF, pattern) == Verdict.DELETE
    assert evaluate(make_tag("pre-release-12", 40), CUTOFF, pattern) == Verdict.DELETE


def test_naive_timestamps_are_utc():
    tag = Tag(id="1", name="x", updated_at="2024-01-01T00:00:00")
    assert tag.updated_at.tzinfo == timezone.utc


def test_updated_at_falls_back_to_created_at():
    tag = Tag.model_validate(
        {"id": "1", "name": "x", "updated_at": None, "created_at": "2024-01-01T00:00:00Z"}
    )
    assert tag.updated_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_huge_retention_window_skips_everything():
    cutoff = retention_cutoff(NOW, 1_000_000)

    assert cutoff == datetime.min.replace(tzinfo=timezone.utc)
    assert evaluate(make_tag("build-1", 20_000), cutoff, DEFAULT_PATTERN) == Verdict.SKIP
