import logging
import re
from datetime import datetime, timedelta, timezone

from registry_purge.models import Tag, Verdict


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    try:
        return now - timedelta(days=retention_days)
    except OverflowError:
        # window reaches past the earliest representable date, nothing is old enough
        return datetime.min.replace(tzinfo=timezone.utc)


def evaluate(tag: Tag, cutoff: datetime, preserve_pattern: re.Pattern) -> Verdict:
    """Decide what happens to a tag.

    Tags updated at or after the cutoff are inside the retention window and
    are skipped without looking at their name. Older tags are preserved when
    their whole name matches the pattern and deleted otherwise.
    """
    if tag.updated_at >= cutoff:
        logging.debug(
            f"Tag {tag.name} updated at {tag.updated_at.isoformat()} is newer "
            f"than retention date {cutoff.isoformat()}. Skipping"
        )
        return Verdict.SKIP

    if preserve_pattern.fullmatch(tag.name):
        logging.debug(f"Tag {tag.name} matches protection pattern. Preserving")
        return Verdict.PRESERVE

    logging.debug(f"Tag {tag.name} doesn't match protection pattern")
    return Verdict.DELETE
