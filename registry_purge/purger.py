import asyncio
import logging
from datetime import datetime

import httpx

from registry_purge.config import RetentionConfig, Settings
from registry_purge.gateway import GatewayError, RegistryGateway, ScalewayRegistry, build_headers
from registry_purge.models import Image, RunStatistics, Tag, Verdict
from registry_purge.pagination import drain_all
from registry_purge.policy import evaluate, retention_cutoff
from registry_purge.utils import log_summary, true_utcnow


class RunFatalError(Exception):
    pass


async def delete_tag(gateway: RegistryGateway, image: Image, tag: Tag, dry_run: bool) -> list[str]:
    if dry_run:
        logging.debug(f"[DRY RUN] Would delete tag: {image.name}:{tag.name} ({tag.id})")
        return []

    logging.info(f"Deleting tag: {image.name}:{tag.name} ({tag.id})")
    try:
        await gateway.delete_tag(tag.id)
    except GatewayError as err:
        error = f"Failed to delete tag {image.name}:{tag.name} ({tag.id}): {err}"
        logging.error(error)
        return [error]
    return []


async def list_tags(gateway: RegistryGateway, image: Image) -> list[Tag]:
    logging.info(f"Listing tags for image: {image.name}")

    async def fetch_page(page: int, page_size: int) -> list[Tag]:
        return await gateway.list_tags(image.id, page, page_size)

    tags = await drain_all(fetch_page)
    logging.info(f"Found {len(tags)} tags for image: {image.name}")
    return tags


async def list_images(gateway: RegistryGateway, namespace_id: str, namespace_name: str) -> list[Image]:
    logging.info(f"Listing images in namespace: {namespace_name}")

    async def fetch_page(page: int, page_size: int) -> list[Image]:
        return await gateway.list_images(namespace_id, page, page_size)

    images = await drain_all(fetch_page)
    logging.info(f"Found {len(images)} images in namespace: {namespace_name}")
    return images


async def purge_image(
    gateway: RegistryGateway,
    image: Image,
    cutoff: datetime,
    retention: RetentionConfig,
    stats: RunStatistics,
) -> None:
    try:
        tags = await list_tags(gateway, image)
    except GatewayError as err:
        error = f"Failed to list tags for image {image.name} ({image.id}): {err}"
        logging.error(error)
        stats.errors.append(error)
        stats.error_images += 1
        return

    stats.tags_count += len(tags)
    for tag in tags:
        verdict = evaluate(tag, cutoff, retention.preserve_pattern)
        if verdict == Verdict.SKIP:
            stats.skipped_tags += 1
        elif verdict == Verdict.PRESERVE:
            stats.preserved_tags += 1
        else:
            errors = await delete_tag(gateway, image, tag, retention.dry_run)
            if errors:
                stats.errors.extend(errors)
                stats.error_tags += 1
            else:
                stats.deleted_tags += 1


async def purge_namespace(
    gateway: RegistryGateway,
    namespace_name: str,
    retention: RetentionConfig,
    now: datetime | None = None,
) -> RunStatistics:
    """Purge one namespace, one image and one tag at a time.

    Namespace lookup and image listing failures abort the run with
    RunFatalError. Tag listing and deletion failures are counted and the
    run moves on.
    """
    started_at = true_utcnow()
    cutoff = retention_cutoff(now or started_at, retention.retention_days)
    logging.info(f"Purging images older than: {cutoff.isoformat()}")

    try:
        namespace = await gateway.find_namespace(namespace_name)
    except GatewayError as err:
        raise RunFatalError(f"Failed to get registry namespace {namespace_name}: {err}") from err
    if namespace is None:
        raise RunFatalError(f"Namespace not found: {namespace_name}")

    try:
        images = await list_images(gateway, namespace.id, namespace.name)
    except GatewayError as err:
        raise RunFatalError(f"Failed to get images from namespace {namespace.name}: {err}") from err

    stats = RunStatistics(
        namespace=namespace.name,
        dry_run=retention.dry_run,
        retention_days=retention.retention_days,
        cutoff=cutoff,
        started_at=started_at,
        images_count=len(images),
    )
    for image in images:
        await purge_image(gateway, image, cutoff, retention, stats)

    stats.finished_at = true_utcnow()
    log_summary(stats)
    return stats


async def handle(
    settings: Settings,
    deadline: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RunStatistics:
    async with httpx.AsyncClient(
        transport=transport,
        headers=build_headers(settings),
        timeout=settings.timeout,
        follow_redirects=True,
        trust_env=False,
    ) as session:
        gateway = ScalewayRegistry(session, settings)
        async with asyncio.timeout(deadline):
            return await purge_namespace(gateway, settings.namespace, settings.retention)
