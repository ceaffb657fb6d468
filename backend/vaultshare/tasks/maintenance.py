import asyncio
import logging
from datetime import datetime

from sqlalchemy import and_, select

from vaultshare.core.config import settings
from vaultshare.core.database import SessionLocal
from vaultshare.models.share_link import LINK_STATUS_ACTIVE, LINK_STATUS_EXPIRED, SecureLink
from vaultshare.monitoring.setup import report_maintenance
from vaultshare.services.access_gate import gate_sessions
from vaultshare.services.url_cache import url_cache

logger = logging.getLogger(__name__)

INTERVAL_SECS = settings.MAINTENANCE_INTERVAL_SECONDS
MAX_PER_LOOP = settings.MAINTENANCE_MAX_RECORDS_PER_LOOP

EXPIRED_LINKS = 0
SWEPT_URLS = 0

async def expire_links(db, now: datetime, limit: int = MAX_PER_LOOP) -> int:
    res = await db.execute(
        select(SecureLink).where(
            and_(
                SecureLink.status == LINK_STATUS_ACTIVE,
                SecureLink.expires_at != None,  # noqa: E711
                SecureLink.expires_at < now,
            )
        ).limit(limit)
    )
    links = res.scalars().all()
    for link in links:
        link.status = LINK_STATUS_EXPIRED
    if links:
        await db.commit()
    return len(links)

async def run_maintenance_pass(session_factory=SessionLocal, cache=url_cache, sessions=gate_sessions) -> dict:
    """One pass: mark overdue links expired, drop stale signed URLs and idle gate sessions."""
    global EXPIRED_LINKS, SWEPT_URLS
    started = datetime.utcnow()

    async with session_factory() as db:
        links_expired = await expire_links(db, datetime.utcnow())
    urls_swept = cache.sweep()
    sessions_swept = sessions.sweep()

    EXPIRED_LINKS += links_expired
    SWEPT_URLS += urls_swept

    duration = (datetime.utcnow() - started).total_seconds()
    report_maintenance(links_expired, urls_swept, duration)
    logger.info("maintenance_summary links_expired=%s urls_swept=%s sessions_swept=%s duration=%.3fs total_links=%s total_urls=%s",
                links_expired, urls_swept, sessions_swept, duration, EXPIRED_LINKS, SWEPT_URLS)
    return {"links_expired": links_expired, "urls_swept": urls_swept, "sessions_swept": sessions_swept}

async def maintenance_loop():
    logger.info("Maintenance task started: interval=%s max_per_loop=%s", INTERVAL_SECS, MAX_PER_LOOP)

    while True:
        try:
            await run_maintenance_pass()
            await asyncio.sleep(INTERVAL_SECS)
        except asyncio.CancelledError:
            logger.info("Maintenance task cancelled by shutdown")
            raise
        except Exception as e:
            logger.exception("Maintenance loop error: %s", e)
            await asyncio.sleep(min(60, INTERVAL_SECS))

async def start_maintenance_task():
    return await maintenance_loop()
