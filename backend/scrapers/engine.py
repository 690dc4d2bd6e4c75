"""
Scraping Engine - Single entry point for privacy-settings scans.

Responsibilities:
1. Validate the scan request and resolve platform + scraper
2. Race the scraper against the per-method timeout
3. Fall back to the remote crawler when the scraper cannot serve the request
4. Compress the extraction against a template, diff it against the user's
   previous snapshot and persist the new snapshot

Every path returns a ScrapingResult; exceptions never cross the public API.

Error codes:
- validation, platform_not_found, scraper_not_available,
  fallback_unavailable: caller must change the request (not retryable)
- scraping_error, fallback_error, unknown: transient (retryable)

Concurrency:
- Each scrape runs on its own daemon thread. A scrape that loses the
  timeout race is abandoned, not cancelled, and holds no shared slot, so
  hung scrapers never delay later ones. Scrapers never touch the session.
- "read previous snapshot -> diff -> insert" is serialized per
  (user_id, platform_id) within the process.
"""
import logging
import threading
import uuid
from concurrent.futures import Future, TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy import func

from constants import (
    SCRAPING_TIMEOUTS,
    SCRAPING_METHOD_FIRECRAWL,
    SCAN_STATUS_COMPLETED,
    get_scraping_timeout,
)
from models.privacy_snapshot import PrivacySnapshot
from services.platform_registry import PlatformConfig, PlatformRegistry
from services.template_system import TemplateSystem
from .base import (
    BaseScraper,
    ExtractedPrivacyData,
    ScrapingContext,
    ScrapingMetadata,
    ScrapingResult,
    elapsed_ms,
)
from .utils.diff import detect_settings_changes, summarize_changes

logger = logging.getLogger(__name__)


class ScrapingEngine:
    """
    Orchestrates scrapers, the remote-crawler fallback and template storage.

    Example:
        engine = ScrapingEngine(db.session, firecrawl_client=client)
        register_platform_scrapers(engine)
        result = engine.scrape_privacy_settings({'userId': 'u1', 'platformId': pid})
    """

    def __init__(
        self,
        session,
        registry: Optional[PlatformRegistry] = None,
        template_system: Optional[TemplateSystem] = None,
        firecrawl_client=None,
        timeouts: Optional[Dict[str, float]] = None,
    ):
        """
        Args:
            session: SQLAlchemy session (db.session inside the app)
            registry: Platform lookup; built on the session if omitted
            template_system: Template storage; built on the session if omitted
            firecrawl_client: Remote crawler used as fallback, or None
            timeouts: Seconds per method, same shape as SCRAPING_TIMEOUTS
        """
        self.session = session
        self.registry = registry or PlatformRegistry(session)
        self.template_system = template_system or TemplateSystem(session)
        self.firecrawl_client = firecrawl_client
        self.timeouts = dict(timeouts or SCRAPING_TIMEOUTS)

        self._scrapers: Dict[str, BaseScraper] = {}
        self._snapshot_locks: Dict[Tuple[str, str], _KeyedLock] = {}
        self._snapshot_locks_guard = threading.Lock()

    # =========================================================================
    # Scraper registry
    # =========================================================================

    def register_scraper(self, platform_slug: str, scraper: BaseScraper) -> None:
        self._scrapers[platform_slug] = scraper
        logger.info(f"Registered scraper: {platform_slug} ({type(scraper).__name__})")

    def get_available_scrapers(self) -> List[str]:
        return list(self._scrapers.keys())

    # =========================================================================
    # Entry points
    # =========================================================================

    def scrape_privacy_settings(self, context: Union[ScrapingContext, Dict[str, Any]]) -> ScrapingResult:
        """
        Scan one user's settings on one platform.

        Args:
            context: ScrapingContext, or a dict accepted by ScrapingContext

        Returns:
            ScrapingResult (never raises)
        """
        start_time = datetime.utcnow()
        scan_id = str(uuid.uuid4())

        try:
            context = self._validate_context(context)
        except ValidationError as e:
            return self._error_result(
                'Invalid scraping context', 'validation', start_time,
                retryable=False, details={'validationErrors': _validation_details(e)},
            )

        try:
            platform = self.registry.get_platform_config(context.platform_id)
            if platform is None:
                return self._error_result(
                    f"Platform {context.platform_id} not found", 'platform_not_found', start_time,
                    method=context.method, retryable=False,
                )

            scraper = self._scrapers.get(platform.slug)
            if scraper is None:
                return self._error_result(
                    f"No scraper available for platform {platform.slug}", 'scraper_not_available', start_time,
                    method=context.method, retryable=False,
                )

            if not scraper.can_scrape(context):
                logger.info(f"Scraper for {platform.slug} cannot serve {context.method} scan, using fallback")
                return self._fallback_scrape(context, platform, start_time)

            result = self._execute_scraping(scraper, context, scan_id, start_time)

            if result.success and result.data is not None:
                self._process_scraping_result(context, platform, result)

            return result

        except Exception as e:
            logger.exception(f"Unexpected error scraping platform {context.platform_id} for user {context.user_id}")
            self._rollback()
            return self._error_result(
                str(e) or 'Unknown error occurred', 'unknown', start_time,
                method=context.method, retryable=True, details={'exception': type(e).__name__},
            )

    def ingest_extension_result(
        self,
        context: Union[ScrapingContext, Dict[str, Any]],
        extracted_settings: Dict[str, Dict[str, Any]],
        metadata: Optional[ScrapingMetadata] = None,
        raw: Optional[Dict[str, Any]] = None,
    ) -> ScrapingResult:
        """
        Store settings the browser extension already extracted.

        Runs the same validation and post-processing as a server-side scan,
        without invoking a scraper.
        """
        start_time = datetime.utcnow()

        try:
            context = self._validate_context(context)
        except ValidationError as e:
            return self._error_result(
                'Invalid scraping context', 'validation', start_time,
                retryable=False, details={'validationErrors': _validation_details(e)},
            )

        try:
            platform = self.registry.get_platform_config(context.platform_id)
            if platform is None:
                return self._error_result(
                    f"Platform {context.platform_id} not found", 'platform_not_found', start_time,
                    method=context.method, retryable=False,
                )

            result = ScrapingResult(
                success=True,
                data=ExtractedPrivacyData(
                    platform_id=context.platform_id,
                    extracted_settings=extracted_settings,
                    raw=raw,
                ),
                metadata=metadata or ScrapingMetadata.started(
                    context.method, start_time, user_agent=context.user_agent,
                ),
            )
            self._process_scraping_result(context, platform, result)
            return result

        except Exception as e:
            logger.exception(f"Failed to ingest extension result for platform {context.platform_id}")
            self._rollback()
            return self._error_result(
                str(e) or 'Unknown error occurred', 'unknown', start_time,
                method=context.method, retryable=True, details={'exception': type(e).__name__},
            )

    # =========================================================================
    # Scraping
    # =========================================================================

    def _execute_scraping(
        self,
        scraper: BaseScraper,
        context: ScrapingContext,
        scan_id: str,
        start_time: datetime,
    ) -> ScrapingResult:
        """Race scraper.scrape against the method's timeout and stamp metadata."""
        timeout = get_scraping_timeout(context.method, self.timeouts)

        try:
            result = self._run_with_timeout(scraper.scrape, context, timeout)
        except FuturesTimeoutError:
            duration = elapsed_ms(start_time, datetime.utcnow())
            logger.warning(
                f"Scraper {scraper.platform} timed out after {timeout}s "
                f"(user {context.user_id}, scan {scan_id})"
            )
            return self._error_result(
                f"Scraping timeout after {timeout}s", 'scraping_error', start_time,
                method=context.method, scan_id=scan_id, type='timeout', retryable=True,
                details={'duration': duration, 'timeout': timeout},
            )
        except Exception as e:
            logger.warning(f"Scraper {scraper.platform} failed: {e}")
            return self._error_result(
                str(e) or 'Scraping failed', 'scraping_error', start_time,
                method=context.method, scan_id=scan_id, retryable=True,
                details={'exception': type(e).__name__},
            )

        if not isinstance(result, ScrapingResult):
            return self._error_result(
                'Scraper returned no result', 'scraping_error', start_time,
                method=context.method, scan_id=scan_id, type='parsing', retryable=True,
            )

        end_time = datetime.utcnow()
        result.metadata.scan_id = scan_id
        result.metadata.start_time = start_time
        result.metadata.end_time = end_time
        result.metadata.duration = elapsed_ms(start_time, end_time)
        result.metadata.method = context.method
        if result.metadata.user_agent is None:
            result.metadata.user_agent = context.user_agent

        return result

    def _run_with_timeout(self, fn: Callable, context: ScrapingContext, timeout: float):
        """
        Run fn(context) on a fresh daemon thread; first of (result, timeout) wins.

        The thread is not joined. A scrape that loses the race finishes (or
        hangs) on its own and its result is dropped.
        """
        future: Future = Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(context))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(
            target=run,
            name=f"scraper-{context.platform_id[:8]}-{context.user_id[:16]}",
            daemon=True,
        ).start()
        return future.result(timeout=timeout)

    def _fallback_scrape(
        self,
        context: ScrapingContext,
        platform: PlatformConfig,
        start_time: datetime,
    ) -> ScrapingResult:
        """Fetch the platform's privacy page through the remote crawler."""
        if self.firecrawl_client is None:
            return self._error_result(
                'Firecrawl API key not configured for fallback scraping', 'fallback_unavailable', start_time,
                method=context.method, retryable=False,
            )

        fallback_context = context.model_copy(update={'method': SCRAPING_METHOD_FIRECRAWL})
        target_url = platform.primary_url
        timeout = get_scraping_timeout(SCRAPING_METHOD_FIRECRAWL, self.timeouts)

        try:
            result = self._run_with_timeout(
                lambda ctx: self.firecrawl_client.scrape_privacy_page(target_url, ctx),
                fallback_context,
                timeout,
            )
        except FuturesTimeoutError:
            logger.warning(f"Firecrawl fallback for {platform.slug} timed out after {timeout}s")
            return self._error_result(
                f"Firecrawl fallback timeout after {timeout}s", 'fallback_error', start_time,
                method=SCRAPING_METHOD_FIRECRAWL, type='timeout', retryable=True,
                details={'url': target_url, 'timeout': timeout},
            )
        except Exception as e:
            logger.warning(f"Firecrawl fallback for {platform.slug} failed: {e}")
            return self._error_result(
                str(e) or 'Firecrawl fallback failed', 'fallback_error', start_time,
                method=SCRAPING_METHOD_FIRECRAWL, type='network', retryable=True,
                details={'url': target_url, 'exception': type(e).__name__},
            )

        if not result.success or result.data is None:
            cause = result.error.to_dict() if result.error else None
            logger.warning(f"Firecrawl fallback for {platform.slug} returned failure: {cause}")
            return self._error_result(
                (result.error.message if result.error else None) or 'Firecrawl fallback failed',
                'fallback_error', start_time,
                method=SCRAPING_METHOD_FIRECRAWL, scan_id=result.metadata.scan_id,
                type=result.error.type if result.error else 'network', retryable=True,
                details={'url': target_url, 'cause': cause},
            )

        try:
            self._process_scraping_result(fallback_context, platform, result)
        except Exception as e:
            logger.exception(f"Storing Firecrawl fallback result for {platform.slug} failed")
            self._rollback()
            return self._error_result(
                str(e) or 'Firecrawl fallback failed', 'fallback_error', start_time,
                method=SCRAPING_METHOD_FIRECRAWL, scan_id=result.metadata.scan_id, retryable=True,
                details={'url': target_url, 'exception': type(e).__name__},
            )

        logger.info(
            f"Firecrawl fallback stored {result.metadata.elements_found} settings "
            f"for {platform.slug} (user {context.user_id})"
        )
        return result

    # =========================================================================
    # Post-processing
    # =========================================================================

    @contextmanager
    def _snapshot_lock(self, user_id: str, platform_id: str):
        # Entries live only while someone holds or waits for them
        key = (user_id, platform_id)
        with self._snapshot_locks_guard:
            entry = self._snapshot_locks.get(key)
            if entry is None:
                entry = self._snapshot_locks[key] = _KeyedLock()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._snapshot_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._snapshot_locks[key]

    def _process_scraping_result(
        self,
        context: ScrapingContext,
        platform: PlatformConfig,
        result: ScrapingResult,
    ) -> PrivacySnapshot:
        """
        Compress, diff and persist a successful scan.

        Any failure rolls the transaction back and stores the raw extraction
        uncompressed instead. Failure of that fallback propagates.
        """
        with self._snapshot_lock(context.user_id, context.platform_id):
            try:
                return self._store_compressed_result(context, platform, result)
            except Exception as e:
                logger.warning(
                    f"Template processing failed for platform {platform.slug} "
                    f"(scan {result.metadata.scan_id}): {e}. Storing raw result"
                )
                self._rollback()
                return self._store_raw_result(context, platform, result)

    def _store_compressed_result(
        self,
        context: ScrapingContext,
        platform: PlatformConfig,
        result: ScrapingResult,
    ) -> PrivacySnapshot:
        extracted = result.data.extracted_settings
        templates = self.template_system

        template = templates.find_matching_template(context.platform_id, extracted)
        if template is None:
            template = templates.create_new_template(
                context.platform_id, extracted, label=platform.name, commit=False,
            )

        compressed = templates.compress_user_settings(template, extracted)
        stats = templates.calculate_compression_stats(template, extracted)
        logger.info(
            f"Compressed scan {result.metadata.scan_id} for {platform.slug}: "
            f"{stats.original_size}B -> {stats.compressed_size}B "
            f"(ratio {stats.compression_ratio:.2f}, saved {stats.savings}B)"
        )

        previous = self._get_previous_snapshot(context.user_id, context.platform_id)
        changes = detect_settings_changes(previous.user_settings, compressed) if previous else {}

        snapshot = self._build_snapshot(context, result, template.id, compressed, changes, is_compressed=True)
        self.session.add(snapshot)
        templates.increment_usage(template.id, commit=False)
        self.session.commit()

        result.data.template_match = {
            'templateId': template.id,
            'templateVersion': template.version,
            'confidence': templates.calculate_template_match(template, extracted),
        }

        if changes:
            summary = summarize_changes(changes)
            logger.info(
                f"Snapshot {snapshot.id} for user {context.user_id} on {platform.slug}: "
                f"{summary['total']} setting(s) changed"
            )
        return snapshot

    def _store_raw_result(
        self,
        context: ScrapingContext,
        platform: PlatformConfig,
        result: ScrapingResult,
    ) -> PrivacySnapshot:
        """Persist the extraction as-is under a template built from it."""
        extracted = result.data.extracted_settings
        template = self.template_system.create_new_template(
            context.platform_id, extracted, label=platform.name, commit=False,
        )
        snapshot = self._build_snapshot(context, result, template.id, extracted, {}, is_compressed=False)
        self.session.add(snapshot)
        self.session.commit()

        logger.warning(f"Stored uncompressed snapshot {snapshot.id} for {platform.slug}")
        return snapshot

    def _build_snapshot(
        self,
        context: ScrapingContext,
        result: ScrapingResult,
        template_id: str,
        user_settings: Dict[str, Any],
        changes: Dict[str, Any],
        is_compressed: bool,
    ) -> PrivacySnapshot:
        metadata = result.metadata
        return PrivacySnapshot(
            user_id=context.user_id,
            platform_id=context.platform_id,
            template_id=template_id,
            user_settings=user_settings,
            is_compressed=is_compressed,
            scan_id=metadata.scan_id,
            scan_method=context.method,
            changes_since_previous=changes,
            has_changes=bool(changes),
            scan_status=SCAN_STATUS_COMPLETED,
            scan_duration_ms=metadata.duration,
            completion_rate=metadata.completion_rate,
            confidence_score=metadata.confidence_score,
            scanned_at=datetime.utcnow(),
        )

    def _get_previous_snapshot(self, user_id: str, platform_id: str) -> Optional[PrivacySnapshot]:
        return (
            self.session.query(PrivacySnapshot)
            .filter_by(user_id=user_id, platform_id=platform_id)
            .order_by(PrivacySnapshot.scanned_at.desc())
            .first()
        )

    # =========================================================================
    # Stats
    # =========================================================================

    def get_scraping_stats(self, platform_id: Optional[str] = None) -> Dict[str, Any]:
        """Snapshot counts and success rate (percent, 2 decimals). Read-only."""
        query = self.session.query(func.count(PrivacySnapshot.id))
        if platform_id:
            query = query.filter(PrivacySnapshot.platform_id == platform_id)

        total = query.scalar() or 0
        successful = query.filter(PrivacySnapshot.scan_status == SCAN_STATUS_COMPLETED).scalar() or 0
        success_rate = (successful / total) * 100 if total > 0 else 0.0

        return {
            'total_scans': total,
            'successful_scans': successful,
            'success_rate': round(success_rate, 2),
            'platforms': self.get_available_scrapers(),
            'compression_enabled': True,
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _validate_context(context: Union[ScrapingContext, Dict[str, Any]]) -> ScrapingContext:
        if isinstance(context, ScrapingContext):
            return context
        return ScrapingContext.model_validate(context)

    def _rollback(self) -> None:
        try:
            self.session.rollback()
        except Exception as e:
            logger.error(f"Session rollback failed: {e}")

    @staticmethod
    def _error_result(
        message: str,
        code: str,
        start_time: datetime,
        method: str = 'extension',
        scan_id: Optional[str] = None,
        type: str = 'unknown',
        retryable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> ScrapingResult:
        return ScrapingResult.failure(
            code,
            message,
            ScrapingMetadata.started(method, start_time, scan_id=scan_id),
            type=type,
            retryable=retryable,
            details=details,
        )


class _KeyedLock:
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


def _validation_details(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {'loc': [str(part) for part in err.get('loc', ())], 'msg': err.get('msg'), 'type': err.get('type')}
        for err in error.errors()
    ]
