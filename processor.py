"""
Core processing module for alt text generation.

Two entry points share the same per-asset logic:

- BatchProcessor.run_batch walks the catalog one window at a time. It keeps
  no state between calls; the caller passes the cursor back in until the
  result says there is nothing more.
- BulkSelectionProcessor.run_selection handles an explicit list of asset ids
  in a single call.

Assets that already have alt text are never overwritten, so re-running a
window is a no-op for anything written the first time.
A call at offset 0 starts a new run: the catalog forgets which alt text
earlier runs generated, so only assets still missing alt text are windowed.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable, List, Sequence

from alt_text_generator import AltTextGenerator
from audit_log import AuditLog, LogEntry
from config_handler import Config
from media_catalog import CatalogError, MediaAsset, MediaCatalog

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Dict[str, Any]], None]

CONTEXT_SCAN = 'scan'
CONTEXT_BULK = 'bulk'
CONTEXT_SINGLE = 'single'


class ValidationError(ValueError):
    """Raised for a malformed cursor or selection, before any catalog access."""
    pass


def _as_asset_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid asset id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"Invalid asset id: {value!r}")


@dataclass(frozen=True)
class BatchCursor:
    """Position of the next window in a multi-call run."""
    offset: int = 0

    def __post_init__(self):
        if isinstance(self.offset, bool) or not isinstance(self.offset, int):
            raise ValidationError(f"Offset must be an integer, got {self.offset!r}")
        if self.offset < 0:
            raise ValidationError(f"Offset must be non-negative, got {self.offset}")

    @classmethod
    def parse(cls, value: Any) -> 'BatchCursor':
        """Build a cursor from request input (None means the start)."""
        if value is None or value == '':
            return cls(0)
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                raise ValidationError(f"Invalid offset: {value!r}")
            return cls(int(value))
        return cls(value)


@dataclass
class BatchResult:
    """Counts for one run_batch call."""
    processed_count: int
    skipped_count: int
    fetched_count: int
    offset: int
    next_offset: int
    has_more: bool
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def next_cursor(self) -> BatchCursor:
        return BatchCursor(self.next_offset)

    def to_response(self) -> Dict[str, Any]:
        """Shape the result as the batch endpoint response body."""
        return {
            'processed': self.processed_count,
            'skipped': self.skipped_count,
            'count': self.fetched_count,
            'offset': self.offset,
            'next_offset': self.next_offset,
            'more': self.has_more,
            'errors': len(self.errors),
        }


@dataclass
class SelectionResult:
    """Counts for one run_selection call."""
    processed: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {'processed': self.processed, 'skipped': self.skipped}


class AssetProcessor:
    """Generates, writes and logs alt text for single assets."""

    def __init__(
        self,
        catalog: MediaCatalog,
        audit_log: AuditLog,
        generator: Optional[AltTextGenerator] = None,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """
        Initialize the processor.

        Args:
            catalog: Where assets are read and written
            audit_log: Where applied changes are recorded
            generator: Alt text generator (carries the site name)
            progress_callback: Optional callback for progress updates.
                              Called with (event_type, data) where event_type is:
                              - 'asset_processed': data={'asset_id', 'alt_text', 'context'}
                              - 'asset_skipped': data={'asset_id', 'reason'}
                              - 'asset_failed': data={'asset_id', 'error'}
                              - 'batch_complete': data=result.to_response()
        """
        self.catalog = catalog
        self.audit_log = audit_log
        self.generator = generator or AltTextGenerator()
        self.progress_callback = progress_callback

    def _notify(self, event_type: str, data: Dict[str, Any]):
        if self.progress_callback:
            self.progress_callback(event_type, data)

    def _skip(self, asset_id: int, reason: str) -> bool:
        self._notify('asset_skipped', {'asset_id': asset_id, 'reason': reason})
        return False

    def process_asset(self, asset: MediaAsset, config: Config, context: str,
                      errors: List[Dict[str, Any]]) -> bool:
        """
        Generate and store alt text for one asset.

        Errors reading or writing the asset are recorded in `errors` and
        count as a skip; they never propagate.

        Args:
            asset: The asset as fetched or looked up
            config: Active settings
            context: Log context tag ('scan', 'bulk' or 'single')
            errors: List collecting {'asset_id', 'error'} entries

        Returns:
            True if alt text was written
        """
        try:
            # Someone else may have set it since the asset was fetched
            current = self.catalog.get_asset(asset.id)
        except CatalogError as e:
            return self._fail(asset.id, f"Read error: {e}", errors)

        if current is None:
            return self._skip(asset.id, 'not found')
        if current.has_alt_text:
            return self._skip(asset.id, 'has alt text')

        alt_text = self.generator.build_alt(current.title, current.filename, config.mode)
        if not alt_text:
            return self._skip(asset.id, 'no usable text')

        try:
            self.catalog.set_alt_text(current.id, alt_text)
        except CatalogError as e:
            return self._fail(asset.id, f"Write error: {e}", errors)

        self.audit_log.append(LogEntry(current.id, alt_text, context), config.enable_logging)
        self._notify('asset_processed', {'asset_id': current.id, 'alt_text': alt_text, 'context': context})
        return True

    def _fail(self, asset_id: int, error: str, errors: List[Dict[str, Any]]) -> bool:
        logger.warning("Asset %s skipped: %s", asset_id, error)
        errors.append({'asset_id': asset_id, 'error': error})
        self._notify('asset_failed', {'asset_id': asset_id, 'error': error})
        return False


class BatchProcessor(AssetProcessor):
    """Processes the catalog one window of eligible assets per call."""

    def run_batch(self, cursor: BatchCursor, config: Config) -> BatchResult:
        """
        Process one window of assets missing alt text.

        Args:
            cursor: Where this window starts
            config: Active settings (batch_size is already clamped)

        Returns:
            BatchResult; has_more is True when a full window was fetched

        Raises:
            CatalogError: If the window query (or, at offset 0, resetting
                          the generated marks) fails; nothing is processed
        """
        batch_size = config.batch_size
        if cursor.offset == 0:
            # A new run; alt text from earlier runs no longer holds windows open
            self.catalog.clear_generated_marks()
        assets = self.catalog.query_missing_alt(config.allowed_mimes, cursor.offset, batch_size)

        processed = 0
        skipped = 0
        errors: List[Dict[str, Any]] = []

        for asset in assets:
            if self.process_asset(asset, config, CONTEXT_SCAN, errors):
                processed += 1
            else:
                skipped += 1

        result = BatchResult(
            processed_count=processed,
            skipped_count=skipped,
            fetched_count=len(assets),
            offset=cursor.offset,
            next_offset=cursor.offset + batch_size,
            has_more=len(assets) == batch_size,
            errors=errors
        )

        logger.debug("Batch at offset %d: %d fetched, %d processed, %d skipped",
                     cursor.offset, result.fetched_count, processed, skipped)
        self._notify('batch_complete', result.to_response())
        return result


class BulkSelectionProcessor(AssetProcessor):
    """Processes an explicit list of asset ids in one call."""

    def run_selection(self, asset_ids: Sequence[Any], config: Config) -> SelectionResult:
        """
        Generate alt text for the selected assets.

        Assets with a disallowed MIME type or existing alt text are skipped
        without generating anything.

        Args:
            asset_ids: Selected asset ids, in the order given
            config: Active settings

        Returns:
            SelectionResult with processed/skipped counts

        Raises:
            ValidationError: If the selection is not a list of integer ids
        """
        if isinstance(asset_ids, (str, bytes)) or not isinstance(asset_ids, (list, tuple)):
            raise ValidationError("Selection must be a list of asset ids")
        ids = [_as_asset_id(value) for value in asset_ids]

        result = SelectionResult()

        for asset_id in ids:
            try:
                asset = self.catalog.get_asset(asset_id)
            except CatalogError as e:
                self._fail(asset_id, f"Read error: {e}", result.errors)
                result.skipped += 1
                continue

            if asset is None:
                self._skip(asset_id, 'not found')
                result.skipped += 1
                continue

            if asset.mime_type not in config.allowed_mimes:
                self._skip(asset_id, f"mime type not allowed: {asset.mime_type}")
                result.skipped += 1
                continue

            if self.process_asset(asset, config, CONTEXT_BULK, result.errors):
                result.processed += 1
            else:
                result.skipped += 1

        return result


class UploadHandler(AssetProcessor):
    """Generates alt text for newly added assets when enabled."""

    def on_upload(self, asset_id: int, config: Config) -> bool:
        """
        Handle a newly added asset.

        Returns:
            True if alt text was written
        """
        if not config.auto_generate_on_upload:
            return False

        asset = self.catalog.get_asset(asset_id)
        if asset is None or asset.mime_type not in config.allowed_mimes:
            return False

        return self.process_asset(asset, config, CONTEXT_SINGLE, [])
