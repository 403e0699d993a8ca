"""Tests for processor.py — batch scans, explicit selections and the upload hook."""

import math
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from alt_text_generator import AltTextGenerator
from audit_log import AuditLog
from csv_handler import CSVCatalog
from media_catalog import CatalogError, InMemoryCatalog, MediaAsset
from processor import (
    BatchCursor,
    BatchProcessor,
    BulkSelectionProcessor,
    UploadHandler,
    ValidationError,
)

from conftest import make_assets


def run_to_completion(processor, config, start=0):
    """Call run_batch the way a polling caller does, returning every result."""
    results = []
    cursor = BatchCursor(start)
    while True:
        result = processor.run_batch(cursor, config)
        results.append(result)
        if not result.has_more:
            return results
        cursor = result.next_cursor


class TestBatchCursor:
    @pytest.mark.parametrize('value', [-1, 1.5, True, 'abc', '-3', [1]])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValidationError):
            BatchCursor.parse(value)

    def test_parse(self):
        assert BatchCursor.parse(None).offset == 0
        assert BatchCursor.parse('').offset == 0
        assert BatchCursor.parse(' 10 ').offset == 10
        assert BatchCursor.parse(25).offset == 25


class TestRunBatch:
    def test_processes_window(self, catalog, audit_log, config):
        result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

        assert result.processed_count == 3
        assert result.skipped_count == 0
        assert result.fetched_count == 3
        assert result.next_offset == 5
        assert result.has_more is False
        assert catalog.get_asset(1).alt_text == 'Photo 1'
        assert len(audit_log.read_lines()) == 3
        assert 'scan: Asset 1 alt set to: Photo 1' in audit_log.read_lines()[0]

    def test_response_shape(self, catalog, audit_log, config):
        result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)
        assert result.to_response() == {
            'processed': 3, 'skipped': 0, 'count': 3, 'offset': 0, 'next_offset': 5, 'more': False, 'errors': 0,
        }

    @pytest.mark.parametrize('total, batch_size', [(12, 5), (7, 5), (3, 5), (23, 10)])
    def test_pagination_visits_every_asset_once(self, audit_log, make_config, total, batch_size):
        catalog = InMemoryCatalog(make_assets(total))
        config = make_config(batch_size=batch_size)

        results = run_to_completion(BatchProcessor(catalog, audit_log), config)

        assert len(results) == math.ceil(total / batch_size)
        assert sum(r.processed_count for r in results) == total
        assert all(a.alt_text == a.title for a in catalog.all_assets())
        logged_ids = [line.split('Asset ')[1].split(' ')[0] for line in audit_log.read_lines()]
        assert sorted(logged_ids, key=int) == [str(i) for i in range(1, total + 1)]

    def test_pagination_with_manual_alt_text(self, audit_log, make_config):
        assets = make_assets(13)
        assets[1] = MediaAsset(2, 'Photo 2', 'photo-2.jpg', 'image/jpeg', alt_text='Manual')
        assets[7] = MediaAsset(8, 'Photo 8', 'photo-8.jpg', 'image/jpeg', alt_text='Manual')
        catalog = InMemoryCatalog(assets)

        results = run_to_completion(BatchProcessor(catalog, audit_log), make_config(batch_size=5))

        assert len(results) == 3
        assert sum(r.processed_count for r in results) == 11
        assert catalog.get_asset(2).alt_text == 'Manual'
        assert catalog.get_asset(8).alt_text == 'Manual'
        assert all(a.has_alt_text for a in catalog.all_assets())

    def test_offset_and_more_invariants(self, audit_log, make_config):
        catalog = InMemoryCatalog(make_assets(17))
        config = make_config(batch_size=5)

        for result in run_to_completion(BatchProcessor(catalog, audit_log), config, start=0):
            assert result.next_offset == result.offset + config.batch_size
            assert result.has_more == (result.fetched_count == config.batch_size)

    def test_rerun_same_cursor_is_noop(self, catalog, audit_log, config):
        processor = BatchProcessor(catalog, audit_log)
        processor.run_batch(BatchCursor(0), config)

        again = processor.run_batch(BatchCursor(0), config)

        assert again.processed_count == 0
        assert again.skipped_count == again.fetched_count
        assert len(audit_log.read_lines()) == 3

    def test_disallowed_mime_never_fetched(self, audit_log, make_config):
        catalog = InMemoryCatalog([
            MediaAsset(1, 'Cat', 'cat.jpg', 'image/jpeg'),
            MediaAsset(2, 'Dog', 'dog.png', 'image/png'),
        ])
        config = make_config(allowed_mimes=['image/png'])

        result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

        assert result.fetched_count == 1
        assert catalog.get_asset(1).alt_text is None
        assert catalog.get_asset(2).alt_text == 'Dog'

    def test_no_usable_text_is_skipped(self, audit_log, config):
        catalog = InMemoryCatalog([MediaAsset(1, '', '12345.png', 'image/png')])

        result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

        assert (result.processed_count, result.skipped_count) == (0, 1)
        assert result.errors == []
        assert catalog.get_asset(1).alt_text is None
        assert audit_log.read_lines() == []

    def test_filename_mode(self, audit_log, make_config):
        catalog = InMemoryCatalog([MediaAsset(1, 'Ignored', 'IMG_2024_sunset-at-beach.jpg', 'image/jpeg')])
        BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), make_config(mode='filename_clean'))
        assert catalog.get_asset(1).alt_text == 'Img 2024 Sunset At Beach'

    def test_title_and_site_mode(self, catalog, audit_log, generator, make_config):
        BatchProcessor(catalog, audit_log, generator).run_batch(BatchCursor(0), make_config(mode='title_site'))
        assert catalog.get_asset(1).alt_text == 'Photo 1 - PhotoBlog'

    def test_alt_set_after_query_is_not_overwritten(self, audit_log, config):
        catalog = InMemoryCatalog([MediaAsset(1, 'Cat', 'cat.jpg', 'image/jpeg', alt_text='Set elsewhere')])
        stale = MediaAsset(1, 'Cat', 'cat.jpg', 'image/jpeg')

        with patch.object(catalog, 'query_missing_alt', return_value=[stale]):
            result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

        assert (result.processed_count, result.skipped_count) == (0, 1)
        assert catalog.get_asset(1).alt_text == 'Set elsewhere'

    def test_write_failure_is_isolated(self, catalog, audit_log, config):
        original = catalog.set_alt_text

        def flaky_write(asset_id, alt_text):
            if asset_id == 2:
                raise CatalogError('locked')
            original(asset_id, alt_text)

        with patch.object(catalog, 'set_alt_text', side_effect=flaky_write):
            result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

        assert (result.processed_count, result.skipped_count) == (2, 1)
        assert result.errors[0]['asset_id'] == 2
        assert 'locked' in result.errors[0]['error']
        assert catalog.get_asset(2).alt_text is None
        assert catalog.get_asset(3).alt_text == 'Photo 3'
        assert len(audit_log.read_lines()) == 2
        assert result.to_response()['errors'] == 1

    def test_query_failure_propagates(self, catalog, audit_log, config):
        with patch.object(catalog, 'query_missing_alt', side_effect=CatalogError('down')):
            with pytest.raises(CatalogError):
                BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

    def test_logging_disabled(self, catalog, audit_log, make_config):
        result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), make_config(enable_logging=False))
        assert result.processed_count == 3
        assert audit_log.read_lines() == []

    def test_audit_failure_does_not_fail_batch(self, catalog, tmp_path, config):
        blocker = tmp_path / 'blocker'
        blocker.write_text('')

        result = BatchProcessor(catalog, AuditLog(blocker)).run_batch(BatchCursor(0), config)

        assert result.processed_count == 3

    def test_progress_callback(self, catalog, audit_log, config):
        events = []
        processor = BatchProcessor(catalog, audit_log, progress_callback=lambda e, d: events.append((e, d)))

        processor.run_batch(BatchCursor(0), config)

        assert [e for e, _ in events] == ['asset_processed'] * 3 + ['batch_complete']
        assert events[-1][1]['processed'] == 3

    def test_new_run_only_visits_assets_still_missing_alt(self, audit_log, make_config):
        catalog = InMemoryCatalog(make_assets(10))
        config = make_config(batch_size=5)
        processor = BatchProcessor(catalog, audit_log)
        assert len(run_to_completion(processor, config)) == 3

        catalog.add_asset(MediaAsset(0, 'Photo 11', 'photo-11.jpg', 'image/jpeg'))
        results = run_to_completion(processor, config)

        assert len(results) == 1
        assert results[0].fetched_count == 1
        assert results[0].processed_count == 1
        assert results[0].has_more is False
        assert catalog.get_asset(11).alt_text == 'Photo 11'
        assert len(audit_log.read_lines()) == 11

    def test_resumed_run_keeps_windows_stable(self, audit_log, make_config):
        catalog = InMemoryCatalog(make_assets(10))
        config = make_config(batch_size=5)
        processor = BatchProcessor(catalog, audit_log)
        processor.run_batch(BatchCursor(0), config)

        results = run_to_completion(processor, config, start=5)

        assert sum(r.processed_count for r in results) == 5
        assert all(a.has_alt_text for a in catalog.all_assets())

    def test_csv_write_failure_does_not_reach_disk(self, tmp_path, audit_log, config):
        csv_path = tmp_path / 'catalog.csv'
        csv_path.write_text(
            "id,title,filename,mime_type,alt_text\n"
            "1,Photo 1,photo-1.jpg,image/jpeg,\n"
            "2,Photo 2,photo-2.jpg,image/jpeg,\n"
        )
        catalog = CSVCatalog(csv_path)
        original_to_csv = pd.DataFrame.to_csv

        def disk_rejects_asset_1(frame, *args, **kwargs):
            if (frame.loc[frame['id'] == 1, 'alt_text'] != '').any():
                raise OSError('disk full')
            return original_to_csv(frame, *args, **kwargs)

        with patch.object(pd.DataFrame, 'to_csv', autospec=True, side_effect=disk_rejects_asset_1):
            result = BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)

        assert (result.processed_count, result.skipped_count) == (1, 1)
        assert [e['asset_id'] for e in result.errors] == [1]
        reloaded = CSVCatalog(csv_path)
        assert reloaded.get_asset(1).alt_text is None
        assert reloaded.get_asset(2).alt_text == 'Photo 2'
        lines = audit_log.read_lines()
        assert len(lines) == 1
        assert 'Asset 2 alt set to: Photo 2' in lines[0]

    def test_clear_failure_at_start_propagates(self, catalog, audit_log, config):
        with patch.object(catalog, 'clear_generated_marks', side_effect=CatalogError('locked')):
            with pytest.raises(CatalogError):
                BatchProcessor(catalog, audit_log).run_batch(BatchCursor(0), config)
        assert catalog.get_asset(1).alt_text is None

    def test_later_windows_keep_generated_marks(self, catalog, audit_log, config):
        with patch.object(catalog, 'clear_generated_marks') as clear:
            BatchProcessor(catalog, audit_log).run_batch(BatchCursor(5), config)
        clear.assert_not_called()


class TestRunSelection:
    @pytest.fixture
    def selection_catalog(self):
        return InMemoryCatalog([
            MediaAsset(1, 'Cat', 'cat.jpg', 'image/jpeg'),
            MediaAsset(2, 'Dog', 'dog.jpg', 'image/jpeg', alt_text='Existing'),
            MediaAsset(3, 'Doc', 'doc.tiff', 'image/tiff'),
            MediaAsset(4, '', '12345.png', 'image/png'),
        ])

    def test_counts(self, selection_catalog, audit_log, config):
        result = BulkSelectionProcessor(selection_catalog, audit_log).run_selection([1, 2, 3, 4, 99], config)

        assert result.to_response() == {'processed': 1, 'skipped': 4}
        assert selection_catalog.get_asset(1).alt_text == 'Cat'
        assert selection_catalog.get_asset(2).alt_text == 'Existing'
        assert selection_catalog.get_asset(3).alt_text is None
        assert selection_catalog.get_asset(4).alt_text is None

    def test_logs_with_bulk_context(self, selection_catalog, audit_log, config):
        BulkSelectionProcessor(selection_catalog, audit_log).run_selection([1], config)
        assert audit_log.read_lines()[0].endswith('bulk: Asset 1 alt set to: Cat')

    def test_disallowed_mime_skipped_without_generation(self, selection_catalog, audit_log, config):
        generator = MagicMock(wraps=AltTextGenerator())
        processor = BulkSelectionProcessor(selection_catalog, audit_log, generator)

        result = processor.run_selection([3], config)

        assert result.skipped == 1
        generator.build_alt.assert_not_called()

    def test_string_ids_accepted(self, selection_catalog, audit_log, config):
        result = BulkSelectionProcessor(selection_catalog, audit_log).run_selection(['1'], config)
        assert result.processed == 1

    @pytest.mark.parametrize('selection', [None, '1,2', 5, [1, 'abc'], [True]])
    def test_malformed_selection_rejected_before_catalog_access(self, audit_log, config, selection):
        catalog = MagicMock()
        with pytest.raises(ValidationError):
            BulkSelectionProcessor(catalog, audit_log).run_selection(selection, config)
        catalog.get_asset.assert_not_called()

    def test_read_failure_is_isolated(self, selection_catalog, audit_log, config):
        original = selection_catalog.get_asset

        def flaky_read(asset_id):
            if asset_id == 2:
                raise CatalogError('timeout')
            return original(asset_id)

        with patch.object(selection_catalog, 'get_asset', side_effect=flaky_read):
            result = BulkSelectionProcessor(selection_catalog, audit_log).run_selection([2, 1], config)

        assert (result.processed, result.skipped) == (1, 1)
        assert result.errors[0]['asset_id'] == 2


class TestUploadHandler:
    def test_generates_when_enabled(self, audit_log, config):
        catalog = InMemoryCatalog([MediaAsset(1, 'Cat', 'cat.jpg', 'image/jpeg')])

        assert UploadHandler(catalog, audit_log).on_upload(1, config) is True
        assert catalog.get_asset(1).alt_text == 'Cat'
        assert audit_log.read_lines()[0].endswith('single: Asset 1 alt set to: Cat')

    def test_disabled(self, audit_log, make_config):
        catalog = InMemoryCatalog([MediaAsset(1, 'Cat', 'cat.jpg', 'image/jpeg')])

        assert UploadHandler(catalog, audit_log).on_upload(1, make_config(auto_generate_on_upload=False)) is False
        assert catalog.get_asset(1).alt_text is None

    def test_disallowed_mime(self, audit_log, config):
        catalog = InMemoryCatalog([MediaAsset(1, 'Cat', 'cat.bmp', 'image/bmp')])
        assert UploadHandler(catalog, audit_log).on_upload(1, config) is False
