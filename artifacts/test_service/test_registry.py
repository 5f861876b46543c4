"""
Tests for service/registry.py
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase

from artifacts.service.errors import StorageIOError
from artifacts.service.registry import ArtifactRecord, ArtifactRegistry
from artifacts.service.store import ArtifactStore

URL = 'https://www.youtube.com/watch?v=abc123'


class FakeClock:
    """Manually advanced clock"""

    def __init__(self):
        self.current = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class ArtifactRegistryTest(TestCase):
    """Tests for the in-memory registry"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = ArtifactStore(Path(self.temp_dir.name))
        self.store.ensure()
        self.clock = FakeClock()
        self.registry = ArtifactRegistry(self.store, ttl=timedelta(minutes=30), clock=self.clock)

    def tearDown(self):
        self.temp_dir.cleanup()

    def _write(self, filename, content=b'data'):
        (self.store.root / filename).write_bytes(content)
        return filename

    def test_rejects_non_positive_ttl(self):
        """Test that a zero TTL is refused"""
        with self.assertRaises(ValueError):
            ArtifactRegistry(self.store, ttl=timedelta(0))

    def test_register_sets_lifetime_and_size(self):
        """Test that register stats the file and applies the TTL"""
        self._write('a.mp3', b'x' * 1234)
        record = self.registry.register('a.mp3', URL)

        self.assertEqual(record.size_bytes, 1234)
        self.assertEqual(record.created_at, self.clock.current)
        self.assertEqual(record.expires_at - record.created_at, timedelta(minutes=30))
        self.assertEqual(record.media_type, 'audio')
        self.assertEqual(len(self.registry), 1)

    def test_register_missing_file_raises(self):
        """Test that registering a file that is not in the store fails"""
        with self.assertRaises(StorageIOError):
            self.registry.register('missing.mp3', URL)
        self.assertEqual(len(self.registry), 0)

    def test_lookup_returns_live_record(self):
        """Test a plain cache hit"""
        self._write('a.mp3')
        record = self.registry.register('a.mp3', URL)
        self.assertEqual(self.registry.lookup(URL), record)

    def test_lookup_skips_expired(self):
        """Test that an expired record is never returned"""
        self._write('a.mp3')
        self.registry.register('a.mp3', URL)
        self.clock.advance(minutes=30)
        self.assertIsNone(self.registry.lookup(URL))

    def test_lookup_filters_media_type(self):
        """Test that audio and video artifacts of one URL are separate"""
        self._write('a.mp3')
        self.registry.register('a.mp3', URL)
        self.assertIsNone(self.registry.lookup(URL, 'video'))
        self.assertIsNotNone(self.registry.lookup(URL, 'audio'))

    def test_lookup_prefers_newest(self):
        """Test that the newest of several live records wins"""
        self._write('old.mp3')
        self._write('new.mp3')
        self.registry.register('old.mp3', URL)
        self.clock.advance(minutes=5)
        newer = self.registry.register('new.mp3', URL)
        self.assertEqual(self.registry.lookup(URL), newer)

    def test_lookup_heals_missing_backing_file(self):
        """Test that a record whose file vanished is removed and treated as a miss"""
        self._write('a.mp3')
        self.registry.register('a.mp3', URL)
        (self.store.root / 'a.mp3').unlink()

        self.assertIsNone(self.registry.lookup(URL))
        self.assertIsNone(self.registry.lookup_by_filename('a.mp3'))

    def test_expiry_is_monotonic(self):
        """Test that once expired, a record never becomes live again"""
        self._write('a.mp3')
        record = self.registry.register('a.mp3', URL)
        self.clock.advance(minutes=31)
        self.assertTrue(record.is_expired(self.clock()))
        self.clock.advance(hours=5)
        self.assertTrue(record.is_expired(self.clock()))
        self.assertEqual(record.seconds_remaining(self.clock()), 0)

    def test_all_live_and_expired(self):
        """Test partitioning records by expiry"""
        self._write('a.mp3')
        self._write('b.mp4')
        self.registry.register('a.mp3', URL)
        self.clock.advance(minutes=20)
        self.registry.register('b.mp4', URL)
        self.clock.advance(minutes=15)

        self.assertEqual({r.filename for r in self.registry.all_live()}, {'b.mp4'})
        self.assertEqual([r.filename for r in self.registry.expired()], ['a.mp3'])
        self.assertEqual(len(self.registry.all_records()), 2)

    def test_stats(self):
        """Test totals including expired records"""
        self._write('a.mp3', b'x' * 100)
        self._write('b.mp3', b'x' * 50)
        self.registry.register('a.mp3', URL)
        self.clock.advance(minutes=20)
        self.registry.register('b.mp3', 'https://youtu.be/other')
        self.clock.advance(minutes=15)

        stats = self.registry.stats()
        self.assertEqual(stats.count, 2)
        self.assertEqual(stats.total_bytes, 150)
        self.assertEqual(stats.expired_count, 1)

    def test_discard_removes_file_and_record(self):
        """Test that discard deletes the backing file before the record"""
        self._write('a.mp3')
        self.registry.register('a.mp3', URL)

        self.assertTrue(self.registry.discard('a.mp3'))
        self.assertFalse(self.store.exists('a.mp3'))
        self.assertEqual(len(self.registry), 0)

    def test_discard_with_missing_file_still_removes_record(self):
        """Test that an already deleted file does not keep the record alive"""
        self._write('a.mp3')
        self.registry.register('a.mp3', URL)
        (self.store.root / 'a.mp3').unlink()

        self.assertFalse(self.registry.discard('a.mp3'))
        self.assertEqual(len(self.registry), 0)

    def test_discard_keeps_record_when_delete_fails(self):
        """Test that a failed deletion leaves the record for a later retry"""
        self._write('a.mp3')
        self.registry.register('a.mp3', URL)

        with patch.object(self.store, 'delete', side_effect=StorageIOError('busy')):
            with self.assertRaises(StorageIOError):
                self.registry.discard('a.mp3')

        self.assertIsNotNone(self.registry.lookup_by_filename('a.mp3'))

    def test_insert_and_remove(self):
        """Test raw record insertion"""
        now = self.clock()
        record = ArtifactRecord('x.mp4', URL, now, now + timedelta(minutes=1), 10)
        self.registry.insert(record)
        self.assertEqual(self.registry.lookup_by_filename('x.mp4'), record)
        self.assertEqual(self.registry.remove('x.mp4'), record)
        self.assertIsNone(self.registry.remove('x.mp4'))
