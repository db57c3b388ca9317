"""Tests for track_migrate.core.hashing."""

import hashlib

from track_migrate.core.hashing import compute_content_hash


class TestComputeContentHash:
    def test_sha256_hex(self):
        payload = b"CREATE TABLE t (id int);\n"
        assert compute_content_hash(payload) == hashlib.sha256(payload).hexdigest()

    def test_str_and_bytes_agree(self):
        assert compute_content_hash("é") == compute_content_hash("é".encode("utf-8"))

    def test_distinct_payloads_differ(self):
        assert compute_content_hash("SELECT 1;") != compute_content_hash("SELECT 2;")

    def test_length(self):
        assert len(compute_content_hash("")) == 64
