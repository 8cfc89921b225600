"""Unit tests for verification utilities."""

import hashlib
from pathlib import Path

import pytest

from ereader_updater.utils.verification import (
    Sha256Verifier,
    compute_sha256,
    digests_match,
)


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


@pytest.mark.unit
class TestVerification:
    """Test verification utilities in isolation."""

    def test_compute_sha256_success(self, tmp_path):
        """Test successful sha256 computation."""
        # Arrange
        content = b"test file content for sha256 verification"
        test_file = tmp_path / "test.bin"
        test_file.write_bytes(content)

        # Act
        result = compute_sha256(test_file)

        # Assert
        assert result == hashlib.sha256(content).hexdigest()
        assert len(result) == 64
        assert result.islower()

    def test_compute_sha256_small_chunks(self, tmp_path):
        """Test chunk size does not change the digest."""
        # Arrange
        content = b"x" * (64 * 1024 + 3)
        test_file = tmp_path / "large.bin"
        test_file.write_bytes(content)

        # Act
        result = compute_sha256(test_file, chunk_size=7)

        # Assert
        assert result == hashlib.sha256(content).hexdigest()

    def test_compute_sha256_empty_file(self, tmp_path):
        """Test sha256 of an empty file."""
        # Arrange
        test_file = tmp_path / "empty.bin"
        test_file.write_bytes(b"")

        # Act
        result = compute_sha256(test_file)

        # Assert
        assert result == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_compute_sha256_file_not_found(self):
        """Test compute_sha256 raises FileNotFoundError for non-existent file."""
        # Act / Assert
        with pytest.raises(FileNotFoundError):
            compute_sha256(Path("/nonexistent/path/file.bin"))

    def test_digests_match_case_insensitive(self):
        """Test digests compare case-insensitively."""
        # Arrange
        digest = hashlib.sha256(b"case").hexdigest()

        # Act / Assert
        assert digests_match(digest.upper(), digest) is True

    def test_digests_match_mismatch(self):
        """Test different digests do not match."""
        # Act / Assert
        assert digests_match("a" * 64, "b" * 64) is False

    def test_digests_match_invalid_format(self):
        """Test the expected digest must be 64 hex chars."""
        # Act / Assert
        with pytest.raises(ValueError, match="Invalid sha256 format"):
            digests_match("abc123", "a" * 64)

    @pytest.mark.asyncio
    async def test_stream_verifier_matches_hashlib(self):
        """Test streaming digest equals hashing the concatenated bytes."""
        # Arrange
        verifier = Sha256Verifier()

        # Act
        result = await verifier.digest(_chunks(b"part one, ", b"part two"))

        # Assert
        assert result == hashlib.sha256(b"part one, part two").hexdigest()
