"""Content fingerprinting for change detection."""

import hashlib
from pathlib import Path
from typing import BinaryIO, Union

from ..exceptions import UnreadableFileError

DEFAULT_CHUNK_SIZE = 8192

# SHA-256 of zero bytes
EMPTY_DIGEST = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class ContentHasher:
    """Compute SHA-256 fingerprints of file content in bounded chunks."""

    algorithm = "sha256"
    digest_size = 64  # hex characters

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Initialize content hasher.

        Args:
            chunk_size: Number of bytes read per iteration
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def new(self):
        """Return a fresh hash object for incremental hashing."""
        return hashlib.new(self.algorithm)

    def fingerprint_stream(self, stream: BinaryIO) -> str:
        """Fingerprint an open binary stream.

        Args:
            stream: Readable binary file object, consumed to EOF

        Returns:
            Lowercase hex digest
        """
        digest = self.new()
        for chunk in iter(lambda: stream.read(self.chunk_size), b""):
            digest.update(chunk)
        return digest.hexdigest()

    def fingerprint(self, file_path: Union[str, Path]) -> str:
        """Fingerprint the content of a file.

        Args:
            file_path: Path to the file

        Returns:
            Lowercase hex digest

        Raises:
            UnreadableFileError: If the file cannot be opened or read
        """
        try:
            with open(file_path, 'rb') as f:
                return self.fingerprint_stream(f)
        except OSError as e:
            raise UnreadableFileError(file_path, e.strerror or str(e)) from e

    @classmethod
    def is_valid_digest(cls, value: str) -> bool:
        """Check whether a string looks like a digest produced by this hasher."""
        if not isinstance(value, str) or len(value) != cls.digest_size:
            return False
        return all(c in "0123456789abcdef" for c in value)
