"""Read-only access to the update archive (a tar container)."""

import logging
import os
import tarfile
from pathlib import Path
from typing import AsyncIterator, Optional

from ereader_updater.errors import ArchiveError, EntryNotFoundError


class UpdateArchive:
    """Named-entry view of an update tarball.

    Every operation opens the tarball afresh, so callers always read what is
    stored in the archive right now and never a cached copy.
    """

    def __init__(self, path: Path, chunk_size: int = 1024 * 1024):
        """Initialize archive reader.

        Args:
            path: Path to the update archive
            chunk_size: Default read size when streaming entries
        """
        self.logger = logging.getLogger("ereader_updater.archive")
        self.path = Path(path)
        self.chunk_size = chunk_size

    def _open(self) -> tarfile.TarFile:
        try:
            return tarfile.open(self.path, "r:")
        except (tarfile.TarError, OSError) as e:
            raise ArchiveError(f"cannot read {self.path}: {e}") from e

    @staticmethod
    def _member(tar: tarfile.TarFile, name: str) -> Optional[tarfile.TarInfo]:
        # Archives built with `tar -C dir .` prefix every entry with "./".
        for candidate in (name, f"./{name}"):
            try:
                member = tar.getmember(candidate)
            except KeyError:
                continue
            if member.isfile():
                return member
        return None

    def has_entry(self, name: str) -> bool:
        """Check whether a regular-file entry exists.

        An unreadable archive simply has no entries here; callers that need
        the archive surface that as their own failure.
        """
        try:
            with self._open() as tar:
                return self._member(tar, name) is not None
        except ArchiveError as e:
            self.logger.debug(f"has_entry({name}) on unreadable archive: {e}")
            return False

    def names(self) -> list[str]:
        with self._open() as tar:
            return [m.name for m in tar.getmembers() if m.isfile()]

    async def iter_entry(
        self, name: str, chunk_size: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        """Stream an entry's stored bytes in chunks.

        Args:
            name: Entry name
            chunk_size: Read size (defaults to the reader's chunk size)

        Yields:
            Raw bytes as stored in the archive

        Raises:
            EntryNotFoundError: If the entry is absent
            ArchiveError: If the archive cannot be read
        """
        size = chunk_size or self.chunk_size
        tar = self._open()
        try:
            member = self._member(tar, name)
            if member is None:
                raise EntryNotFoundError(name)
            fileobj = tar.extractfile(member)
            while True:
                try:
                    chunk = fileobj.read(size)
                except (tarfile.TarError, OSError) as e:
                    raise ArchiveError(f"reading {name} from {self.path}: {e}") from e
                if not chunk:
                    break
                yield chunk
        finally:
            tar.close()

    def extract_to(self, name: str, dest: Path) -> Path:
        """Copy an entry to a file, keeping its permission bits.

        Leftovers from an interrupted earlier run are replaced.

        Raises:
            EntryNotFoundError: If the entry is absent
            ArchiveError: If the archive cannot be read
            OSError: If the destination cannot be written
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest.parent / f"{dest.name}.tmp"

        with self._open() as tar:
            member = self._member(tar, name)
            if member is None:
                raise EntryNotFoundError(name)
            try:
                src = tar.extractfile(member)
                with open(tmp_path, "wb") as out:
                    while chunk := src.read(self.chunk_size):
                        out.write(chunk)
                os.chmod(tmp_path, member.mode & 0o777)
                tmp_path.replace(dest)
            except tarfile.TarError as e:
                tmp_path.unlink(missing_ok=True)
                raise ArchiveError(f"extracting {name}: {e}") from e
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise

        self.logger.debug(f"Extracted {name} to {dest}")
        return dest
