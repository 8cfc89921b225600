"""Checksum manifest models (sha2-256sums)."""

from pydantic import BaseModel, Field, field_validator

from ereader_updater.errors import ManifestError


class ChecksumEntry(BaseModel):
    """One ``<sha256> <name>`` line of the manifest."""

    digest: str = Field(..., pattern=r"^[a-f0-9]{64}$", description="sha256 hex digest")
    name: str = Field(..., min_length=1, description="Archive entry name")

    @field_validator("digest", mode="before")
    @classmethod
    def lowercase_digest(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("name")
    @classmethod
    def strip_binary_marker(cls, v: str) -> str:
        """sha256sum -b writes ``*name``; the marker is not part of the name."""
        if v.startswith("*"):
            v = v[1:]
        if not v:
            raise ValueError("Entry name must not be empty")
        return v


class ChecksumManifest(BaseModel):
    """Ordered list of checksum entries."""

    entries: list[ChecksumEntry] = Field(default_factory=list)

    @field_validator("entries")
    @classmethod
    def unique_entry_names(cls, v: list[ChecksumEntry]) -> list[ChecksumEntry]:
        """Ensure each entry is listed only once."""
        names = [e.name for e in v]
        if len(names) != len(set(names)):
            raise ValueError("Entry names must be unique")
        return v

    @classmethod
    def parse(cls, text: str) -> "ChecksumManifest":
        """Parse manifest text in sha256sum format.

        Args:
            text: Manifest content, one ``<hash><spaces><name>`` per line

        Returns:
            Parsed manifest, entries in file order

        Raises:
            ManifestError: If a line is malformed or names repeat
        """
        entries = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            parts = line.strip().split(None, 1)
            if len(parts) != 2:
                raise ManifestError(f"line {lineno}: expected '<hash> <name>'")
            try:
                entries.append(ChecksumEntry(digest=parts[0], name=parts[1].strip()))
            except ValueError as e:
                raise ManifestError(f"line {lineno}: {e}") from e
        try:
            return cls(entries=entries)
        except ValueError as e:
            raise ManifestError(str(e)) from e

    def render(self) -> str:
        """Serialize back to sha256sum-compatible text."""
        return "".join(f"{e.digest}  {e.name}\n" for e in self.entries)
