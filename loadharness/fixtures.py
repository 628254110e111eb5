"""
Fixture data loaded once before any worker starts.

Two fixture sets drive the default workload:

- **users**: login credentials, read from a CSV with ``email`` and
  ``password`` columns.  Workers are assigned records round-robin.
- **audio chunks**: the ``chunk{i}.webm`` recording segments uploaded
  by the voice-note flow, read as raw bytes in index order.

A problem with the user file is fatal (nothing can log in), so it raises
:class:`~loadharness.errors.FixtureError` before the run begins.  Audio
chunks are best effort: missing files are skipped and the upload simply
sends fewer parts.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path

from loadharness.errors import FixtureError

logger = logging.getLogger(__name__)

REQUIRED_USER_COLUMNS = ("email", "password")
CHUNK_CONTENT_TYPE = "audio/webm; codecs=opus"


@dataclass(frozen=True)
class UserRecord:
    """One set of login credentials."""

    email: str
    password: str


@dataclass(frozen=True)
class ChunkFile:
    """One recorded audio segment ready to upload."""

    index: int
    name: str
    data: bytes
    content_type: str = CHUNK_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


def load_users(path: str | Path) -> list[UserRecord]:
    """
    Read login credentials from a CSV file.

    Rows with an empty ``email`` (for example a trailing blank line) are
    ignored.

    Args:
        path: CSV file with a header row containing ``email`` and
            ``password``.

    Returns:
        The user records in file order.

    Raises:
        FixtureError: If the file is missing or empty, lacks a required
            column, or contains no usable rows.
    """
    path = Path(path)
    if not path.is_file():
        raise FixtureError(f"{path} file not found or is empty!")

    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        columns = [name.strip() for name in reader.fieldnames or []]
        reader.fieldnames = columns
        missing = [name for name in REQUIRED_USER_COLUMNS if name not in columns]
        if missing:
            raise FixtureError(f"{path} is empty or missing required columns: {', '.join(missing)}")

        users: list[UserRecord] = []
        for row in reader:
            email = (row.get("email") or "").strip()
            if not email:
                continue
            users.append(UserRecord(email=email, password=row.get("password") or ""))

    if not users:
        raise FixtureError(f"{path} contains no user rows")

    logger.info("Loaded %d users from %s", len(users), path)
    return users


def load_chunks(directory: str | Path, count: int = 50) -> list[ChunkFile]:
    """
    Read ``chunk0.webm`` .. ``chunk{count-1}.webm`` from *directory*.

    Absent or empty files are skipped; the remaining chunks keep their
    original index so upload keys stay stable.
    """
    directory = Path(directory)
    chunks: list[ChunkFile] = []
    for index in range(count):
        name = f"chunk{index}.webm"
        path = directory / name
        if not path.is_file():
            continue
        data = path.read_bytes()
        if not data:
            continue
        chunks.append(ChunkFile(index=index, name=name, data=data))

    logger.info("Loaded %d/%d audio chunks from %s", len(chunks), count, directory)
    return chunks
