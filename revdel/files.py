"""Storage paths for file versions in the public and restricted zones."""

import hashlib
from dataclasses import dataclass
from pathlib import PurePosixPath

ZONE_PUBLIC = "public"
ZONE_DELETED = "deleted"


def hash_path(name: str) -> str:
    """Two-level directory prefix for a public file name ("a/ab/")."""
    digest = hashlib.md5(name.encode("utf-8")).hexdigest()
    return f"{digest[0]}/{digest[:2]}/"


def archive_rel(name: str, archive_name: str) -> str:
    """Public-zone path of a superseded file version."""
    return f"archive/{hash_path(name)}{archive_name}"


def deleted_hash_path(key: str) -> str:
    """Three-level directory prefix for a restricted-zone storage key."""
    if len(key) < 3:
        raise ValueError(f"Storage key too short: {key!r}")
    return f"{key[0]}/{key[1]}/{key[2]}/"


def deleted_rel(key: str) -> str:
    return f"{deleted_hash_path(key)}{key}"


def storage_key(sha1: str, name: str) -> str:
    """Content-addressed key: the content hash plus the file's extension."""
    if not sha1:
        raise ValueError(f"File {name!r} has no content hash")
    ext = PurePosixPath(name).suffix.lower()
    return f"{sha1}{ext}"


@dataclass(frozen=True)
class FileRef:
    """Where one file version's bytes live in either zone."""

    name: str
    public_rel: str
    key: str

    @property
    def deleted_rel(self) -> str:
        return deleted_rel(self.key)
