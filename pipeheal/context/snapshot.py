from __future__ import annotations

import base64
import gzip
import io
import tarfile
from typing import Iterable, List

from pipeheal.gitops.vcs import VersionControl
from pipeheal.models import RepositorySnapshot
from pipeheal.policy.paths import matches_allow_list


def _deterministic_tar_gz(files: List[tuple[str, bytes]]) -> bytes:
    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path, data in files:
            info = tarfile.TarInfo(name=path)
            info.size = len(data)
            info.mtime = 0
            info.mode = 0o644
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            tar.addfile(info, io.BytesIO(data))
    out = io.BytesIO()
    with gzip.GzipFile(fileobj=out, mode="wb", mtime=0, filename="") as gz:
        gz.write(raw.getvalue())
    return out.getvalue()


def build_snapshot(vcs: VersionControl, allowed_prefixes: Iterable[str]) -> RepositorySnapshot:
    """
    Archive the tracked files that fall under the allow-list.

    Same checkout in, same bytes out. Files that can't be read (deleted since
    `ls-files`) are left out.
    """
    allowed = list(allowed_prefixes)
    try:
        tracked = vcs.tracked_files()
    except Exception:  # noqa: BLE001
        tracked = []

    files: List[tuple[str, bytes]] = []
    for p in sorted(set(tracked)):
        if not matches_allow_list(p, allowed):
            continue
        data = vcs.read_file(p)
        if data is None:
            continue
        files.append((p, data))

    archive = _deterministic_tar_gz(files)
    return RepositorySnapshot(
        paths=tuple(p for p, _ in files),
        archive_b64=base64.b64encode(archive).decode("ascii"),
    )
