import os
import logging
import tempfile
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field
from typing import ClassVar, Iterable
from cert_split.utils import read_file
from cert_split.errors.split_error import MalformedBundleError, ReadError, WriteError

log = logging.getLogger(__name__)


class ScanState(Enum):
    SCANNING = "scanning"
    IN_KEY_BLOCK = "private key block"
    IN_CERT_BLOCK = "certificate block"


@dataclass(frozen=True)
class ArtifactPaths:
    KEY_SUFFIX: ClassVar[str] = ".key"
    CERT_SUFFIX: ClassVar[str] = ".crt"

    key: Path
    cert: Path

    @classmethod
    def from_store(cls, store_path: Path) -> "ArtifactPaths":
        return cls(
            key=store_path.with_name(store_path.name + cls.KEY_SUFFIX),
            cert=store_path.with_name(store_path.name + cls.CERT_SUFFIX)
        )


@dataclass(frozen=True)
class PemBundle:
    """Private key and certificate blocks of a combined bundle, in bundle order.

    Parsing is a single pass over the lines with three states. Markers are
    matched by substring so annotated marker lines are accepted. Lines
    outside of any block are dropped.
    """
    KEY_LABELS: ClassVar[tuple[str, ...]] = ("EC PRIVATE KEY", "RSA PRIVATE KEY", "PRIVATE KEY")
    CERT_LABEL: ClassVar[str] = "CERTIFICATE"

    key_lines: list[str] = field(default_factory=list)
    cert_lines: list[str] = field(default_factory=list)
    key_blocks: int = 0
    cert_blocks: int = 0

    @classmethod
    def parse(cls, source: Path, lines: Iterable[str]) -> "PemBundle":
        state = ScanState.SCANNING
        label: str | None = None
        opened_at = 0
        key_lines: list[str] = []
        cert_lines: list[str] = []
        key_blocks = 0
        cert_blocks = 0

        for line_no, line in enumerate(lines, start=1):
            begin_label = cls._begin_label(line)

            if state is ScanState.SCANNING:
                if begin_label is None:
                    continue
                label = begin_label
                opened_at = line_no
                if begin_label == cls.CERT_LABEL:
                    state = ScanState.IN_CERT_BLOCK
                    cert_lines.append(line)
                else:
                    state = ScanState.IN_KEY_BLOCK
                    key_lines.append(line)
                continue

            if begin_label is not None:
                raise MalformedBundleError(
                    source,
                    f"{state.value} opened at line {opened_at} is not closed before the next block",
                    line_no=line_no
                )

            if state is ScanState.IN_KEY_BLOCK:
                key_lines.append(line)
            else:
                cert_lines.append(line)

            if f"END {label}" in line:
                if state is ScanState.IN_KEY_BLOCK:
                    key_blocks += 1
                else:
                    cert_blocks += 1
                state = ScanState.SCANNING
                label = None

        if state is not ScanState.SCANNING:
            raise MalformedBundleError(source, f"{state.value} opened at line {opened_at} has no end marker")
        if not key_blocks:
            raise MalformedBundleError(source, "no private key block found")
        if not cert_blocks:
            raise MalformedBundleError(source, "no certificate block found")

        return cls(key_lines, cert_lines, key_blocks, cert_blocks)

    @property
    def key_pem(self) -> str:
        return "".join(f"{line}\n" for line in self.key_lines)

    @property
    def cert_pem(self) -> str:
        return "".join(f"{line}\n" for line in self.cert_lines)

    @classmethod
    def _begin_label(cls, line: str) -> str | None:
        if f"BEGIN {cls.CERT_LABEL}" in line:
            return cls.CERT_LABEL
        for label in cls.KEY_LABELS:
            if f"BEGIN {label}" in line:
                return label
        return None


@dataclass(frozen=True)
class SplitResult:
    bundle: Path
    paths: ArtifactPaths
    key_blocks: int
    cert_blocks: int


@dataclass(frozen=True)
class BundleSplitter:
    mode: int = 0o600

    def split(self, bundle_path: Path, paths: ArtifactPaths | None = None) -> SplitResult:
        """Decompose the bundle at ``bundle_path`` into key and chain artifacts.

        The whole bundle is parsed before anything is written. Both artifacts
        are staged next to their targets and renamed into place only once
        both were written, so a failed split leaves the previous pair intact.
        """
        paths = paths or ArtifactPaths.from_store(bundle_path)

        try:
            content = read_file(bundle_path)
        except OSError as e:
            raise ReadError(bundle_path, cause=e)

        bundle = PemBundle.parse(bundle_path, content.splitlines())
        staged: list[tuple[str, Path]] = []

        try:
            staged.append((self._stage(paths.key, bundle.key_pem), paths.key))
            staged.append((self._stage(paths.cert, bundle.cert_pem), paths.cert))

            for tmp_name, target in staged:
                try:
                    os.replace(tmp_name, target)
                except OSError as e:
                    raise WriteError(target, cause=e)
        finally:
            for tmp_name, _ in staged:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)

        log.info(
            f"Split '{bundle_path}' into '{paths.key}' ({bundle.key_blocks} key block(s)) "
            f"and '{paths.cert}' ({bundle.cert_blocks} certificate block(s))"
        )
        return SplitResult(bundle_path, paths, bundle.key_blocks, bundle.cert_blocks)

    def _stage(self, target: Path, content: str) -> str:
        try:
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        except OSError as e:
            raise WriteError(target, cause=e)

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, self.mode)
        except OSError as e:
            os.unlink(tmp_name)
            raise WriteError(target, cause=e)

        return tmp_name
