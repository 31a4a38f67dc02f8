from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from pal_observer.snapshots.models import ProviderSnapshot

logger = logging.getLogger(__name__)


class SnapshotProviderError(Exception):
    """The provider failed: spawn error, non-zero exit, timeout or bad output."""


class SnapshotTimeoutError(SnapshotProviderError):
    pass


@dataclass(frozen=True)
class ParseResult:
    snapshot: ProviderSnapshot
    document: Dict[str, Any]  # raw stdout document, retained as the next baseline
    elapsed_s: float = 0.0


class SnapshotProvider:
    async def parse(self, save_path: str, baseline_path: Optional[str] = None) -> ParseResult:
        raise NotImplementedError


def parse_document(stdout: bytes | str) -> ParseResult:
    text = stdout.decode("utf-8", errors="replace") if isinstance(stdout, bytes) else stdout
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotProviderError(f"invalid JSON from snapshot command: {e}") from e
    if not isinstance(doc, dict):
        raise SnapshotProviderError(f"snapshot document must be an object, got {type(doc).__name__}")
    try:
        snapshot = ProviderSnapshot.model_validate(doc)
    except ValidationError as e:
        raise SnapshotProviderError(f"snapshot document does not match schema: {e.error_count()} error(s)") from e
    return ParseResult(snapshot=snapshot, document=doc)


class CommandSnapshotProvider(SnapshotProvider):
    """
    Runs the external decoder:
        <command...> <save_path> --json --no-save [--diff <baseline_path>]
    and reads one JSON document from stdout.
    """

    def __init__(self, command: Sequence[str], *, timeout_s: float = 180.0) -> None:
        if not command:
            raise ValueError("snapshot command must not be empty")
        self.command: List[str] = list(command)
        self.timeout_s = timeout_s

    def build_args(self, save_path: str, baseline_path: Optional[str]) -> List[str]:
        args = [*self.command, save_path, "--json", "--no-save"]
        if baseline_path and os.path.exists(baseline_path):
            args += ["--diff", baseline_path]
        return args

    async def parse(self, save_path: str, baseline_path: Optional[str] = None) -> ParseResult:
        args = self.build_args(save_path, baseline_path)
        logger.info("Parsing: %s...", os.path.basename(save_path))
        t0 = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SnapshotProviderError(f"failed to start snapshot command: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            elapsed = time.monotonic() - t0
            logger.error("Parse timed out after %.1fs", elapsed)
            raise SnapshotTimeoutError(f"snapshot command timed out after {self.timeout_s:g}s") from None
        finally:
            # abandoned or cancelled: the child's output is never applied
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        elapsed = time.monotonic() - t0
        if proc.returncode != 0:
            tail = (stderr or b"").decode("utf-8", errors="replace").strip()[-300:]
            logger.error("Parse error after %.1fs: exit code %s", elapsed, proc.returncode)
            msg = f"snapshot command exited with code {proc.returncode}"
            raise SnapshotProviderError(f"{msg}: {tail}" if tail else msg)

        try:
            result = parse_document(stdout)
        except SnapshotProviderError as e:
            logger.error("JSON parse error: %s", e)
            raise

        logger.info(
            "Parsed in %.1fs: %d players, %d pals",
            elapsed,
            len(result.snapshot.players),
            result.snapshot.pal_count,
        )
        return ParseResult(snapshot=result.snapshot, document=result.document, elapsed_s=elapsed)
