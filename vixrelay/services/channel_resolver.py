"""
Clients for the external channel-resolution collaborator.

The cache only depends on the narrow ChannelResolver interface, so the
transport (subprocess here) can be swapped without touching cache logic.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class ChannelResolver(ABC):
    """Resolves live channel names to playable URLs."""

    @abstractmethod
    async def resolve_one(self, name: str) -> Optional[str]:
        """Resolve a single channel; None on any failure."""

    @abstractmethod
    async def dump_all(self) -> Optional[list[dict]]:
        """Return every known ``{name, url}`` pair; None on any failure."""

    async def build_cache(self) -> bool:
        """One-shot bootstrap of the cache file. Optional for implementations."""
        return False


class SubprocessChannelResolver(ChannelResolver):
    """Runs the resolver script as a child process with a hard timeout per call."""

    def __init__(
        self,
        script: str | Path,
        python: str = "python3",
        single_timeout: float = 5.0,
        dump_timeout: float = 30.0,
        build_timeout: float = 120.0,
        cwd: Optional[str | Path] = None,
    ):
        self.script = str(script)
        self.python = python
        self.single_timeout = single_timeout
        self.dump_timeout = dump_timeout
        self.build_timeout = build_timeout
        self.cwd = str(cwd) if cwd else None

    async def _run(self, args: Sequence[str], timeout: float) -> Optional[str]:
        """Run the script and return stdout, or None on non-zero exit, timeout or spawn error."""
        cmd = [self.python, self.script, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            logger.error(f"Failed to start channel resolver {cmd}: {e}")
            return None

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Channel resolver timed out after {timeout}s: {' '.join(args)}")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            return None

        if process.returncode != 0:
            logger.error(
                f"Channel resolver exited with {process.returncode}: "
                f"{stderr.decode(errors='replace').strip()[:200]}"
            )
            return None

        return stdout.decode(errors="replace")

    async def resolve_one(self, name: str) -> Optional[str]:
        output = await self._run([name, "--original-link"], self.single_timeout)
        if not output or not output.strip():
            logger.info(f"No link resolved for {name}")
            return None
        return output.strip()

    async def dump_all(self) -> Optional[list[dict]]:
        output = await self._run(["--dump-channels"], self.dump_timeout)
        if not output or not output.strip():
            return None
        try:
            channels = json.loads(output)
        except ValueError as e:
            logger.error(f"Channel dump is not valid JSON: {e}")
            return None
        if not isinstance(channels, list):
            logger.error("Channel dump is not a JSON array")
            return None
        return channels

    async def build_cache(self) -> bool:
        output = await self._run(["--build-cache"], self.build_timeout)
        return output is not None
