"""Read and write host files that are only reachable through helper containers.

The mcpo configuration file lives next to the compose file of the deployed
stack, on a filesystem this process cannot open directly. Every read and
write therefore spawns a disposable helper with the file's directory bind
mounted. Content travels base64 encoded on the helper's command line, so
large payloads are split into bounded chunks, one helper per chunk.

A crash between chunks can leave a partial file. With ``atomic_writes`` the
chunks land in a sibling temporary file that is renamed over the target by
a final helper, so readers only ever see a complete old or new document.
"""

import base64
import logging
import re
import uuid
from typing import List, Optional, Tuple

from ..exceptions import McpoIOError, NotFoundError, format_error
from .base import BaseHostRuntime, ComposeDetails, ComposeStack

logger = logging.getLogger(__name__)

MOUNT_POINT = "/rdx-mcpo"
DEFAULT_CHUNK_SIZE = 16 * 1024

# "$1" is the target path, "$2" the base64 payload.
_WRITE_SCRIPT = 'mkdir -p "$(dirname "$1")" && printf %s "$2" | base64 -d > "$1"'
_APPEND_SCRIPT = 'printf %s "$2" | base64 -d >> "$1"'
_RENAME_SCRIPT = 'mv -f "$1" "$2"'
_REMOVE_SCRIPT = 'rm -f "$1"'


def split_host_path(path: str) -> Tuple[str, str, str]:
    """Split a host path into (directory, file name, separator).

    Windows paths keep their backslashes.
    """
    separator = "\\" if "\\" in path else "/"
    directory, _, name = path.rpartition(separator)
    if not name:
        raise NotFoundError(f"Not a file path: {path!r}")
    if not directory and path.startswith(separator):
        directory = separator
    return directory, name, separator


def strip_last_segment(path: str) -> str:
    """Drop the last path segment; '' when there is none."""
    if not path:
        return ""
    updated = re.sub(r"[\\/][^\\/]+$", "", path)
    return "" if updated == path else updated


def normalize_config_files(value: Optional[str]) -> List[str]:
    """Split a comma-separated, optionally quoted config file list."""
    if not value:
        return []
    files = []
    for entry in value.split(","):
        entry = entry.strip()
        if entry.startswith('"'):
            entry = entry[1:]
        if entry.endswith('"'):
            entry = entry[:-1]
        if entry:
            files.append(entry)
    return files


class HostFileBridge:
    """File primitives over the helper-container indirection."""

    def __init__(
        self,
        runtime: BaseHostRuntime,
        stack_identifier: str,
        config_relative_path: str = "linux/mcpo/config.json",
        service_name: str = "mcpo",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        atomic_writes: bool = True,
    ):
        self.runtime = runtime
        self.stack_identifier = stack_identifier
        self.config_relative_path = config_relative_path
        self.service_name = service_name
        self.chunk_size = chunk_size
        self.atomic_writes = atomic_writes
        self._details: Optional[ComposeDetails] = None

    def _match_stack(self, stacks: List[ComposeStack]) -> ComposeStack:
        if not stacks:
            raise NotFoundError("No Docker Compose stacks found.")
        for stack in stacks:
            if self.stack_identifier in stack.name:
                return stack
            if any(self.stack_identifier in path for path in stack.config_files):
                return stack
        raise NotFoundError("Unable to locate the MCP stack.")

    async def resolve(self, refresh: bool = False) -> ComposeDetails:
        """Locate the stack and derive the configuration file path.

        Args:
            refresh: Ignore the cached result

        Raises:
            NotFoundError: no stack matches or its metadata lacks a path
        """
        if self._details is not None and not refresh:
            return self._details

        stack = self._match_stack(await self.runtime.list_compose_stacks())
        config_files = normalize_config_files(",".join(stack.config_files))
        if not config_files:
            raise NotFoundError("Compose stack is missing config metadata.")

        compose_file = config_files[0]
        compose_dir = strip_last_segment(compose_file)
        separator = "\\" if "\\" in compose_file else "/"
        relative = self.config_relative_path.replace("/", separator)
        config_path = f"{compose_dir}{separator}{relative}" if compose_dir else relative

        self._details = ComposeDetails(
            project_name=stack.name or "mcpo",
            compose_file=compose_file,
            config_dir=strip_last_segment(config_path),
            config_path=config_path,
        )
        logger.info("Resolved mcpo configuration at %s", config_path)
        return self._details

    async def _run(self, directory: str, command: List[str], action: str) -> str:
        result = await self.runtime.run_helper(directory, MOUNT_POINT, command)
        if not result.ok:
            stderr = result.stderr.strip()
            raise McpoIOError(
                f"Failed to {action} (exit {result.exit_code})",
                detail=stderr or None,
            )
        if result.stderr.strip():
            logger.debug("Helper stderr while trying to %s: %s", action, result.stderr.strip())
        return result.stdout

    async def read(self, path: str) -> str:
        """Return the text of the host file at *path*.

        Raises:
            McpoIOError: the helper could not read the file
        """
        directory, name, _ = split_host_path(path)
        if not directory:
            raise NotFoundError("Unknown configuration directory.")
        return await self._run(directory, ["cat", f"{MOUNT_POINT}/{name}"], f"read {path}")

    async def write(self, path: str, text: str) -> None:
        """Overwrite the host file at *path* with *text*.

        Not atomic unless ``atomic_writes`` is set: each chunk is a separate
        helper run, and a failure mid-way leaves what was written so far.
        """
        directory, name, _ = split_host_path(path)
        if not directory:
            raise NotFoundError("Unknown configuration directory.")

        payload = text.encode("utf-8")
        chunks = [
            payload[offset:offset + self.chunk_size]
            for offset in range(0, len(payload), self.chunk_size)
        ] or [b""]

        target = f"{MOUNT_POINT}/{name}"
        if not self.atomic_writes:
            await self._write_chunks(directory, path, target, chunks)
        else:
            # Unique per write; concurrent writers never share a staging file.
            staging = f"{MOUNT_POINT}/.{name}.{uuid.uuid4().hex[:12]}.partial"
            try:
                await self._write_chunks(directory, path, staging, chunks)
                await self._run(
                    directory,
                    ["sh", "-c", _RENAME_SCRIPT, "sh", staging, target],
                    f"replace {path}",
                )
            except McpoIOError:
                await self._discard(directory, staging)
                raise
        logger.info("Wrote %d bytes to %s in %d chunk(s)", len(payload), path, len(chunks))

    async def _write_chunks(self, directory: str, path: str, destination: str, chunks: List[bytes]):
        for index, chunk in enumerate(chunks):
            encoded = base64.b64encode(chunk).decode("ascii")
            script = _WRITE_SCRIPT if index == 0 else _APPEND_SCRIPT
            await self._run(
                directory,
                ["sh", "-c", script, "sh", destination, encoded],
                f"write {path} (chunk {index + 1}/{len(chunks)})",
            )

    async def _discard(self, directory: str, staging: str) -> None:
        try:
            await self._run(directory, ["sh", "-c", _REMOVE_SCRIPT, "sh", staging], f"remove {staging}")
        except McpoIOError as e:
            logger.warning("Could not remove staging file %s: %s", staging, format_error(e))

    async def read_config(self) -> str:
        """Read the authoritative document of the resolved stack."""
        details = await self.resolve()
        return await self.read(details.config_path)

    async def write_config(self, text: str) -> None:
        """Write the authoritative document of the resolved stack."""
        details = await self.resolve()
        await self.write(details.config_path, text)

    async def restart_proxy(self) -> None:
        """Ask the proxy service to reload its definitions."""
        details = await self.resolve()
        await self.runtime.restart_service(details.project_name, self.service_name)
