"""Edit sessions over the mcpo document on the host.

Every successful write is followed by exactly one proxy restart and one
queued reconciliation pass. Format errors in user-edited text surface before
any host write or network call.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from ..exceptions import McpoSyncError, format_error
from ..host.bridge import HostFileBridge
from ..mcpo.document import (
    ManagedServer,
    McpoDocument,
    ServerDefinition,
    add_server,
    clone_config,
    extract_managed_servers,
    load_config_strict,
    normalize_config_text,
    parse_config,
    remove_server,
    serialize_config,
)
from ..mcpo.masking import (
    SensitiveValueMap,
    mask_sensitive_env_values,
    unmask_sensitive_env_values,
)
from ..observability.logging import clear_log_context, set_log_context
from ..observability.notifications import NotificationCenter
from ..storage.local_store import LocalStore
from ..sync.reconciler import SyncResult, ToolServerSync

logger = logging.getLogger(__name__)

Mutator = Callable[[McpoDocument], bool]


@dataclass
class EditSession:
    """What the editor shows, and what is needed to write it back."""

    raw_text: str
    masked_text: str
    saved_text: str
    mask_map: SensitiveValueMap = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw_text: str) -> "EditSession":
        masked = mask_sensitive_env_values(raw_text)
        return cls(
            raw_text=raw_text,
            masked_text=masked.masked_text,
            saved_text=masked.masked_text,
            mask_map=masked.mask_map,
        )


class ConfigurationService:
    """Reads, edits and writes the authoritative document."""

    def __init__(
        self,
        bridge: HostFileBridge,
        sync: ToolServerSync,
        store: LocalStore,
        notifier: NotificationCenter,
        base_url: str,
    ):
        self.bridge = bridge
        self.sync = sync
        self.store = store
        self.notifier = notifier
        self.base_url = base_url
        self._session: Optional[EditSession] = None
        # Held from reading the source text until the follow-up pass is queued.
        self._edit_lock = asyncio.Lock()

    @property
    def session(self) -> Optional[EditSession]:
        return self._session

    def _remember(self, raw_text: str) -> EditSession:
        self._session = EditSession.from_raw(raw_text)
        self.store.set_cached_config(raw_text)
        return self._session

    async def load(self) -> EditSession:
        """Read the document from the host and start a fresh session.

        The previous mask map is discarded.
        """
        async with self._edit_lock:
            try:
                await self.bridge.resolve(refresh=True)
                text = await self.bridge.read_config()
            except McpoSyncError as e:
                self._session = None
                logger.error("Failed to load mcpo configuration: %s", format_error(e))
                raise

            session = self._remember(text)
            logger.info(
                "Loaded mcpo configuration (%d masked value(s))", len(session.mask_map)
            )
            self.sync.request_sync(text)
            return session

    async def apply(self, masked_text: str) -> EditSession:
        """Write an edited document back to the host.

        Raises:
            FormatError: the text is not a valid document; nothing was written
        """
        async with self._edit_lock:
            mask_map = self._session.mask_map if self._session else {}
            try:
                actual_text = unmask_sensitive_env_values(masked_text, mask_map)
                load_config_strict(actual_text)
            except McpoSyncError as e:
                self.notifier.error(format_error(e))
                raise

            try:
                await self._write_and_restart(actual_text)
            except McpoSyncError as e:
                self.notifier.error(f"Failed to update configuration: {format_error(e)}")
                raise

            session = self._remember(actual_text)
            self.notifier.success("mcpo configuration updated and service restarted.")
            self.sync.request_sync(actual_text)
            return session

    async def _write_and_restart(self, text: str) -> None:
        await self.bridge.write_config(text)
        await self.bridge.restart_proxy()

    async def _mutate(self, mutator: Mutator, success_message: str) -> bool:
        async with self._edit_lock:
            try:
                source = self._session.raw_text if self._session else await self.bridge.read_config()
                working = clone_config(parse_config(source or "{}"))
                if not mutator(working):
                    self.notifier.info("No changes were required for the mcpo configuration.")
                    return False
                next_text = serialize_config(working)
                await self._write_and_restart(next_text)
            except McpoSyncError as e:
                self.notifier.error(f"Failed to update mcpo configuration: {format_error(e)}")
                raise

            self._remember(next_text)
            self.notifier.success(success_message)
            self.sync.request_sync(next_text)
            return True

    async def add_server(
        self,
        server_id: str,
        definition: Union[ServerDefinition, Dict[str, Any]],
    ) -> bool:
        """Add or replace one server definition.

        Returns:
            True if the document changed and was written
        """
        entry = (
            definition.to_document_entry()
            if isinstance(definition, ServerDefinition)
            else dict(definition)
        )
        set_log_context(server_id=server_id)
        try:
            return await self._mutate(
                lambda document: add_server(document, server_id, entry),
                f"Added {server_id} to the mcpo configuration.",
            )
        finally:
            clear_log_context()

    async def remove_server(self, server_id: str) -> bool:
        set_log_context(server_id=server_id)
        try:
            return await self._mutate(
                lambda document: remove_server(document, server_id),
                f"Removed {server_id} from the mcpo configuration.",
            )
        finally:
            clear_log_context()

    async def startup_sync(self) -> SyncResult:
        """Restore the cached document if the host copy drifted, then sync.

        The cached copy wins: it is the last text this service wrote.
        """
        async with self._edit_lock:
            cached = self.store.get_cached_config()
            normalized_cached = normalize_config_text(cached) if cached else ""
            await self.bridge.resolve(refresh=True)
            current = await self.bridge.read_config()

            final_text = current
            if normalized_cached and normalized_cached != normalize_config_text(current):
                logger.info("Host configuration differs from the cached copy, restoring it")
                await self._write_and_restart(cached)
                final_text = cached

            self._remember(final_text)
            future = self.sync.request_sync(final_text)
        return await future

    async def request_sync(self) -> "asyncio.Future[SyncResult]":
        """Queue a pass for the last known document text."""
        if self._session is not None:
            text = self._session.raw_text
        else:
            text = self.store.get_cached_config()
            if text is None:
                text = await self.bridge.read_config()
        return self.sync.request_sync(text)

    def servers(self) -> List[ManagedServer]:
        if self._session is None:
            return []
        return extract_managed_servers(self._session.raw_text, self.base_url)
