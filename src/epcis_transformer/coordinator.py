"""Backend selection with remote-first execution and local fallback.

Each logical operation runs the same small state machine::

    TryRemote --ok--> Done
        |
        +--any failure (status, network, timeout)--> TryLocal --ok--> Done
                                                         |
                                                         +--error--> raised

``TryRemote`` is skipped when no remote backend is configured or the caller
passes ``local_only=True``. A remote result that is not a valid EPCIS 2.0
document (or ``EPCISDocument`` JSON object) counts as a remote failure. Remote failures are logged and recorded in the
monitor; only a local failure ever reaches the caller. Input that fails the
validation gate is rejected before either backend runs.

``convert_v1_to_jsonld`` composes ``convert_to_v2`` and ``convert_to_jsonld``,
each running its own state machine, so the first step may run remotely while
the second falls back to the local engine.

Example::

    coordinator = create_coordinator()
    json_text = await coordinator.convert_v1_to_jsonld(xml_12)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, Optional

from .config import TransformerSettings, load_settings
from .errors import TransformationError, ValidationError
from .migrator import SchemaMigrator, XsltMigrator, convert_to_v2
from .models import JsonLdTransformOptions, XmlTransformOptions
from .monitoring import TransformMonitor, get_monitor
from .projector import convert_to_jsonld
from .remote_client import OpenEpcisClient
from .validation import check_well_formed, validate_for_migration, validate_for_projection

logger = logging.getLogger(__name__)


def check_remote_v2(text: str) -> str:
    """Accept a remote migration result only if it is an EPCIS 2.0 document.

    Raises:
        TransformationError: The body does not pass the version-2 gate.
    """
    try:
        validate_for_projection(text)
    except ValidationError as e:
        raise TransformationError(
            f"Remote returned an invalid EPCIS 2.0 document: {e.message}"
        ) from e
    return text


def check_remote_jsonld(text: str) -> str:
    """Accept a remote JSON-LD result only if it is an ``EPCISDocument`` object."""
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise TransformationError(f"Remote returned invalid JSON: {e}") from e
    if (
        not isinstance(payload, dict)
        or payload.get("type") != "EPCISDocument"
        or not isinstance(payload.get("epcisBody"), dict)
    ):
        raise TransformationError("Remote returned JSON that is not an EPCISDocument")
    return text


class LocalBackend:
    """In-process engine; CPU-bound work runs in a worker thread."""

    name = "local"

    def __init__(self, migrator: Optional[SchemaMigrator] = None) -> None:
        self.migrator = migrator or SchemaMigrator()

    async def convert_to_v2(self, xml: str, options: XmlTransformOptions) -> str:
        return await asyncio.to_thread(convert_to_v2, xml, options, self.migrator)

    async def convert_to_jsonld(self, xml: str, options: JsonLdTransformOptions) -> str:
        return await asyncio.to_thread(convert_to_jsonld, xml, options)


class RemoteBackend:
    """Adapter exposing :class:`OpenEpcisClient` with the backend interface."""

    name = "remote"

    def __init__(self, client: OpenEpcisClient) -> None:
        self.client = client

    async def convert_to_v2(self, xml: str, options: XmlTransformOptions) -> str:
        # The remote service takes no migration options.
        return await self.client.convert_to_v2(xml)

    async def convert_to_jsonld(self, xml: str, options: JsonLdTransformOptions) -> str:
        return await self.client.convert_to_jsonld(xml, options)

    async def test_connection(self) -> bool:
        return await self.client.test_connection()


class TransformationCoordinator:
    """Run transformations remote-first with automatic local fallback.

    Args:
        local: Backend of record; always available.
        remote: Optional remote backend. ``None`` means local execution only.
        remote_timeout: Seconds allowed for one remote call before it counts
            as failed.
        monitor: Metrics sink (defaults to the process-wide monitor).
    """

    def __init__(
        self,
        local: LocalBackend,
        remote: Optional[RemoteBackend] = None,
        remote_timeout: float = 20.0,
        monitor: Optional[TransformMonitor] = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.remote_timeout = remote_timeout
        self.monitor = monitor or get_monitor()

    @staticmethod
    async def _checked_remote(
        call: Awaitable[str], check: Callable[[str], str]
    ) -> str:
        result = await call
        return await asyncio.to_thread(check, result)

    async def _run(
        self,
        operation: str,
        remote_call: Callable[[], Awaitable[str]],
        local_call: Callable[[], Awaitable[str]],
        local_only: bool,
    ) -> str:
        if self.remote is not None and not local_only:
            started = time.perf_counter()
            try:
                result = await asyncio.wait_for(remote_call(), timeout=self.remote_timeout)
            except asyncio.TimeoutError:
                error = f"timed out after {self.remote_timeout}s"
            except Exception as e:
                error = str(e) or type(e).__name__
            else:
                self.monitor.record_backend_attempt(
                    operation, "remote", time.perf_counter() - started
                )
                return result

            self.monitor.record_backend_attempt(
                operation, "remote", time.perf_counter() - started, error=error
            )
            self.monitor.record_fallback(operation)
            logger.warning(f"Remote {operation} failed ({error}); falling back to local engine")

        started = time.perf_counter()
        try:
            result = await local_call()
        except Exception as e:
            self.monitor.record_backend_attempt(
                operation, "local", time.perf_counter() - started, error=str(e)
            )
            raise
        self.monitor.record_backend_attempt(operation, "local", time.perf_counter() - started)
        return result

    async def convert_to_v2(
        self,
        xml: str,
        options: Optional[XmlTransformOptions] = None,
        local_only: bool = False,
    ) -> str:
        """Convert EPCIS 1.x XML to 2.0 XML.

        Raises:
            ValidationError: Input is malformed, or fails the document-type
                gate when ``validate_before_transform`` is set.
            TransformationError: Both backends failed (local error reported).
        """
        options = options or XmlTransformOptions()
        gate = validate_for_migration if options.validate_before_transform else check_well_formed
        await asyncio.to_thread(gate, xml)
        return await self._run(
            "convert_to_v2",
            lambda: self._checked_remote(
                self.remote.convert_to_v2(xml, options), check_remote_v2
            ),
            lambda: self.local.convert_to_v2(xml, options),
            local_only,
        )

    async def convert_to_jsonld(
        self,
        xml: str,
        options: Optional[JsonLdTransformOptions] = None,
        local_only: bool = False,
    ) -> str:
        """Convert EPCIS 2.0 XML to JSON-LD.

        Raises:
            ValidationError: Input is not a well-formed EPCIS 2.0 document.
            TransformationError: Both backends failed (local error reported).
        """
        options = options or JsonLdTransformOptions()
        await asyncio.to_thread(validate_for_projection, xml)
        return await self._run(
            "convert_to_jsonld",
            lambda: self._checked_remote(
                self.remote.convert_to_jsonld(xml, options), check_remote_jsonld
            ),
            lambda: self.local.convert_to_jsonld(xml, options),
            local_only,
        )

    async def convert_v1_to_jsonld(
        self,
        xml: str,
        options: Optional[JsonLdTransformOptions] = None,
        local_only: bool = False,
    ) -> str:
        """Convert EPCIS 1.x XML to JSON-LD in two independently routed steps."""
        logger.info("Performing two-step conversion from 1.x XML to JSON-LD")
        migrated = await self.convert_to_v2(xml, XmlTransformOptions(), local_only)
        return await self.convert_to_jsonld(migrated, options, local_only)

    async def test_connection(self) -> bool:
        """Probe the remote backend. Always False when none is configured."""
        if self.remote is None:
            return False
        return await self.remote.test_connection()


def create_coordinator(
    settings: Optional[TransformerSettings] = None,
) -> TransformationCoordinator:
    """Build a coordinator from :class:`TransformerSettings` (environment by default)."""
    settings = settings or load_settings()
    if settings.stylesheet_url:
        migrator: SchemaMigrator = XsltMigrator(settings.stylesheet_url)
    else:
        migrator = SchemaMigrator()

    remote = None
    if settings.remote_enabled:
        remote = RemoteBackend(
            OpenEpcisClient(
                base_url=settings.remote_url,
                timeout=settings.remote_timeout,
                probe_url=settings.probe_url,
            )
        )
    logger.debug(
        f"Coordinator configured (remote={'on' if remote else 'off'}, "
        f"migrator={type(migrator).__name__})"
    )
    return TransformationCoordinator(
        LocalBackend(migrator), remote, remote_timeout=settings.remote_timeout
    )
