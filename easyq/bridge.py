"""
EasyQ Bridge

Flat, status-code surface for foreign callers. Every call returns a
`Status`; results that are documents come back as string handles which
the caller reads and then releases with `free_string`. The detail of
the most recent failure on the calling thread is available from
`last_error()`.

The runtime's coroutines run on a private event loop thread, so the
bridge can be driven from plain synchronous code.
"""

import asyncio
import itertools
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Coroutine, Dict, Iterator, Optional, Tuple

from .config import Settings, get_settings
from .connection.manager import ResourceFactory
from .exceptions import EasyQError, NotInitializedError, RuntimeNotReadyError, Status
from .models import Provenance
from .resources import create_resource
from .runtime import EasyQRuntime
from .schemas import (
    ChannelOptionsDocument,
    KeyOptionsDocument,
    SearchOptionsDocument,
    load_json,
    parse_document,
)

logger = logging.getLogger(__name__)


class Bridge:
    """One runtime behind a status-code interface."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resource_factory: ResourceFactory = create_resource,
    ):
        self._settings = settings or get_settings()
        self._resource_factory = resource_factory
        self._runtime: Optional[EasyQRuntime] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._strings: Dict[str, str] = {}
        self._strings_lock = threading.Lock()
        self._handle_ids = itertools.count(1)
        self._local = threading.local()

    # Error reporting

    def last_error(self) -> str:
        """Detail of the last failed call on this thread, or an empty string."""
        return getattr(self._local, "error", "")

    def last_provenance(self) -> Optional[Provenance]:
        """Provenance of the last random value generated on this thread."""
        return getattr(self._local, "provenance", None)

    def _succeed(self) -> Status:
        self._local.error = ""
        return Status.SUCCESS

    def _fail(self, error: Exception) -> Status:
        if isinstance(error, EasyQError):
            self._local.error = error.detail or error.__class__.__name__
            return error.status
        logger.exception("Unexpected bridge failure: %s", error)
        self._local.error = str(error) or error.__class__.__name__
        return Status.GENERAL_ERROR

    def _call(self, operation: Callable[[EasyQRuntime], Any]) -> Tuple[Status, Any]:
        try:
            runtime = self._require_runtime()
            value = operation(runtime)
        except Exception as e:
            return self._fail(e), None
        return self._succeed(), value

    def _require_runtime(self) -> EasyQRuntime:
        if self._runtime is None:
            raise NotInitializedError("EasyQ runtime is not initialized")
        return self._runtime

    def _await(self, coroutine: Coroutine) -> Any:
        future = asyncio.run_coroutine_threadsafe(coroutine, self._loop)
        return future.result()

    # String handles

    def _store(self, document: Dict[str, Any]) -> str:
        handle = f"easyq-{next(self._handle_ids)}"
        with self._strings_lock:
            self._strings[handle] = json.dumps(document)
        return handle

    def read_string(self, handle: str) -> Optional[str]:
        with self._strings_lock:
            return self._strings.get(handle)

    def free_string(self, handle: Optional[str]) -> None:
        """Release a result handle. Unknown or already-freed handles are ignored."""
        if handle is None:
            return
        with self._strings_lock:
            released = self._strings.pop(handle, None)
        if released is None:
            logger.debug("Ignoring release of unknown handle %s", handle)

    @contextmanager
    def borrowed_string(self, handle: str) -> Iterator[Optional[str]]:
        """Read a handle's document and release it on exit."""
        try:
            yield self.read_string(handle)
        finally:
            self.free_string(handle)

    @property
    def outstanding_strings(self) -> int:
        with self._strings_lock:
            return len(self._strings)

    # Lifecycle

    def initialize(self) -> Status:
        with self._state_lock:
            if self._runtime is not None:
                return self._fail(RuntimeNotReadyError("EasyQ runtime is already initialized"))

            loop = asyncio.new_event_loop()
            thread = threading.Thread(target=loop.run_forever, name="easyq-bridge", daemon=True)
            thread.start()

            runtime = EasyQRuntime(self._settings, self._resource_factory)
            runtime.initialize()
            self._loop, self._thread, self._runtime = loop, thread, runtime
        return self._succeed()

    def shutdown(self) -> None:
        with self._state_lock:
            runtime, self._runtime = self._runtime, None
            if runtime is None:
                return
            try:
                self._await(runtime.shutdown())
            except EasyQError as e:
                logger.warning("Runtime shutdown reported: %s", e.detail)
            finally:
                self._loop.call_soon_threadsafe(self._loop.stop)
                self._thread.join()
                self._loop.close()
                self._loop, self._thread = None, None
                with self._strings_lock:
                    self._strings.clear()

    def configure_connection(self, config_json: str) -> Status:
        def run(runtime: EasyQRuntime) -> None:
            config = load_json(config_json, "Connection config", default={})
            self._await(runtime.configure(config))

        status, _ = self._call(run)
        return status

    # Operations

    def search(
        self,
        items_json: str,
        predicate_json: str,
        options_json: Optional[str] = None,
    ) -> Tuple[Status, Optional[str]]:
        def run(runtime: EasyQRuntime) -> str:
            items = load_json(items_json, "Items")
            predicate = self._load_predicate(predicate_json)
            options = parse_document(
                SearchOptionsDocument, load_json(options_json, "Search options"), "search options"
            ).to_options()
            result = self._await(runtime.search(items, predicate, options))
            return self._store(result.to_dict())

        return self._call(run)

    @staticmethod
    def _load_predicate(predicate_json: str) -> Any:
        # Bare text such as `equals 'c'` is the predicate shorthand.
        try:
            return json.loads(predicate_json)
        except (TypeError, ValueError):
            if isinstance(predicate_json, str):
                return predicate_json
            return load_json(predicate_json, "Predicate")

    def generate_random_int(self, min_value: int, max_value: int) -> Tuple[Status, Optional[int]]:
        def run(runtime: EasyQRuntime) -> int:
            result = self._await(runtime.random_int(min_value, max_value))
            self._local.provenance = result.provenance
            return result.value

        return self._call(run)

    def generate_random_bytes(self, length: int) -> Tuple[Status, Optional[bytes]]:
        def run(runtime: EasyQRuntime) -> bytes:
            result = self._await(runtime.random_bytes(length))
            self._local.provenance = result.provenance
            return result.value

        return self._call(run)

    def generate_key(self, options_json: Optional[str] = None) -> Tuple[Status, Optional[str]]:
        def run(runtime: EasyQRuntime) -> str:
            options = parse_document(
                KeyOptionsDocument, load_json(options_json, "Key options"), "key options"
            ).to_options()
            result = self._await(runtime.generate_key(options))
            return self._store(result.to_dict())

        return self._call(run)

    def verify_channel_security(self, options_json: Optional[str] = None) -> Tuple[Status, Optional[str]]:
        def run(runtime: EasyQRuntime) -> str:
            options = parse_document(
                ChannelOptionsDocument, load_json(options_json, "Channel options"), "channel options"
            ).to_options()
            report = self._await(runtime.verify_channel_security(options))
            return self._store(report.to_dict())

        return self._call(run)


_default_bridge = Bridge()

initialize = _default_bridge.initialize
shutdown = _default_bridge.shutdown
configure_connection = _default_bridge.configure_connection
search = _default_bridge.search
generate_random_int = _default_bridge.generate_random_int
generate_random_bytes = _default_bridge.generate_random_bytes
generate_key = _default_bridge.generate_key
verify_channel_security = _default_bridge.verify_channel_security
free_string = _default_bridge.free_string
read_string = _default_bridge.read_string
borrowed_string = _default_bridge.borrowed_string
last_error = _default_bridge.last_error
last_provenance = _default_bridge.last_provenance
