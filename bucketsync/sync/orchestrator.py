"""Entry point for sync pair management and background sync runs."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from ..exceptions import AlreadyRunningError, SyncCancelledError
from ..storage import StorageClient
from ..utils import current_owner
from .engine import SyncEngine
from .modes import Side, SyncPairStatus
from .operations import SyncOperations
from .pair import NewSyncPair, SyncPair
from .planner import SyncPlan, SyncPlanner
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .registry import PairRegistry
from .scanner import DirectoryScanner
from .sessions import DEFAULT_SESSION_LIMIT, SessionTracker, SyncSession
from .state import StateStore

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs syncs for pairs in the background and tracks them.

    Each pair has at most one active run. Distinct pairs run concurrently on
    a thread pool. Every active run owns a :class:`threading.Event` that
    :meth:`cancel_sync` sets; the run checks it between listing pages and
    before each file action.

    Examples:
        >>> orchestrator = SyncOrchestrator(registry, state, sessions, get_client)
        >>> new_pair = NewSyncPair("docs", "~/docs", "r2", "bk")
        >>> pair_id = orchestrator.create_pair(new_pair)
        >>> session_id = orchestrator.start_sync(pair_id)
        >>> orchestrator.wait(pair_id)
    """

    def __init__(
        self,
        registry: PairRegistry,
        state_store: StateStore,
        sessions: SessionTracker,
        client_factory: Callable[[str], StorageClient],
        max_workers: int = 4,
        progress_callback: Optional[Callable[[SyncProgressInfo], None]] = None,
    ):
        """Initialize the orchestrator.

        Pairs left ``syncing`` and sessions left ``running`` by a process
        that is no longer alive are recovered as failed. Runs owned by other
        live processes are left alone.

        Args:
            registry: Pair registry
            state_store: Tracked file state store
            sessions: Session tracker
            client_factory: Returns the storage client for an account id
            max_workers: Maximum number of pairs syncing at once
            progress_callback: Receives progress events of every run
        """
        self.registry = registry
        self.state_store = state_store
        self.sessions = sessions
        self.client_factory = client_factory
        self.scanner = DirectoryScanner()
        self.planner = SyncPlanner()
        self.tracker = SyncProgressTracker(progress_callback)

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="bucketsync"
        )
        self._lock = threading.Lock()
        self._active: dict[int, threading.Event] = {}
        self._futures: dict[int, Future] = {}
        self._owner = current_owner()

        self.registry.recover_interrupted()
        self.sessions.recover_interrupted()

    def create_pair(self, new_pair: NewSyncPair) -> int:
        return self.registry.create(new_pair)

    def get_pair(self, pair_id: int) -> Optional[SyncPair]:
        return self.registry.get(pair_id)

    def list_pairs(self, account_id: Optional[str] = None) -> list[SyncPair]:
        return self.registry.list_pairs(account_id)

    def delete_pair(self, pair_id: int) -> bool:
        """Delete a pair with its tracked state and sessions.

        Returns:
            True if the pair existed

        Raises:
            AlreadyRunningError: If the pair is currently syncing here or in
                another live process
        """
        with self._lock:
            if pair_id in self._active:
                raise AlreadyRunningError(
                    f"Cannot delete sync pair {pair_id} while it is syncing"
                )
            if self.registry.active_owner(pair_id) is not None:
                raise AlreadyRunningError(
                    f"Cannot delete sync pair {pair_id} while another process "
                    "is syncing it"
                )
            return self.registry.delete(pair_id)

    def list_sessions(
        self, pair_id: int, limit: int = DEFAULT_SESSION_LIMIT
    ) -> list[SyncSession]:
        return self.sessions.list_sessions(pair_id, limit)

    def preview_sync(self, pair_id: int) -> SyncPlan:
        """Compute what a sync would do right now without changing anything.

        Raises:
            ConfigurationError: If the pair or its account does not exist
            StorageError: If scanning fails
        """
        pair = self.registry.require(pair_id)
        client = self.client_factory(pair.account_id)
        local_current, remote_current = self.scanner.scan_current_state(pair, client)
        return self.planner.plan(
            pair,
            self.state_store.get_files(pair.id, Side.LOCAL),
            self.state_store.get_files(pair.id, Side.REMOTE),
            local_current,
            remote_current,
        )

    def start_sync(self, pair_id: int, is_resync: bool = False) -> int:
        """Start a sync in the background.

        Args:
            pair_id: Pair to sync
            is_resync: Forget the tracked state first, so every current file
                of the source side is transferred

        Returns:
            Id of the new session

        Raises:
            ConfigurationError: If the pair or its account does not exist
            AlreadyRunningError: If the pair is already syncing here or in
                another live process
        """
        pair = self.registry.require(pair_id)
        with self._lock:
            if pair_id in self._active:
                raise AlreadyRunningError(f"Sync pair {pair_id} is already syncing")
            client = self.client_factory(pair.account_id)
            if not self.registry.claim(pair_id, self._owner):
                raise AlreadyRunningError(
                    f"Sync pair {pair_id} is already syncing in another process"
                )

            cancel_event = threading.Event()
            session_id: Optional[int] = None
            try:
                self.sessions.recover_interrupted()
                session_id = self.sessions.create(pair_id, self._owner)
                self._active[pair_id] = cancel_event
                self._futures[pair_id] = self._executor.submit(
                    self._run, pair, client, session_id, cancel_event, is_resync
                )
            except Exception as e:
                self._active.pop(pair_id, None)
                if session_id is not None:
                    self.sessions.fail(session_id, str(e))
                self.registry.mark_failed(pair_id, str(e))
                raise

        logger.info("Started sync of pair %d (session %d)", pair_id, session_id)
        return session_id

    def cancel_sync(self, pair_id: int) -> bool:
        """Request cancellation of a pair's active sync.

        Safe to call at any time and any number of times.

        Returns:
            True if a sync was active
        """
        with self._lock:
            cancel_event = self._active.get(pair_id)
        if cancel_event is None:
            return False
        cancel_event.set()
        logger.info("Cancellation requested for pair %d", pair_id)
        return True

    def is_running(self, pair_id: int) -> bool:
        with self._lock:
            return pair_id in self._active

    def wait(self, pair_id: int, timeout: Optional[float] = None) -> bool:
        """Block until the pair's latest run has finished.

        Returns:
            False if the timeout expired first
        """
        with self._lock:
            future = self._futures.get(pair_id)
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    def shutdown(self, cancel: bool = True) -> None:
        """Stop the worker pool, optionally cancelling active runs first."""
        if cancel:
            with self._lock:
                events = list(self._active.values())
            for cancel_event in events:
                cancel_event.set()
        self._executor.shutdown(wait=True)

    def _run(
        self,
        pair: SyncPair,
        client: StorageClient,
        session_id: int,
        cancel_event: threading.Event,
        is_resync: bool,
    ) -> None:
        engine = SyncEngine(
            SyncOperations(client, self.state_store), self.state_store, self.sessions
        )
        stats = engine.create_empty_stats()
        try:
            if is_resync:
                self.state_store.clear(pair.id)

            self.tracker.emit(
                SyncProgressInfo(
                    event=SyncProgressEvent.SCANNING,
                    pair_id=pair.id,
                    session_id=session_id,
                )
            )
            local_current, remote_current = self.scanner.scan_current_state(
                pair, client, cancel_event
            )
            plan = self.planner.plan(
                pair,
                self.state_store.get_files(pair.id, Side.LOCAL),
                self.state_store.get_files(pair.id, Side.REMOTE),
                local_current,
                remote_current,
                is_resync=is_resync,
            )
            engine.execute(
                pair,
                plan,
                session_id,
                cancel_event=cancel_event,
                tracker=self.tracker,
                stats=stats,
            )
        except SyncCancelledError:
            self.sessions.cancel(session_id, stats)
            self.registry.set_status(pair.id, SyncPairStatus.IDLE)
            logger.info("Sync of pair %d cancelled", pair.id)
            self._emit_final(SyncProgressEvent.CANCELLED, pair, session_id, stats)
        except Exception as e:
            logger.exception("Sync of pair %d failed", pair.id)
            self.sessions.fail(session_id, str(e), stats)
            self.registry.mark_failed(pair.id, str(e))
            self._emit_final(
                SyncProgressEvent.ERROR, pair, session_id, stats, error=str(e)
            )
        else:
            self.sessions.complete(session_id, stats)
            self.registry.mark_completed(pair.id)
            logger.info(
                "Sync of pair %d complete: %d uploaded, %d downloaded, "
                "%d deleted locally, %d deleted remotely",
                pair.id,
                stats["uploads"],
                stats["downloads"],
                stats["deletes_local"],
                stats["deletes_remote"],
            )
            self._emit_final(SyncProgressEvent.COMPLETE, pair, session_id, stats)
        finally:
            with self._lock:
                self._active.pop(pair.id, None)

    def _emit_final(
        self,
        event: SyncProgressEvent,
        pair: SyncPair,
        session_id: int,
        stats: dict,
        error: Optional[str] = None,
    ) -> None:
        self.tracker.emit(
            SyncProgressInfo(
                event=event,
                pair_id=pair.id,
                session_id=session_id,
                files_processed=stats["processed"],
                bytes_transferred=stats["bytes_transferred"],
                error=error,
                stats=dict(stats),
            )
        )
