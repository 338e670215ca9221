"""Sync pair registry: CRUD and status lifecycle for sync pairs."""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import ConfigurationError
from ..models import SyncPairRow
from ..utils import is_owner_alive, now_ts
from .modes import SyncDirection, SyncPairStatus
from .pair import NewSyncPair, SyncPair

logger = logging.getLogger(__name__)


def _owner_is(owner: Optional[str]):
    if owner is None:
        return SyncPairRow.owner.is_(None)
    return SyncPairRow.owner == owner


def _row_to_pair(row: SyncPairRow) -> SyncPair:
    return SyncPair(
        id=row.id,
        name=row.name,
        local_path=Path(row.local_path),
        account_id=row.account_id,
        bucket=row.bucket,
        remote_prefix=row.remote_prefix,
        direction=SyncDirection(row.sync_direction),
        delete_propagation=row.delete_propagation,
        status=SyncPairStatus(row.status),
        created_at=row.created_at,
        last_sync_at=row.last_sync_at,
        last_error=row.last_error,
    )


class PairRegistry:
    """Stores sync pair configuration and tracks pair status.

    Status lifecycle: ``idle -> syncing -> idle | error``.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def create(self, new_pair: NewSyncPair) -> int:
        """Create a sync pair.

        Args:
            new_pair: Pair configuration

        Returns:
            Id of the new pair

        Raises:
            ConfigurationError: If the local path is not an existing directory,
                or another pair already binds the same endpoints
        """
        local_path = Path(new_pair.local_path)
        if not local_path.exists():
            raise ConfigurationError(f"Local path does not exist: {local_path}")
        if not local_path.is_dir():
            raise ConfigurationError(f"Local path is not a directory: {local_path}")
        if not new_pair.bucket:
            raise ConfigurationError("Bucket must not be empty")

        resolved = str(local_path.resolve())
        row = SyncPairRow(
            name=new_pair.name,
            local_path=resolved,
            account_id=new_pair.account_id,
            bucket=new_pair.bucket,
            remote_prefix=new_pair.remote_prefix,
            sync_direction=SyncDirection(new_pair.direction).value,
            delete_propagation=new_pair.delete_propagation,
            status=SyncPairStatus.IDLE.value,
            created_at=now_ts(),
        )

        with self._session_factory() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConfigurationError(
                    f"A sync pair already binds {resolved} to "
                    f"{new_pair.bucket}/{new_pair.remote_prefix} "
                    f"for account {new_pair.account_id}"
                ) from e
            logger.debug("Created sync pair %d (%s)", row.id, new_pair.name)
            return row.id

    def get(self, pair_id: int) -> Optional[SyncPair]:
        """Get a sync pair by id, or None if it does not exist."""
        with self._session_factory() as session:
            row = session.get(SyncPairRow, pair_id)
            return _row_to_pair(row) if row else None

    def require(self, pair_id: int) -> SyncPair:
        """Get a sync pair by id.

        Raises:
            ConfigurationError: If the pair does not exist
        """
        pair = self.get(pair_id)
        if pair is None:
            raise ConfigurationError(f"Sync pair not found: {pair_id}")
        return pair

    def list_pairs(self, account_id: Optional[str] = None) -> list[SyncPair]:
        """List sync pairs ordered by name, optionally for one account."""
        stmt = select(SyncPairRow).order_by(SyncPairRow.name, SyncPairRow.id)
        if account_id is not None:
            stmt = stmt.where(SyncPairRow.account_id == account_id)
        with self._session_factory() as session:
            return [_row_to_pair(row) for row in session.scalars(stmt)]

    def delete(self, pair_id: int) -> bool:
        """Delete a pair with its tracked files and sessions.

        Returns:
            True if the pair existed
        """
        with self._session_factory() as session:
            row = session.get(SyncPairRow, pair_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        logger.debug("Deleted sync pair %d", pair_id)
        return True

    def claim(self, pair_id: int, owner: str) -> bool:
        """Put a pair into ``syncing`` on behalf of a process.

        A pair already syncing under a live owner is left alone. One whose
        owner has died is taken over.

        Args:
            pair_id: Pair to claim
            owner: Claiming process, as returned by :func:`current_owner`

        Returns:
            True if the pair is now syncing under ``owner``
        """
        syncing = SyncPairStatus.SYNCING.value
        with self._session_factory() as session:
            result = session.execute(
                update(SyncPairRow)
                .where(SyncPairRow.id == pair_id, SyncPairRow.status != syncing)
                .values(status=syncing, owner=owner)
            )
            session.commit()
            if result.rowcount:
                return True

            previous = session.scalar(
                select(SyncPairRow.owner).where(SyncPairRow.id == pair_id)
            )
            if is_owner_alive(previous):
                return False

            # Take over only if no other process got there first
            stmt = update(SyncPairRow).where(
                SyncPairRow.id == pair_id,
                SyncPairRow.status == syncing,
                _owner_is(previous),
            )
            result = session.execute(stmt.values(owner=owner))
            session.commit()
        if result.rowcount:
            logger.warning("Took over pair %d from dead owner %s", pair_id, previous)
        return bool(result.rowcount)

    def active_owner(self, pair_id: int) -> Optional[str]:
        """Owner of a pair that is syncing in a live process, if any."""
        with self._session_factory() as session:
            row = session.get(SyncPairRow, pair_id)
            if row is None or row.status != SyncPairStatus.SYNCING.value:
                return None
            owner = row.owner
        return owner if is_owner_alive(owner) else None

    def set_status(self, pair_id: int, status: SyncPairStatus) -> None:
        """Update a pair's status, releasing any owner."""
        self._update(pair_id, status=status.value, owner=None)

    def mark_completed(self, pair_id: int) -> None:
        """Mark a pair idle after a successful sync and clear its last error."""
        self._update(
            pair_id,
            status=SyncPairStatus.IDLE.value,
            last_sync_at=now_ts(),
            last_error=None,
            owner=None,
        )

    def mark_failed(self, pair_id: int, error: str) -> None:
        """Put a pair into error status with a readable message."""
        self._update(
            pair_id, status=SyncPairStatus.ERROR.value, last_error=error, owner=None
        )

    def recover_interrupted(self) -> list[int]:
        """Move pairs left in ``syncing`` by a dead process to ``error``.

        Pairs whose owner is still running are not touched.

        Returns:
            Ids of the recovered pairs
        """
        recovered = []
        with self._session_factory() as session:
            stuck = session.execute(
                select(SyncPairRow.id, SyncPairRow.owner).where(
                    SyncPairRow.status == SyncPairStatus.SYNCING.value
                )
            ).all()
            for pair_id, owner in stuck:
                if is_owner_alive(owner):
                    continue
                result = session.execute(
                    update(SyncPairRow)
                    .where(
                        SyncPairRow.id == pair_id,
                        SyncPairRow.status == SyncPairStatus.SYNCING.value,
                        _owner_is(owner),
                    )
                    .values(
                        status=SyncPairStatus.ERROR.value,
                        last_error="Sync was interrupted",
                        owner=None,
                    )
                )
                if result.rowcount:
                    recovered.append(pair_id)
            session.commit()
        if recovered:
            logger.warning("Recovered interrupted sync pairs: %s", recovered)
        return recovered

    def _update(self, pair_id: int, **values) -> None:
        with self._session_factory() as session:
            session.execute(
                update(SyncPairRow).where(SyncPairRow.id == pair_id).values(**values)
            )
            session.commit()
