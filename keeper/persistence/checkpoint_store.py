# ABOUTME: Redis-backed checkpoint store persisting full Session State snapshots by session, type and location.
# ABOUTME: Supports location lookup (name index, then id scan), bounded auto retention, export and import.

import uuid
from datetime import datetime

from loguru import logger
from redis import Redis

from keeper.models.checkpoint import Checkpoint, CheckpointSummary, CheckpointType
from keeper.models.session_state import SessionState
from keeper.persistence import keys
from keeper.persistence.exceptions import CheckpointNotFound

DEFAULT_AUTO_RETENTION = 10


class CheckpointStore:
    """
    Persist and restore Session State snapshots.

    Layout:
        keeper:checkpoint:{id}                                   JSON record (camelCase)
        keeper:checkpoint:{id}:summary                           listing row without the snapshot
        keeper:session:{sid}:checkpoints                         all ids, scored by sequence
        keeper:session:{sid}:checkpoints:auto                    auto ids, scored by sequence
        keeper:session:{sid}:checkpoints:by_location:{name}      ids per location name
        keeper:session:{sid}:checkpoint_seq                      INCR creation sequence

    The creation sequence orders checkpoints; two saves within the same clock
    tick still have a strict order.
    """

    def __init__(self, redis_client: Redis, auto_retention: int = DEFAULT_AUTO_RETENTION):
        self.redis = redis_client
        self.auto_retention = auto_retention

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(
        self,
        session_id: str,
        name: str,
        checkpoint_type: CheckpointType,
        state: SessionState,
        description: str | None = None,
    ) -> Checkpoint:
        """
        Serialize and persist a full snapshot plus its summary row.

        Args:
            session_id: Owning session
            name: Checkpoint name
            checkpoint_type: auto, manual or transition
            state: Session State to snapshot
            description: Optional free text

        Returns:
            The stored Checkpoint
        """
        location = state.current_location
        status = state.protagonist.status
        checkpoint = Checkpoint(
            checkpoint_id=f"cp-{uuid.uuid4().hex[:12]}",
            session_id=session_id,
            checkpoint_name=name,
            checkpoint_type=checkpoint_type,
            description=description,
            serialized_state=state.model_dump_json(),
            game_day=state.game_day,
            game_time=state.time_of_day,
            location_name=location.name if location else None,
            location_descriptor=location.descriptor if location else None,
            protagonist_hp=status.hp,
            protagonist_sanity=status.sanity,
        )

        sequence = int(self.redis.incr(keys.checkpoint_sequence_key(session_id)))
        pipe = self.redis.pipeline()
        pipe.set(keys.checkpoint_key(checkpoint.checkpoint_id), checkpoint.model_dump_json(by_alias=True))
        pipe.set(
            keys.checkpoint_summary_key(checkpoint.checkpoint_id),
            checkpoint.summary().model_dump_json(by_alias=True),
        )
        pipe.zadd(keys.session_checkpoints_key(session_id), {checkpoint.checkpoint_id: sequence})
        if checkpoint_type == CheckpointType.AUTO:
            pipe.zadd(keys.auto_checkpoints_key(session_id), {checkpoint.checkpoint_id: sequence})
        if checkpoint.location_name:
            pipe.zadd(
                keys.location_checkpoints_key(session_id, checkpoint.location_name),
                {checkpoint.checkpoint_id: sequence},
            )
        pipe.execute()

        logger.info(
            f"Saved {checkpoint_type.value} checkpoint '{name}' ({checkpoint.checkpoint_id}) "
            f"for session {session_id} at {checkpoint.location_name or 'no location'}"
        )
        return checkpoint

    def save_auto(
        self,
        state: SessionState,
        name: str | None = None,
        keep: int | None = None,
    ) -> Checkpoint:
        """Save an auto checkpoint named after the current location, then prune"""
        if name is None:
            if state.current_location:
                name = state.current_location.name
            else:
                name = f"Auto-save - {datetime.now():%Y-%m-%d %H:%M:%S}"

        checkpoint = self.save(
            state.session_id, name, CheckpointType.AUTO, state, "Auto-saved by system"
        )
        self.prune_auto(state.session_id, self.auto_retention if keep is None else keep)
        return checkpoint

    def save_manual(
        self, state: SessionState, name: str, description: str | None = None
    ) -> Checkpoint:
        return self.save(state.session_id, name, CheckpointType.MANUAL, state, description)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load_by_id(self, checkpoint_id: str) -> Checkpoint | None:
        raw = self.redis.get(keys.checkpoint_key(checkpoint_id))
        if raw is None:
            return None
        return Checkpoint.model_validate_json(raw)

    def restore(self, checkpoint_id: str) -> SessionState:
        """
        Return the Session State embedded in a checkpoint.

        Raises:
            CheckpointNotFound: If the checkpoint does not exist
        """
        checkpoint = self.load_by_id(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFound(f"Checkpoint {checkpoint_id} not found")
        logger.info(
            f"Restoring checkpoint '{checkpoint.checkpoint_name}' from {checkpoint.created_at}"
        )
        return checkpoint.state

    def find_latest_for_location(
        self,
        session_id: str,
        location_name: str,
        location_id: str | None = None,
    ) -> Checkpoint | None:
        """
        Most recent checkpoint taken at a location.

        The location-name index is the fast path. When it has no match and a
        location id is supplied, every session checkpoint is deserialized,
        newest first, until one whose current location carries that id.
        A miss means the location has not been visited before.

        Args:
            session_id: Session to search
            location_name: Exact location name
            location_id: Optional location id for the fallback scan

        Returns:
            The matching Checkpoint, or None
        """
        latest_ids = self.redis.zrevrange(
            keys.location_checkpoints_key(session_id, location_name), 0, 0
        )
        for checkpoint_id in latest_ids:
            checkpoint = self.load_by_id(checkpoint_id)
            if checkpoint is not None:
                return checkpoint

        if location_id is None:
            return None

        for checkpoint_id in self.redis.zrevrange(keys.session_checkpoints_key(session_id), 0, -1):
            checkpoint = self.load_by_id(checkpoint_id)
            if checkpoint is None:
                continue
            location = checkpoint.state.current_location
            if location is not None and location.id == location_id:
                logger.debug(
                    f"Checkpoint {checkpoint_id} matched location id {location_id} "
                    f"(stored as '{location.name}')"
                )
                return checkpoint
        return None

    def get_latest(self, session_id: str) -> Checkpoint | None:
        for checkpoint_id in self.redis.zrevrange(keys.session_checkpoints_key(session_id), 0, 0):
            return self.load_by_id(checkpoint_id)
        return None

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_checkpoints(self, session_id: str, limit: int = 20) -> list[CheckpointSummary]:
        """Summary rows for a session, newest first"""
        if limit <= 0:
            return []
        checkpoint_ids = self.redis.zrevrange(
            keys.session_checkpoints_key(session_id), 0, limit - 1
        )
        return self._summaries(checkpoint_ids)

    def list_by_type(
        self,
        session_id: str,
        checkpoint_type: CheckpointType,
        limit: int = 10,
    ) -> list[CheckpointSummary]:
        checkpoint_ids = self.redis.zrevrange(keys.session_checkpoints_key(session_id), 0, -1)
        matching = [
            summary for summary in self._summaries(checkpoint_ids)
            if summary.checkpoint_type == checkpoint_type
        ]
        return matching[:limit]

    def load_summary(self, checkpoint_id: str) -> CheckpointSummary | None:
        raw = self.redis.get(keys.checkpoint_summary_key(checkpoint_id))
        if raw is not None:
            return CheckpointSummary.model_validate_json(raw)
        checkpoint = self.load_by_id(checkpoint_id)
        return checkpoint.summary() if checkpoint else None

    def _summaries(self, checkpoint_ids: list[str]) -> list[CheckpointSummary]:
        """
        Summary rows in the given order, read from the summary keys.

        A record saved without a summary key falls back to the full
        checkpoint; ids whose records are gone are skipped.
        """
        if not checkpoint_ids:
            return []
        rows = self.redis.mget([keys.checkpoint_summary_key(cid) for cid in checkpoint_ids])
        summaries = []
        for checkpoint_id, raw in zip(checkpoint_ids, rows):
            if raw is not None:
                summaries.append(CheckpointSummary.model_validate_json(raw))
                continue
            checkpoint = self.load_by_id(checkpoint_id)
            if checkpoint is not None:
                summaries.append(checkpoint.summary())
        return summaries

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def prune_auto(self, session_id: str, keep: int) -> int:
        """
        Delete all auto checkpoints of a session except the `keep` most recent.

        Manual and transition checkpoints are never touched.

        Returns:
            Number of checkpoints deleted
        """
        keep = max(keep, 0)
        doomed = self.redis.zrange(keys.auto_checkpoints_key(session_id), 0, -(keep + 1))
        for checkpoint_id in doomed:
            self.delete(checkpoint_id, session_id=session_id)

        if doomed:
            logger.info(f"Pruned {len(doomed)} auto checkpoints for session {session_id}")
        return len(doomed)

    def delete(self, checkpoint_id: str, session_id: str | None = None) -> bool:
        """Remove a checkpoint and its index entries"""
        summary = self.load_summary(checkpoint_id)
        if summary is None:
            return False
        session_id = session_id or summary.session_id

        pipe = self.redis.pipeline()
        pipe.delete(keys.checkpoint_key(checkpoint_id), keys.checkpoint_summary_key(checkpoint_id))
        pipe.zrem(keys.session_checkpoints_key(session_id), checkpoint_id)
        pipe.zrem(keys.auto_checkpoints_key(session_id), checkpoint_id)
        if summary.location_name:
            pipe.zrem(
                keys.location_checkpoints_key(session_id, summary.location_name),
                checkpoint_id,
            )
        pipe.execute()
        return True

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_json(self, checkpoint_id: str) -> str:
        """
        Raises:
            CheckpointNotFound: If the checkpoint does not exist
        """
        checkpoint = self.load_by_id(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFound(f"Checkpoint {checkpoint_id} not found")
        return checkpoint.model_dump_json(by_alias=True, indent=2)

    def import_json(self, payload: str, session_id: str | None = None) -> Checkpoint:
        """
        Store an exported checkpoint as a new manual checkpoint.

        Args:
            payload: JSON produced by export_json
            session_id: Target session (default: the exported checkpoint's session)

        Returns:
            The newly stored Checkpoint named "[Imported] <original name>"
        """
        imported = Checkpoint.model_validate_json(payload)
        state = imported.state
        target_session = session_id or imported.session_id
        if state.session_id != target_session:
            state = state.model_copy(update={"session_id": target_session})

        return self.save(
            target_session,
            f"[Imported] {imported.checkpoint_name}",
            CheckpointType.MANUAL,
            state,
            f"Imported from external source on {datetime.now():%Y-%m-%d %H:%M:%S}",
        )
