# src/shikigami/tasks/claim.py

from __future__ import annotations

import logging

from ..errors import AlreadyInProgressError, InvalidStatusError, NotFoundError
from .task_models import CLAIMABLE_STATUSES, Fuda, TaskStatus
from .task_store import FudaStore

logger = logging.getLogger(__name__)


class ClaimCoordinator:
    """
    Hands a fuda to a spirit.

    The transition itself is one conditioned UPDATE in FudaStore.try_claim,
    so two workers racing for the same READY fuda cannot both win. Only
    after a lost race do we read the row to explain why.
    """

    def __init__(self, fuda_store: FudaStore) -> None:
        self._fuda = fuda_store

    def claim(self, fuda_id: str, spirit_id: str | None, *, actor: str | None = None) -> Fuda:
        claimed = self._fuda.try_claim(fuda_id, spirit_id, actor=actor)
        if claimed is not None:
            logger.info("Fuda %s claimed by %s", fuda_id, claimed.assigned_spirit_id)
            return claimed

        current = self._fuda.find(fuda_id)
        if current is None:
            raise NotFoundError(fuda_id)
        if current.status == TaskStatus.IN_PROGRESS:
            logger.info("Claim lost fuda=%s spirit=%s holder=%s", fuda_id, spirit_id, current.assigned_spirit_id)
            raise AlreadyInProgressError(fuda_id, current.assigned_spirit_id)

        allowed = " or ".join(f"'{s.value}'" for s in CLAIMABLE_STATUSES)
        raise InvalidStatusError(
            fuda_id,
            current.status.value,
            f"Cannot start fuda with status '{current.status.value}'. Only {allowed} fuda can be started.",
        )
