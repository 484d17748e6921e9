# src/shikigami/tasks/prefix.py

from __future__ import annotations

from ..core.ports import FudaRepo
from ..errors import AmbiguousPrefixError, InvalidArgumentError, NotFoundError
from .ids import ID_PREFIX


class PrefixResolver:
    """
    Map what a user typed to exactly one fuda id.

    - an exact id match wins
    - otherwise ids starting with the input (case-sensitive); "sk-" is
      implied when the input does not carry it
    - zero matches -> NotFoundError
    - several matches -> AmbiguousPrefixError (still a NotFoundError)
    """

    def __init__(self, fuda_repo: FudaRepo) -> None:
        self._fuda = fuda_repo

    @staticmethod
    def _normalize(prefix: str) -> str:
        raw = (prefix or "").strip()
        if not raw:
            raise InvalidArgumentError("id prefix is required")
        return raw

    def candidates(self, prefix: str, *, include_deleted: bool = False) -> list[str]:
        raw = self._normalize(prefix)
        id_prefix = raw if raw.startswith(ID_PREFIX) else f"{ID_PREFIX}{raw}"
        return self._fuda.ids_with_prefix(id_prefix, include_deleted=include_deleted)

    def resolve(self, prefix: str, *, include_deleted: bool = False) -> str:
        raw = self._normalize(prefix)

        exact = self._fuda.ids_with_prefix(raw, include_deleted=include_deleted)
        if raw in exact:
            return raw

        matches = self.candidates(raw, include_deleted=include_deleted)
        if not matches:
            raise NotFoundError(raw)
        if len(matches) > 1:
            raise AmbiguousPrefixError(raw, matches)
        return matches[0]


def resolve(fuda_repo: FudaRepo, prefix: str, *, include_deleted: bool = False) -> str:
    return PrefixResolver(fuda_repo).resolve(prefix, include_deleted=include_deleted)
