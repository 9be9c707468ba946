"""Translate node IDs into attachment directory paths."""

import os
from collections.abc import Iterable

from org_attach.config import IdToPath


def uuid_folder_format(id_: str) -> str | None:
    """Split an ID into a two-character folder and the rest.

    Suited to IDs generated as UUIDs.
    """
    if len(id_) <= 2:
        return None
    return f"{id_[:2]}/{id_[2:]}"


def ts_folder_format(id_: str) -> str | None:
    """Split a timestamp ID into a year-month folder and the rest."""
    if len(id_) <= 6:
        return None
    return f"{id_[:6]}/{id_[6:]}"


def fallback_folder_format(id_: str) -> str | None:
    """Return `__/X/ID`, X being the first character of the ID.

    Meant as the last entry of the strategy list, for IDs the other strategies
    cannot handle. It piles many entries into a single folder.
    """
    if not id_:
        return None
    return f"__/{id_[0]}/{id_}"


TRANSLATE_FUNCS: dict[str, IdToPath] = {
    "uuid_folder_format": uuid_folder_format,
    "ts_folder_format": ts_folder_format,
    "fallback_folder_format": fallback_folder_format,
}


def _candidates(id_: str, strategies: Iterable[str | IdToPath]) -> list[str]:
    names: list[str] = []
    for strategy in strategies:
        func = TRANSLATE_FUNCS.get(strategy) if isinstance(strategy, str) else strategy
        if func is None:
            continue
        name = func(id_)
        if name:
            names.append(name)
    return names


def get_from_id(id_: str, *, base_dir: str, strategies: Iterable[str | IdToPath]) -> str | None:
    """Return the attachment directory for an ID, whether it exists or not.

    The first strategy returning a path wins.
    """
    names = _candidates(id_, strategies)
    return os.path.join(base_dir, names[0]) if names else None


def get_existing_from_id(
    id_: str,
    *,
    base_dir: str,
    fallback_dir: str,
    strategies: Iterable[str | IdToPath],
) -> str | None:
    """Like get_from_id(), but the directory must exist.

    Each strategy's candidate is tried under `base_dir`, then under
    `fallback_dir`.
    """
    for name in _candidates(id_, strategies):
        candidate = os.path.join(base_dir, name)
        if os.path.isdir(candidate):
            return candidate
        fallback = os.path.join(fallback_dir, name)
        if os.path.isdir(fallback):
            return fallback
    return None
