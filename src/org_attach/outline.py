"""JSON outline documents.

A document file holds a Dynalist-style node list::

    {
        "file_id": "doc1",
        "title": "Notes",
        "nodes": [
            {"id": "root", "content": "Notes", "children": ["n1"], "properties": {}},
            {"id": "n1", "content": "Task", "properties": {"DIR": "./files"}, "tags": []}
        ]
    }

Node `root` stands for the whole document and carries the document-level
properties. All other nodes are entries. Property names are case-insensitive
and stored upper-case.
"""

import json
import uuid
from pathlib import Path
from typing import Any

from loguru import logger

ROOT_ID = "root"


def _prop_key(name: str) -> str:
    return name.upper()


def _new_id() -> str:
    return str(uuid.uuid4())


class OutlineEntry:
    """A single entry of an outline document."""

    def __init__(
        self,
        raw: dict[str, Any],
        *,
        document: "OutlineDocument",
        parent: "OutlineEntry | None",
        start: int,
    ) -> None:
        self._raw = raw
        self.document = document
        self.parent = parent
        self._start = start

    def __repr__(self) -> str:
        return f"OutlineEntry(id={self.node_id!r}, start={self._start})"

    @property
    def node_id(self) -> str:
        return str(self._raw["id"])

    @property
    def start(self) -> int:
        """1-based pre-order position in the document."""
        return self._start

    @property
    def title(self) -> str:
        return self.content.split("\n", 1)[0]

    @property
    def content(self) -> str:
        return str(self._raw.get("content", ""))

    @content.setter
    def content(self, value: str) -> None:
        self._raw["content"] = value

    @property
    def note(self) -> str:
        return str(self._raw.get("note", ""))

    @note.setter
    def note(self, value: str) -> None:
        if value:
            self._raw["note"] = value
        else:
            self._raw.pop("note", None)

    @property
    def properties(self) -> dict[str, str]:
        return self._raw.setdefault("properties", {})  # type: ignore[no-any-return]

    def get_property(self, name: str, search_parents: bool = False) -> str | None:
        key = _prop_key(name)
        entry: OutlineEntry | None = self
        while entry is not None:
            value = entry.properties.get(key)
            if value is not None or not search_parents:
                return value
            entry = entry.parent
        return None

    def set_property(self, name: str, value: str | None) -> None:
        key = _prop_key(name)
        if value is None:
            self.properties.pop(key, None)
        else:
            self.properties[key] = value

    def get_own_tags(self) -> list[str]:
        return list(self._raw.get("tags", []))

    def set_tags(self, tags: list[str]) -> None:
        if tags:
            self._raw["tags"] = list(tags)
        else:
            self._raw.pop("tags", None)

    def id_get_or_create(self) -> str:
        existing = self.get_property("ID")
        if existing:
            return existing
        new_id = _new_id()
        self.set_property("ID", new_id)
        return new_id


class OutlineDocument:
    """An outline document loaded from a JSON file."""

    def __init__(self, data: dict[str, Any], *, filename: str | Path) -> None:
        self._data = data
        self._filename = str(Path(filename).expanduser().resolve())

        nodes_by_id = {n["id"]: n for n in data["nodes"]}
        if ROOT_ID not in nodes_by_id:
            msg = f"Document {self._filename!r} has no {ROOT_ID!r} node"
            raise ValueError(msg)
        self._root = nodes_by_id.pop(ROOT_ID)

        # Pre-order walk, so start positions follow the order shown to the user.
        self._entries: dict[str, OutlineEntry] = {}
        todo: list[tuple[str, OutlineEntry | None]] = [
            (cid, None) for cid in self._root.get("children", [])
        ]
        start = 0
        while todo:
            node_id, parent = todo.pop(0)
            if node_id not in nodes_by_id:
                msg = f"Document {self._filename!r} references missing node {node_id!r}"
                raise ValueError(msg)
            raw = nodes_by_id.pop(node_id)
            start += 1
            entry = OutlineEntry(raw, document=self, parent=parent, start=start)
            self._entries[node_id] = entry
            todo = [(cid, entry) for cid in raw.get("children", [])] + todo

        if nodes_by_id:
            msg = f"Orphaned nodes: {sorted(nodes_by_id.keys())!r}"
            raise ValueError(msg)

    @classmethod
    def load(cls, path: str | Path) -> "OutlineDocument":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls(data, filename=path)

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def title(self) -> str:
        return str(self._data.get("title") or Path(self._filename).stem)

    @property
    def entries(self) -> list[OutlineEntry]:
        return list(self._entries.values())

    def entry(self, node_id: str) -> OutlineEntry:
        """Return the entry with the given node id.

        Raises:
            KeyError: if there is no such entry.
        """
        return self._entries[node_id]

    def entry_at(self, position: int) -> OutlineEntry | None:
        """Return the closest entry starting at or before `position`."""
        found = None
        for entry in self._entries.values():
            if entry.start > position:
                break
            found = entry
        return found

    @property
    def properties(self) -> dict[str, str]:
        return self._root.setdefault("properties", {})  # type: ignore[no-any-return]

    def get_property(self, name: str) -> str | None:
        return self.properties.get(_prop_key(name))

    def set_property(self, name: str, value: str | None) -> None:
        key = _prop_key(name)
        if value is None:
            self.properties.pop(key, None)
        else:
            self.properties[key] = value

    def id_get_or_create(self) -> str:
        existing = self.get_property("ID")
        if existing:
            return existing
        new_id = _new_id()
        self.set_property("ID", new_id)
        return new_id

    def to_dict(self) -> dict[str, Any]:
        return self._data

    def save(self, path: str | Path | None = None) -> bool:
        """Write the document back as pretty JSON.

        The file is left untouched if its contents would not change.

        Returns:
            True if the file was written.
        """
        fname = str(path) if path is not None else self._filename
        contents = json.dumps(self._data, sort_keys=True, indent=4) + "\n"
        try:
            with open(fname, encoding="utf-8") as f:
                if f.read() == contents:
                    logger.debug("Document {} unchanged", fname)
                    return False
        except FileNotFoundError:
            pass
        with open(fname, "w", encoding="utf-8") as f:
            f.write(contents)
        logger.debug("Wrote document {}", fname)
        return True
