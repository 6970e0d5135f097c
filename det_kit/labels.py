from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


class LabelTable:
    """
    Immutable, index-addressed list of class names.

    Index is the class id emitted by the model. Entries may be empty strings when
    the label resource has gaps; those never match an allow-list.
    """

    __slots__ = ("_names",)

    def __init__(self, names: Iterable[str]):
        self._names: Tuple[str, ...] = tuple(str(n) for n in names)

    def __len__(self) -> int:
        return len(self._names)

    def __getitem__(self, index: int) -> str:
        return self._names[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabelTable):
            return NotImplemented
        return self._names == other._names

    def __hash__(self) -> int:
        return hash(self._names)

    def __repr__(self) -> str:
        return f"LabelTable({len(self._names)} labels)"

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    def get(self, index: int) -> Optional[str]:
        # Negative indices must not wrap around like Python sequences do.
        if 0 <= index < len(self._names):
            return self._names[index]
        return None

    def index_of(self, name: str) -> int:
        return self._names.index(name)


def _parse_names_mapping(lines: List[str]) -> Optional[Dict[int, str]]:
    """
    Parse the lightweight `metadata.yaml` layout:

        names:
          0: person
          1: bicycle

    Returns None when the file does not use this layout.
    """

    names: Dict[int, str] = {}
    in_names = False
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        if not left.isdigit():
            continue
        names[int(left)] = right.strip().strip("'").strip('"')

    return names if in_names else None


def load_label_table(path: PathLike) -> LabelTable:
    """
    Load class names from a label resource.

    Plain text files hold one label per line; the zero-based line number is the
    class id, so blank lines are kept as empty labels. A `names:` mapping file is
    also accepted, with missing ids filled by empty labels.
    """

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Label file not found: {p}")

    text = p.read_text(encoding="utf-8")
    lines = text.splitlines()

    mapping = _parse_names_mapping(lines)
    if mapping is not None:
        size = max(mapping) + 1 if mapping else 0
        table = LabelTable(mapping.get(i, "") for i in range(size))
    else:
        table = LabelTable(line.rstrip("\r") for line in lines)

    LOGGER.debug("Loaded %d labels from %s", len(table), p)
    return table
