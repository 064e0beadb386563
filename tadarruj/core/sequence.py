from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml


@dataclass(frozen=True)
class Section:
    key: str
    title: str
    order: int
    items: List[str]


@dataclass
class Sequence:
    """Ordered sections whose items share one global index space."""

    key: str
    title: str
    sections: List[Section] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(len(section.items) for section in self.sections)

    def section(self, section_key: str) -> Section:
        for section in self.sections:
            if section.key == section_key:
                return section
        raise KeyError(section_key)

    def start_index(self, section_key: str) -> int:
        """Global index of the first item of *section_key*."""
        start = 0
        for section in self.sections:
            if section.key == section_key:
                return start
            start += len(section.items)
        raise KeyError(section_key)

    def global_index(self, section_key: str, local_index: int) -> int:
        section = self.section(section_key)
        if not 0 <= local_index < len(section.items):
            raise IndexError(
                f"{section_key}: item {local_index} out of range (0..{len(section.items) - 1})"
            )
        return self.start_index(section_key) + local_index

    def locate(self, global_index: int) -> Tuple[Section, int]:
        """Return the section holding *global_index* and the item's position in it."""
        if global_index >= 0:
            start = 0
            for section in self.sections:
                if global_index < start + len(section.items):
                    return section, global_index - start
                start += len(section.items)
        raise IndexError(f"global index {global_index} out of range (total {self.total_items})")


def default_sequences_dir() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "sequences"


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class SequenceRepository:
    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else default_sequences_dir()
        self._sequences = self._load_sequences()

    def all(self) -> List[Sequence]:
        return list(self._sequences.values())

    def get(self, key: str) -> Sequence:
        return self._sequences[key]

    def _load_sequences(self) -> Dict[str, Sequence]:
        if not self._base_dir.exists():
            raise FileNotFoundError(f"Sequences directory not found: {self._base_dir}")

        sequences: Dict[str, Sequence] = {}
        for path in sorted(self._base_dir.glob("*.yaml")):
            sequences[path.stem] = self._load_sequence(path)

        if not sequences:
            raise ValueError(f"No sequence files (*.yaml) found in {self._base_dir}")
        return sequences

    def _load_sequence(self, path: Path) -> Sequence:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not raw or not isinstance(raw, dict):
            raise ValueError(f"{path.name}: expected YAML with 'title' and 'sections'")
        title = raw.get("title")
        if not title or not isinstance(title, str):
            raise ValueError(f"{path.name}: missing or invalid 'title'")
        raw_sections = raw.get("sections")
        if not isinstance(raw_sections, list) or not raw_sections:
            raise ValueError(f"{path.name}: 'sections' must be a non-empty list")

        sections: List[Section] = []
        seen: set[str] = set()
        for position, entry in enumerate(raw_sections):
            if not isinstance(entry, dict):
                raise ValueError(f"{path.name}: section #{position + 1} must be a mapping")
            section_title = entry.get("title")
            if not section_title or not isinstance(section_title, str):
                raise ValueError(f"{path.name}: section #{position + 1} has no 'title'")
            order = entry.get("order", position)
            if isinstance(order, bool) or not isinstance(order, int):
                raise ValueError(f"{path.name}: section '{section_title}' has a non-integer 'order'")
            items = entry.get("items") or []
            if isinstance(items, list):
                items = [str(item).strip() for item in items if str(item).strip()]
            else:
                # allow items as a multiline string
                items = [line.strip() for line in str(items).splitlines() if line.strip()]
            key = str(entry.get("key") or _slug(section_title))
            if key in seen:
                raise ValueError(f"{path.name}: duplicate section key '{key}'")
            seen.add(key)
            sections.append(Section(key=key, title=section_title.strip(), order=order, items=items))

        # stable sort keeps file position for equal orders
        sections.sort(key=lambda s: s.order)
        return Sequence(key=path.stem, title=title.strip(), sections=sections)
