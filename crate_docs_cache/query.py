"""Queries over rustdoc JSON documentation data."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

_KIND_NAMES = {
    "module": "module",
    "struct": "struct",
    "enum": "enum",
    "function": "function",
    "trait": "trait",
    "impl": "impl",
    "type_alias": "type_alias",
    "constant": "constant",
    "static": "static",
    "macro": "macro",
    "extern_crate": "extern_crate",
    "use": "use",
    "union": "union",
    "struct_field": "field",
    "variant": "variant",
    "trait_alias": "trait_alias",
    "proc_macro": "proc_macro",
    "primitive": "primitive",
    "assoc_const": "assoc_const",
    "assoc_type": "assoc_type",
    "extern_type": "extern_type",
}


@dataclass
class ItemInfo:
    """Simplified description of a documented item."""

    id: str
    name: str
    kind: str
    path: list[str] = field(default_factory=list)
    docs: str | None = None
    visibility: str = "public"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SourceLocation:
    """Where an item is defined in its source file."""

    filename: str
    line_start: int
    column_start: int
    line_end: int
    column_end: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SourceInfo:
    """Source code of an item, with its location."""

    location: SourceLocation
    code: str
    context_lines: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location.to_dict(),
            "code": self.code,
            "context_lines": self.context_lines,
        }


@dataclass
class DetailedItem:
    """Full information about an item, including kind-specific details."""

    info: ItemInfo
    signature: str | None = None
    generics: Any = None
    fields: list[ItemInfo] | None = None
    variants: list[ItemInfo] | None = None
    methods: list[ItemInfo] | None = None
    source_location: SourceLocation | None = None

    def to_dict(self) -> dict[str, Any]:
        def _infos(items: list[ItemInfo] | None) -> list[dict[str, Any]] | None:
            return None if items is None else [item.to_dict() for item in items]

        return {
            "info": self.info.to_dict(),
            "signature": self.signature,
            "generics": self.generics,
            "fields": _infos(self.fields),
            "variants": _infos(self.variants),
            "methods": _infos(self.methods),
            "source_location": (
                self.source_location.to_dict() if self.source_location else None
            ),
        }


def _note(name: str, kind: str) -> ItemInfo:
    return ItemInfo(id="", name=name, kind=kind, path=[], docs=None, visibility="private")


def _split_inner(inner: Any) -> tuple[str, Any]:
    if isinstance(inner, str):
        return inner, None
    if isinstance(inner, dict) and inner:
        key = next(iter(inner))
        return key, inner[key]
    raise ValueError(f"Unrecognised item kind: {inner!r}")


def _source_lines(content: str) -> list[str]:
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class DocQuery:
    """Query interface over a crate's rustdoc JSON data."""

    def __init__(self, crate_data: dict[str, Any]):
        self._index: dict[int, dict[str, Any]] = {
            int(key): value for key, value in crate_data.get("index", {}).items()
        }
        self._paths: dict[int, dict[str, Any]] = {
            int(key): value for key, value in crate_data.get("paths", {}).items()
        }

    def list_items(self, kind_filter: str | None = None) -> list[ItemInfo]:
        """List all items, optionally restricted to one kind, sorted by path and name."""
        items = []
        for item_id, item in self._index.items():
            if kind_filter is not None and self._kind(item) != kind_filter:
                continue
            info = self._to_info(item_id, item)
            if info is not None:
                items.append(info)
        items.sort(key=lambda info: (info.path, info.name))
        return items

    def search_items(self, pattern: str) -> list[ItemInfo]:
        """Find items whose name contains the pattern, most relevant first."""
        needle = pattern.lower()
        items = []
        for item_id, item in self._index.items():
            name = self._name(item_id, item)
            if name is None or needle not in name.lower():
                continue
            info = self._to_info(item_id, item)
            if info is not None:
                items.append(info)

        def relevance(info: ItemInfo) -> tuple[bool, bool, int, str]:
            lowered = info.name.lower()
            return (
                lowered != needle,
                not lowered.startswith(needle),
                len(info.name.encode("utf-8")),
                info.name,
            )

        items.sort(key=relevance)
        return items

    def get_item_details(self, item_id: int) -> DetailedItem:
        """Return full details for the item with the given id."""
        item = self._lookup(item_id)
        info = self._to_info(item_id, item)
        if info is None:
            raise ValueError("Failed to convert item to info")

        details = DetailedItem(
            info=info,
            signature=self._signature(item),
            source_location=self._location(item),
        )
        kind, inner = _split_inner(item.get("inner"))
        if kind == "struct":
            details.generics = inner.get("generics")
            details.fields = self._struct_fields(inner)
        elif kind == "enum":
            details.generics = inner.get("generics")
            details.variants = self._enum_variants(inner)
        elif kind in ("trait", "impl"):
            details.generics = inner.get("generics")
            details.methods = self._infos_for(inner.get("items", []))
        elif kind == "function":
            details.generics = inner.get("generics")
        return details

    def get_item_docs(self, item_id: int) -> str | None:
        """Return the documentation string of an item, or None if it has none."""
        return self._lookup(item_id).get("docs")

    def get_item_source(
        self, item_id: int, base_path: str | Path, context_lines: int = 3
    ) -> SourceInfo:
        """Read an item's source code with the given number of surrounding lines."""
        item = self._lookup(item_id)
        span = item.get("span")
        if not span:
            raise ValueError("Item has no source span")
        source_path = Path(base_path) / span["filename"]
        if not source_path.exists():
            raise FileNotFoundError(f"Source file not found: {source_path}")

        lines = _source_lines(source_path.read_text(encoding="utf-8", errors="replace"))
        begin_line, end_line = span["begin"][0], span["end"][0]
        start = max(begin_line - 1 - context_lines, 0)
        end = min(end_line + context_lines, len(lines))

        return SourceInfo(
            location=self._location(item),
            code="\n".join(lines[start:end]),
            context_lines=context_lines,
        )

    def _lookup(self, item_id: int) -> dict[str, Any]:
        try:
            return self._index[int(item_id)]
        except KeyError:
            raise LookupError(f"Item not found: {item_id}") from None

    def _name(self, item_id: int, item: dict[str, Any]) -> str | None:
        name = item.get("name")
        if name is not None:
            return name
        summary = self._paths.get(item_id)
        if summary and summary.get("path"):
            return summary["path"][-1]
        return None

    def _to_info(self, item_id: int, item: dict[str, Any]) -> ItemInfo | None:
        name = self._name(item_id, item)
        if name is None:
            return None
        summary = self._paths.get(item_id)
        return ItemInfo(
            id=str(item_id),
            name=name,
            kind=self._kind(item),
            path=list(summary["path"]) if summary else [],
            docs=item.get("docs"),
            visibility=self._visibility(item.get("visibility")),
        )

    @staticmethod
    def _kind(item: dict[str, Any]) -> str:
        kind, _ = _split_inner(item.get("inner"))
        return _KIND_NAMES.get(kind, kind)

    @staticmethod
    def _visibility(vis: Any) -> str:
        if isinstance(vis, str):
            return vis
        if isinstance(vis, dict) and "restricted" in vis:
            return f"restricted({vis['restricted']['parent']})"
        return "default"

    def _signature(self, item: dict[str, Any]) -> str | None:
        kind, inner = _split_inner(item.get("inner"))
        name = item.get("name")
        if kind != "function" or name is None:
            return None
        generics = "<...>" if inner.get("generics", {}).get("params") else ""
        sig = inner.get("sig", {})
        params = ", ".join(param[0] for param in sig.get("inputs", []))
        output = " -> ..." if sig.get("output") is not None else ""
        return f"fn {name}{generics}({params}){output}"

    def _infos_for(self, ids: list[Any]) -> list[ItemInfo]:
        infos = []
        for raw_id in ids:
            item = self._index.get(int(raw_id))
            if item is None:
                continue
            info = self._to_info(int(raw_id), item)
            if info is not None:
                infos.append(info)
        return infos

    def _struct_fields(self, struct: dict[str, Any]) -> list[ItemInfo]:
        kind = struct.get("kind")
        if kind == "unit" or kind is None:
            return []
        if "tuple" in kind:
            fields = []
            for position, raw_id in enumerate(kind["tuple"]):
                if raw_id is None:
                    fields.append(_note(f"(field {position} stripped)", "field"))
                    continue
                item = self._index.get(int(raw_id))
                if item is None:
                    continue
                info = self._to_info(int(raw_id), item)
                if info is None:
                    continue
                if not info.name:
                    info.name = str(position)
                fields.append(info)
            return fields
        plain = kind["plain"]
        fields = self._infos_for(plain.get("fields", []))
        if plain.get("has_stripped_fields"):
            fields.append(_note("(some fields stripped)", "note"))
        return fields

    def _enum_variants(self, enum: dict[str, Any]) -> list[ItemInfo]:
        variants = self._infos_for(enum.get("variants", []))
        if enum.get("has_stripped_variants"):
            variants.append(_note("(some variants stripped)", "note"))
        return variants

    @staticmethod
    def _location(item: dict[str, Any]) -> SourceLocation | None:
        span = item.get("span")
        if not span:
            return None
        return SourceLocation(
            filename=str(span["filename"]),
            line_start=span["begin"][0],
            column_start=span["begin"][1],
            line_end=span["end"][0],
            column_end=span["end"][1],
        )