from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence

BASE_DIR = Path(__file__).resolve().parent
QUERIES_DIR = BASE_DIR / "queries"

VARIANTS: tuple[str, ...] = ("unoptimized", "optimized")


@dataclass(frozen=True)
class QueryDefinition:
    """One named benchmark query. The query text is opaque to the harness."""

    name: str
    query: str
    case: str | None = None
    variant: str | None = None


@dataclass
class QueryCatalog:
    """Ordered set of query definitions the harness will execute."""

    definitions: list[QueryDefinition] = field(default_factory=list)
    source: str = "default"

    def __post_init__(self) -> None:
        seen: set[str] = set()
        pairs: set[tuple[str, str]] = set()
        for definition in self.definitions:
            if definition.name in seen:
                raise ValueError(f"Duplicate query name in catalog: {definition.name!r}")
            seen.add(definition.name)
            if definition.case and definition.variant:
                key = (definition.case, definition.variant)
                if key in pairs:
                    raise ValueError(
                        f"Case {definition.case!r} has more than one {definition.variant} query"
                    )
                pairs.add(key)

    def __iter__(self) -> Iterator[QueryDefinition]:
        return iter(self.definitions)

    def __len__(self) -> int:
        return len(self.definitions)

    def names(self) -> list[str]:
        return [definition.name for definition in self.definitions]


# (case label, file stem) in execution order; each case runs unoptimized first.
DEFAULT_CASES: Sequence[tuple[str, str]] = (
    ("Daily Avg", "daily_avg"),
    ("ERC20", "erc20"),
    ("Peak Security", "peak_security"),
    ("Top Internal", "top_internal"),
    ("Top Sender", "top_sender"),
)


def default_catalog() -> QueryCatalog:
    """Return the five unoptimized/optimized query pairs shipped with the package."""

    definitions = [
        QueryDefinition(
            name=f"{case} {variant.title()}",
            query=_read_query(QUERIES_DIR / f"{stem}_{variant}.sql"),
            case=case,
            variant=variant,
        )
        for case, stem in DEFAULT_CASES
        for variant in VARIANTS
    ]
    return QueryCatalog(definitions=definitions, source=str(QUERIES_DIR))


def load_catalog(path: str | Path | None) -> QueryCatalog:
    """Load a catalog from a JSON file, or the packaged default when no path is given.

    The file holds a list of objects with a ``name`` and either an inline
    ``query`` or a ``path`` to a ``.sql`` file relative to the JSON file.
    ``case`` and ``variant`` are optional and only used for comparisons.
    """
    if not path:
        return default_catalog()

    catalog_path = Path(path)
    with open(catalog_path, encoding="utf-8") as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        raise ValueError(f"Catalog {catalog_path} must contain a JSON list")

    definitions = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ValueError(f"Catalog entry #{index} needs a 'name'")
        if "query" in entry:
            query = entry["query"]
        elif "path" in entry:
            query = _read_query(catalog_path.parent / entry["path"])
        else:
            raise ValueError(f"Catalog entry {entry['name']!r} needs either 'query' or 'path'")
        variant = entry.get("variant")
        if variant is not None and variant not in VARIANTS:
            raise ValueError(f"Catalog entry {entry['name']!r} has unknown variant {variant!r}")
        definitions.append(
            QueryDefinition(
                name=entry["name"],
                query=query,
                case=entry.get("case"),
                variant=variant,
            )
        )
    return QueryCatalog(definitions=definitions, source=str(catalog_path))


def _read_query(path: Path) -> str:
    return path.read_text(encoding="utf-8").strip()
