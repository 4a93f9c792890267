"""Registry of known carrier export formats.

Carriers are data: ``data/carriers.json`` is read once at import and frozen
into ``KNOWN_CARRIERS``. Supporting a new carrier means appending an entry
to that file.
"""

import json
from pathlib import Path

from pydantic import TypeAdapter

from claimflow.models.carriers import CarrierPattern

CARRIERS_FILE = Path(__file__).parent.parent / "data" / "carriers.json"


def load_carriers(path: Path = CARRIERS_FILE) -> tuple[CarrierPattern, ...]:
    """Load and validate a carrier registry file."""
    if not path.exists():
        raise FileNotFoundError(f"Carrier registry not found: {path}")
    raw = json.loads(path.read_text(encoding="utf-8"))
    carriers = TypeAdapter(tuple[CarrierPattern, ...]).validate_python(raw)

    names = [c.name for c in carriers]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise ValueError(f"Duplicate carrier names in registry: {sorted(duplicates)}")
    return carriers


KNOWN_CARRIERS: tuple[CarrierPattern, ...] = load_carriers()


def get_carrier(name: str) -> CarrierPattern | None:
    """Look up a carrier by exact name."""
    return next((c for c in KNOWN_CARRIERS if c.name == name), None)


def list_carrier_names() -> list[str]:
    """Names of all registered carriers, in registry order."""
    return [c.name for c in KNOWN_CARRIERS]
