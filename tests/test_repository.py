from pathlib import Path

import pytest

from sortyx.errors import DuplicateIdentifierError, EntityNotFoundError
from sortyx.models.database import DatabaseManager
from sortyx.models.repository import BinRepository, generate_compartment_id, type_code


def _repo(tmp_path: Path) -> BinRepository:
    db = DatabaseManager(tmp_path / "repo.db")
    db.initialize()
    return BinRepository(db)


def test_type_codes() -> None:
    assert type_code("recyclable") == "REC"
    assert type_code("Organic") == "ORG"
    assert type_code("e-waste") == "EWA"
    assert type_code(None, "Bottles") == "BOT"
    assert type_code(None, None) == "CMP"


def test_generate_compartment_id_probes_next_free_sequence() -> None:
    assert generate_compartment_id("Bin A", "REC", []) == "BinA-REC-001"
    assert generate_compartment_id("Bin A", "REC", ["BinA-REC-001", "BinA-REC-002"]) == "BinA-REC-003"
    assert generate_compartment_id("A very long bin name", "GEN", []) == "Averylongb-GEN-001"
    assert generate_compartment_id("***", "GEN", []) == "Bin-GEN-001"


def test_generate_compartment_id_after_exhausting_sequence() -> None:
    taken = [f"BinA-REC-{n:03d}" for n in range(1, 1000)]
    proposed = generate_compartment_id("BinA", "REC", taken)
    assert proposed.startswith("BinA-REC-")
    assert proposed not in taken


def test_compartments_get_unique_ids(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    smart_bin = repo.create_smart_bin({"name": "BinA"}, owner="ops@example.com")

    first = repo.create_compartment({"smartbin_id": smart_bin["id"], "label": "Cans", "waste_type": "recyclable"})
    second = repo.create_compartment({"smartbin_id": smart_bin["id"], "label": "Bottles", "waste_type": "recyclable"})

    assert first["unique_id"] == "BinA-REC-001"
    assert second["unique_id"] == "BinA-REC-002"
    assert second["created_by"] == "ops@example.com"
    assert second["fill_threshold"] == 80.0


def test_duplicate_explicit_unique_id_rejected(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    smart_bin = repo.create_smart_bin({"name": "BinA"}, owner="ops@example.com")
    repo.create_compartment({"smartbin_id": smart_bin["id"], "label": "x", "unique_id": "BinA-ORG-007"})

    with pytest.raises(DuplicateIdentifierError):
        repo.create_compartment({"smartbin_id": smart_bin["id"], "label": "y", "unique_id": "BinA-ORG-007"})


def test_compartment_requires_existing_smart_bin(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    with pytest.raises(EntityNotFoundError):
        repo.create_compartment({"smartbin_id": "nope", "label": "x"})


def test_delete_smart_bin_cascades_to_compartments(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    doomed = repo.create_smart_bin({"name": "Doomed"}, owner="a@example.com")
    kept = repo.create_smart_bin({"name": "Kept"}, owner="a@example.com")
    for label in ("one", "two", "three"):
        repo.create_compartment({"smartbin_id": doomed["id"], "label": label})
    repo.create_compartment({"smartbin_id": kept["id"], "label": "other"})

    removed = repo.delete_smart_bin(doomed["id"])

    assert removed == 3
    assert repo.smart_bins.get(doomed["id"]) is None
    assert repo.compartments_for(doomed["id"]) == []
    assert len(repo.compartments_for(kept["id"])) == 1


def test_delete_single_bin_leaves_others(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    first = repo.create_single_bin({"name": "S1"}, owner="a@example.com")
    second = repo.create_single_bin({"name": "S2"}, owner="a@example.com")

    repo.delete_single_bin(first["id"])

    assert [item["id"] for item in repo.single_bins.list()] == [second["id"]]
    with pytest.raises(EntityNotFoundError):
        repo.delete_single_bin(first["id"])


def test_update_missing_entity_raises(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    with pytest.raises(EntityNotFoundError):
        repo.smart_bins.update("missing", {"name": "x"})
