from __future__ import annotations

import json
import math
from pathlib import Path

import pytest

from game_trainer.core.errors import ParseFailure
from game_trainer.storage.models import ModelRegistry


def _score(registry: ModelRegistry, name: str) -> float:
    artifact = registry.load_best_model(name)
    assert artifact is not None
    return artifact.performance_score


def test_lower_score_keeps_existing_model(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)

    first = registry.save_best_model("player", {"weights": [1]}, 5.0)
    second = registry.save_best_model("player", {"weights": [2]}, 3.0)

    assert first == second == registry.model_path("player")
    assert _score(registry, "player") == 5.0
    assert registry.load_best_model("player").model_data == {"weights": [1]}
    assert not registry.backup_path("player").exists()


def test_equal_score_keeps_existing_model(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)
    registry.save_best_model("player", {"v": 1}, 2.0)
    registry.save_best_model("player", {"v": 2}, 2.0)

    assert registry.load_best_model("player").model_data == {"v": 1}


def test_stored_score_is_running_maximum(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)
    scores = [1.0, 4.0, 2.0, 7.5, -3.0, 7.0]

    for index, score in enumerate(scores):
        registry.save_best_model("adversary", {"step": index}, score)
        assert _score(registry, "adversary") == max(scores[: index + 1])


def test_replacement_writes_single_backup(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)
    registry.save_best_model("player", {"v": 1}, 1.0)
    registry.save_best_model("player", {"v": 2}, 2.0)
    registry.save_best_model("player", {"v": 3}, 3.0)

    backup = json.loads(registry.backup_path("player").read_text(encoding="utf-8"))

    assert backup["model_data"] == {"v": 2}
    assert sorted(p.name for p in tmp_path.iterdir()) == ["player_model.json", "player_model_backup.json"]


def test_unreadable_artifact_is_replaced(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)
    tmp_path.mkdir(exist_ok=True)
    registry.model_path("player").write_text("{broken", encoding="utf-8")

    with pytest.raises(ParseFailure):
        registry.load_best_model("player")

    registry.save_best_model("player", {"v": 1}, -100.0)
    assert _score(registry, "player") == -100.0


def test_non_utf8_artifact_is_replaced(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)
    registry.model_path("player").write_bytes(b"\xff\xfe\x00garbage")

    with pytest.raises(ParseFailure):
        registry.load_best_model("player")

    assert registry.save_best_model("player", {"v": 1}, 0.5) == registry.model_path("player")
    assert _score(registry, "player") == 0.5
    assert registry.load_best_model("player").model_data == {"v": 1}


def test_missing_model_returns_none(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path / "models")

    assert registry.load_best_model("player") is None
    assert registry.get_best_model_path("player") is None
    assert registry.list_models() == []


def test_nan_score_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ModelRegistry(tmp_path).save_best_model("player", {}, math.nan)


@pytest.mark.parametrize("name", ["", "../escape", "bad/name", ".hidden"])
def test_invalid_names_are_rejected(tmp_path: Path, name: str) -> None:
    with pytest.raises(ValueError):
        ModelRegistry(tmp_path).save_best_model(name, {}, 1.0)


def test_list_models_sorted_and_skips_garbage(tmp_path: Path) -> None:
    registry = ModelRegistry(tmp_path)
    registry.save_best_model("player", {}, 1.5)
    registry.save_best_model("auxiliary", {}, 0.5)
    (tmp_path / "junk_model.json").write_text("[]", encoding="utf-8")

    models = registry.list_models()

    assert [(m.model_name, m.performance_score) for m in models] == [("auxiliary", 0.5), ("player", 1.5)]
    assert all(m.path.exists() for m in models)
