from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from release_orchestrator.core import ArtifactConflictError, ArtifactNotFoundError
from release_orchestrator.pipeline import ArtifactStore


def test_put_then_get_returns_payload() -> None:
    store = ArtifactStore()
    store.put("release_url", "https://uploads.example.test/assets{?name,label}")

    assert "release_url" in store
    assert store.get("release_url").text().startswith("https://uploads")
    assert store.names() == ["release_url"]


def test_store_is_append_only() -> None:
    store = ArtifactStore()
    store.put("release_url", b"first")
    with pytest.raises(ArtifactConflictError):
        store.put("release_url", b"second")
    assert store.get("release_url").payload == b"first"


def test_missing_artifact_is_an_error() -> None:
    with pytest.raises(ArtifactNotFoundError):
        ArtifactStore().get("release_url")


@pytest.mark.parametrize("name", ["", "a/b", "..", "c\\d"])
def test_invalid_names_are_rejected(name: str) -> None:
    with pytest.raises(ValueError):
        ArtifactStore().put(name, b"x")


def test_disk_mirror_and_file_payload(tmp_path: Path) -> None:
    src = tmp_path / "notes.txt"
    src.write_text("hello")

    store = ArtifactStore(root=tmp_path / "artifacts")
    store.put("notes", src)

    assert (tmp_path / "artifacts" / "notes").read_text() == "hello"
    with pytest.raises(FileNotFoundError):
        store.put("missing", tmp_path / "nope.txt")


def test_concurrent_readers_see_the_same_payload() -> None:
    store = ArtifactStore()
    store.put("release_url", b"https://uploads.example.test/1")

    with ThreadPoolExecutor(max_workers=6) as pool:
        got = list(pool.map(lambda _: store.get("release_url").payload, range(24)))
    assert set(got) == {b"https://uploads.example.test/1"}
