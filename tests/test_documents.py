from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from wareworks.core.errors import StorageError
from wareworks.core.store import ExpiringStore
from wareworks.services.documents import DocumentArchive, LocalDocumentStore
from wareworks.services.pdf_filler import GeneratedDocument


def test_local_store_saves_under_key(tmp_path):
    store = LocalDocumentStore(tmp_path)
    stored = store.save("uploads/1_resume.pdf", filename="My Resume.pdf", content_type="application/pdf", data=b"%PDF")

    assert stored.key == "uploads/1_resume.pdf"
    assert stored.size == 4
    assert stored.content_type == "application/pdf"
    assert stored.url.startswith("file://")
    assert (tmp_path / "uploads" / "1_resume.pdf").read_bytes() == b"%PDF"


def test_local_store_concurrent_saves(tmp_path):
    store = LocalDocumentStore(tmp_path)

    def save(i: int):
        return store.save(f"uploads/{i}_doc.pdf", filename=f"doc {i}.pdf", content_type="application/pdf", data=b"%PDF-%d" % i)

    with ThreadPoolExecutor(max_workers=16) as pool:
        stored = list(pool.map(save, range(200)))

    assert len(stored) == 200
    for i in range(200):
        assert (tmp_path / "uploads" / f"{i}_doc.pdf").read_bytes() == b"%PDF-%d" % i
    assert sorted(p.name for p in tmp_path.iterdir()) == ["uploads"]


@pytest.mark.parametrize("key", ["../escape.pdf", "/etc/passwd", "uploads//x", ""])
def test_local_store_rejects_unsafe_keys(tmp_path, key):
    store = LocalDocumentStore(tmp_path)
    with pytest.raises(StorageError):
        store.save(key, filename="x", content_type="application/pdf", data=b"x")
    assert list(tmp_path.iterdir()) == []


def test_archive_expires_documents(clock):
    archive = DocumentArchive(ExpiringStore("retained", clock=clock), retention_seconds=60)
    document = GeneratedDocument(content=b"%PDF", filename="a.pdf")
    archive.put("WW_1_a", document)

    assert archive.get("WW_1_a") == document
    clock.advance(60)
    assert archive.get("WW_1_a") is None
    assert "WW_1_a" not in archive.store


def test_archive_sweep(clock):
    archive = DocumentArchive(ExpiringStore("retained", clock=clock), retention_seconds=60)
    archive.put("old", GeneratedDocument(content=b"1", filename="old.pdf"))
    clock.advance(30)
    archive.put("new", GeneratedDocument(content=b"2", filename="new.pdf"))
    clock.advance(31)

    assert archive.sweep() == 1
    assert archive.get("new") is not None
