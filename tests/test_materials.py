import io
from pathlib import Path

import pytest

from app.catalog.db import session_scope
from app.catalog.errors import ConflictError, NotFoundError, ValidationError
from app.catalog.models import AuditEvent
from app.catalog.modules.dropdowns.store import DropdownStore
from app.catalog.modules.materials.store import MaterialCreate, MaterialFilters, MaterialPatch, MaterialStore
from app.catalog.storage import url_to_key
from app.catalog.utils import NOTHING_CHANGED

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _vocab(app):
    with session_scope(app) as s:
        store = DropdownStore(s)
        div = store.create("division", "IT Department", "it-department")
        other = store.create("division", "Finance", "finance")
        pl = store.create("placement", "Warehouse A", "warehouse-a")
        return div.id, other.id, pl.id


def _create(client, number, division_id, placement_id, name="Laptop", **extra):
    payload = {"materialName": name, "materialNumber": number, "divisionId": division_id, "placementId": placement_id}
    payload.update(extra)
    return client.post("/api/materials", json=payload)


def _upload(client, material_id, *names):
    files = [(io.BytesIO(PNG), name, "image/png") for name in names]
    return client.post(
        f"/api/materials/{material_id}/images",
        data={"images": files},
        content_type="multipart/form-data",
    )


def _stored_path(app, url):
    return Path(app.config["STORAGE_ROOT"]) / url_to_key(url)


# ---------- store ----------


def test_create_and_find_by_id(app):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        m = store.create(MaterialCreate("  Laptop ", " LP-001 ", div_id, pl_id, function="Office work"))
        assert m.material_name == "Laptop"
        assert m.material_number == "LP-001"
        assert m.is_active is True
        assert m.images == []

        found = store.find_by_id(m.id)
        assert found.division.label == "IT Department"
        assert found.placement.label == "Warehouse A"
        assert store.find_by_number("LP-001").id == m.id
        assert store.find_by_id(9999) is None


def test_create_requires_fields(app):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            MaterialStore(s).create(MaterialCreate("", "LP-001", div_id, pl_id))


def test_duplicate_number_conflicts(app):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        first = store.create(MaterialCreate("Laptop", "LP-001", div_id, pl_id))
        with pytest.raises(ConflictError):
            store.create(MaterialCreate("Other", "LP-001", div_id, pl_id))
        assert store.get(first.id).material_name == "Laptop"
        assert store.count() == 1


def test_search_and_count_agree(app):
    div_id, other_id, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        store.create(MaterialCreate("Laptop ABC", "LP-001", div_id, pl_id))
        store.create(MaterialCreate("Monitor", "abc-002", other_id, pl_id))
        store.create(MaterialCreate("Keyboard", "KB-003", div_id, pl_id))

        found = store.find_all(MaterialFilters(search="aBc"))
        assert sorted(m.material_number for m in found) == ["LP-001", "abc-002"]
        assert store.count(MaterialFilters(search="aBc")) == 2

        by_division = MaterialFilters(division_id=div_id)
        assert store.count(by_division) == len(store.find_all(by_division)) == 2

        combined = MaterialFilters(search="abc", division_id=other_id)
        assert [m.material_number for m in store.find_all(combined)] == ["abc-002"]

        # Literal wildcard characters match themselves only.
        assert store.find_all(MaterialFilters(search="%")) == []


def test_find_all_newest_first_with_paging(app):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        for i in range(5):
            store.create(MaterialCreate(f"Item {i}", f"IT-{i}", div_id, pl_id))

        numbers = [m.material_number for m in store.find_all()]
        assert numbers == ["IT-4", "IT-3", "IT-2", "IT-1", "IT-0"]

        page = store.find_all(MaterialFilters(limit=2, offset=2))
        assert [m.material_number for m in page] == ["IT-2", "IT-1"]
        assert store.count(MaterialFilters(limit=2, offset=2)) == 5


def test_update_partial_contract(app):
    div_id, other_id, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        m = store.create(MaterialCreate("Laptop", "LP-001", div_id, pl_id, function="Office"))
        store.create(MaterialCreate("Monitor", "MN-001", div_id, pl_id))

        assert store.update(m.id, MaterialPatch()) is NOTHING_CHANGED

        updated = store.update(m.id, MaterialPatch(division_id=other_id))
        assert updated.division.label == "Finance"
        assert updated.function == "Office"

        assert store.update(m.id, MaterialPatch(function=None)).function is None

        with pytest.raises(ConflictError):
            store.update(m.id, MaterialPatch(material_number="MN-001"))


def test_image_cap_and_primary(app):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        m = store.create(MaterialCreate("Laptop", "LP-001", div_id, pl_id))
        store.add_image(m.id, "/uploads/materials/1.png", is_primary=True)
        for i in range(2, 6):
            store.add_image(m.id, f"/uploads/materials/{i}.png")
        assert len(m.images) == 5

        with pytest.raises(ValidationError):
            store.add_image(m.id, "/uploads/materials/6.png")
        assert len(m.images) == 5

        store.set_primary_image(m.id, "/uploads/materials/3.png")
        assert [img.url for img in m.images if img.is_primary] == ["/uploads/materials/3.png"]

        with pytest.raises(NotFoundError):
            store.set_primary_image(m.id, "/uploads/materials/missing.png")

        assert store.remove_image(m.id, "/uploads/materials/missing.png") is False
        assert store.remove_image(m.id, "/uploads/materials/3.png") is True
        assert len(m.images) == 4

        with pytest.raises(NotFoundError):
            store.add_image(9999, "/uploads/materials/x.png")


def test_adding_primary_demotes_existing(app):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        store = MaterialStore(s)
        m = store.create(MaterialCreate("Laptop", "LP-001", div_id, pl_id))
        store.add_image(m.id, "/uploads/materials/a.png", is_primary=True)
        store.add_image(m.id, "/uploads/materials/b.png", is_primary=True)
        assert [img.url for img in m.images if img.is_primary] == ["/uploads/materials/b.png"]


# ---------- routes ----------


def test_create_get_update_material(client, app, login):
    div_id, other_id, pl_id = _vocab(app)
    login()

    r = _create(client, "LP-001", div_id, pl_id, function="Office work")
    assert r.status_code == 201
    material = r.json
    assert material["materialName"] == "Laptop"
    assert material["division"]["label"] == "IT Department"
    assert material["divisionId"] == div_id
    assert material["images"] == []
    assert material["isActive"] is True

    r = client.get(f"/api/materials/{material['id']}")
    assert r.status_code == 200
    assert r.json["placement"]["value"] == "warehouse-a"

    r = client.put(f"/api/materials/{material['id']}", json={"materialName": "Laptop Pro", "divisionId": other_id})
    assert r.status_code == 200
    assert r.json["materialName"] == "Laptop Pro"
    assert r.json["division"]["label"] == "Finance"
    assert r.json["function"] == "Office work"

    r = client.put(f"/api/materials/{material['id']}", json={"function": None})
    assert r.json["function"] is None

    assert client.get("/api/materials/9999").status_code == 404


def test_create_material_validation(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()

    r = client.post("/api/materials", json={"materialName": "Laptop", "divisionId": div_id, "placementId": pl_id})
    assert r.status_code == 400
    assert r.json["error"] == "Please provide all required fields"

    # A placement id in the division slot is rejected.
    r = _create(client, "LP-001", pl_id, pl_id)
    assert r.status_code == 400
    assert r.json["field"] == "divisionId"

    r = _create(client, "LP-001", 9999, pl_id)
    assert r.status_code == 400

    assert _create(client, "LP-001", div_id, pl_id).status_code == 201
    r = _create(client, "LP-001", div_id, pl_id, name="Other")
    assert r.status_code == 400
    assert r.json["error"] == "Material number already exists"


def test_material_may_reference_inactive_dropdown(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    client.put(f"/api/dropdowns/{div_id}/toggle")
    r = _create(client, "LP-001", div_id, pl_id)
    assert r.status_code == 201
    assert r.json["division"]["label"] == "IT Department"


def test_list_materials_paging_and_filters(client, app, login):
    div_id, other_id, pl_id = _vocab(app)
    login()
    for i in range(12):
        _create(client, f"LP-{i:03d}", div_id if i % 2 else other_id, pl_id, name=f"Laptop {i}")

    r = client.get("/api/materials")
    assert r.json["total"] == 12
    assert r.json["page"] == 1
    assert r.json["totalPages"] == 2
    assert len(r.json["materials"]) == 10
    assert r.json["materials"][0]["materialNumber"] == "LP-011"

    r = client.get("/api/materials", query_string={"page": 2})
    assert len(r.json["materials"]) == 2

    r = client.get("/api/materials", query_string={"divisionId": div_id, "limit": 4})
    assert r.json["total"] == 6
    assert r.json["totalPages"] == 2
    assert len(r.json["materials"]) == 4

    r = client.get("/api/materials", query_string={"search": "lp-00"})
    assert r.json["total"] == 10

    r = client.get("/api/materials", query_string={"page": "abc"})
    assert r.status_code == 400


def test_toggle_status(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material_id = _create(client, "LP-001", div_id, pl_id).json["id"]

    r = client.patch(f"/api/materials/{material_id}/toggle-status")
    assert r.status_code == 200
    assert r.json["isActive"] is False
    r = client.patch(f"/api/materials/{material_id}/toggle-status")
    assert r.json["isActive"] is True


def test_upload_first_image_primary_then_set_primary(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material_id = _create(client, "LP-001", div_id, pl_id).json["id"]

    r = _upload(client, material_id, "a.png", "b.png", "c.jpg")
    assert r.status_code == 200
    images = r.json["material"]["images"]
    assert len(images) == 3
    assert [img["isPrimary"] for img in images] == [True, False, False]
    for img in images:
        assert img["url"].startswith("/uploads/materials/")
        assert _stored_path(app, img["url"]).read_bytes() == PNG

    second = images[1]["url"]
    r = client.put(f"/api/materials/{material_id}/images{second}/primary")
    assert r.status_code == 200
    assert [img["url"] for img in r.json["material"]["images"] if img["isPrimary"]] == [second]

    # Later uploads never take over the primary slot.
    r = _upload(client, material_id, "d.png")
    assert [img["url"] for img in r.json["material"]["images"] if img["isPrimary"]] == [second]

    r = client.get(images[0]["url"])
    assert r.status_code == 200
    assert r.data == PNG


def test_upload_rejects_over_cap_before_writing(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material_id = _create(client, "LP-001", div_id, pl_id).json["id"]

    r = _upload(client, material_id, *[f"{i}.png" for i in range(6)])
    assert r.status_code == 400
    assert r.json["error"] == "Maximum 5 images allowed per material"
    assert not (Path(app.config["STORAGE_ROOT"]) / "materials").exists()

    assert _upload(client, material_id, *[f"{i}.png" for i in range(5)]).status_code == 200
    r = _upload(client, material_id, "extra.png")
    assert r.status_code == 400
    assert len(client.get(f"/api/materials/{material_id}").json["images"]) == 5


def test_upload_rejects_bad_type(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material_id = _create(client, "LP-001", div_id, pl_id).json["id"]

    r = client.post(
        f"/api/materials/{material_id}/images",
        data={"images": [(io.BytesIO(PNG), "ok.png", "image/png"), (io.BytesIO(b"%PDF"), "doc.pdf", "application/pdf")]},
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    assert r.json["error"] == "Only .jpg, .jpeg, and .png files are allowed"
    assert client.get(f"/api/materials/{material_id}").json["images"] == []

    r = client.post(f"/api/materials/{material_id}/images", data={}, content_type="multipart/form-data")
    assert r.status_code == 400

    assert _upload(client, 9999, "a.png").status_code == 404


def test_delete_image(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material_id = _create(client, "LP-001", div_id, pl_id).json["id"]
    images = _upload(client, material_id, "a.png", "b.png").json["material"]["images"]
    url = images[1]["url"]

    r = client.delete(f"/api/materials/{material_id}/images{url}")
    assert r.status_code == 200
    assert r.json["message"] == "Image deleted successfully"
    assert not _stored_path(app, url).exists()
    assert [img["url"] for img in client.get(f"/api/materials/{material_id}").json["images"]] == [images[0]["url"]]

    r = client.delete(f"/api/materials/{material_id}/images{url}")
    assert r.status_code == 404
    assert r.json["error"] == "Image not found"

    r = client.put(f"/api/materials/{material_id}/images{url}/primary")
    assert r.status_code == 404


def test_delete_material_removes_files(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material_id = _create(client, "LP-001", div_id, pl_id).json["id"]
    images = _upload(client, material_id, "a.png", "b.png").json["material"]["images"]

    r = client.delete(f"/api/materials/{material_id}")
    assert r.status_code == 200
    assert r.json == {"success": True, "message": "Material deleted successfully"}
    for img in images:
        assert not _stored_path(app, img["url"]).exists()
    assert client.get(f"/api/materials/{material_id}").status_code == 404
    assert client.delete(f"/api/materials/{material_id}").status_code == 404


def test_duplicate_number_caught_at_flush(app, monkeypatch):
    div_id, _, pl_id = _vocab(app)
    with session_scope(app) as s:
        MaterialStore(s).create(MaterialCreate("Laptop", "LP-001", div_id, pl_id))

    monkeypatch.setattr(MaterialStore, "_ensure_unique_number", lambda self, number, exclude_id=None: None)
    with session_scope(app) as s:
        store = MaterialStore(s)
        with pytest.raises(ConflictError) as exc:
            store.create(MaterialCreate("Other", "LP-001", div_id, pl_id))
        assert exc.value.extra["field"] == "materialNumber"
        assert store.count() == 1


def test_update_with_unchanged_values_is_not_audited(client, app, login):
    div_id, _, pl_id = _vocab(app)
    login()
    material = _create(client, "LP-001", div_id, pl_id).json

    r = client.put(f"/api/materials/{material['id']}", json={"materialName": "Laptop", "divisionId": div_id})
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "material.edit").count() == 0

    client.put(f"/api/materials/{material['id']}", json={"materialName": "Laptop Pro"})
    with session_scope(app) as s:
        events = s.query(AuditEvent).filter(AuditEvent.action == "material.edit").all()
        assert len(events) == 1
        assert "Laptop Pro" in events[0].metadata_json
