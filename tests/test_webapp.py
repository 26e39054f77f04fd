import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from webapp import app as webapp
from fibercomp import fibers


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(fibers, "FIBERS_CSV", tmp_path / "absent.csv")
    monkeypatch.setattr(webapp, "_last_runs", {})
    webapp.app.config["TESTING"] = True
    return webapp.app.test_client()


def test_manual_calculation_prefills_moisture(client):
    payload = {"standard": "iso", "samples": [{"fibers": [
        {"name": "Cotton", "dry_weight": 60}, {"name": "Polyester", "dry_weight": "40"}]}]}
    res = client.post("/calculate/manual", json=payload)
    assert res.status_code == 200
    (sample,) = res.get_json()["result"]["samples"]
    assert [r["wet_weight"] for r in sample] == pytest.approx([65.1, 40.16])


def test_failed_run_keeps_previous_results(client):
    ok = {"samples": [{"initial_weight": 10, "steps": [
        {"dissolved_fiber_name": "A", "residue_weight": 7}, {"dissolved_fiber_name": "B"}]}]}
    bad = {"samples": [{"initial_weight": 10, "steps": [
        {"dissolved_fiber_name": "A", "residue_weight": 12}, {"dissolved_fiber_name": "B"}]}]}
    assert client.post("/calculate/residue", json=ok).status_code == 200
    res = client.post("/calculate/residue", json=bad)
    assert res.status_code == 400
    assert res.get_json()["kind"] == "NonMonotonicResidue"
    kept = client.get("/results/residue").get_json()["result"]["samples"][0]
    assert [r["dry_weight"] for r in kept] == pytest.approx([3, 7])


def test_report_download(client):
    payload = {"samples": [{"components": [{"name": "Body", "weight": 100, "fibers": [
        {"fiber_name": "Cotton", "percent_of_component": 60},
        {"fiber_name": "Poly", "percent_of_component": 40}]}]}]}
    client.post("/calculate/garments", json=payload)
    res = client.get("/report/garments")
    assert res.status_code == 200
    assert "GarmentsAnalysisReport.docx" in res.headers["Content-Disposition"]
    res = client.get("/report/garments?format=json")
    assert res.get_json()["report"]["without_moisture"][0]["overall_percentage"] == pytest.approx(60)


def test_report_before_calculation(client):
    assert client.get("/report/manual").status_code == 404


def test_bad_payloads(client):
    assert client.post("/calculate/manual", data="nope").status_code == 400
    res = client.post("/calculate/manual", json={"samples": [{"fibers": [{"name": "A", "dry_weight": "abc"}]}]})
    assert res.status_code == 400
    assert client.post("/calculate/unknown", json={}).status_code == 404


def test_fiber_lookup(client):
    res = client.get("/fibers/lookup?name=wool&standard=eu")
    assert res.get_json()["moisture_regain"] == 17.0
    assert client.get("/fibers/lookup?name=wool&standard=mars").status_code == 400
    names = [f["name"] for f in client.get("/fibers?q=ot").get_json()["fibers"]]
    assert "Cotton" in names and "Viscose" not in names


def test_infinite_numbers_rejected(client):
    body = ('{"samples": [{"initial_weight": 1e999, "steps": ['
            '{"dissolved_fiber_name": "A", "residue_weight": 7}, {"dissolved_fiber_name": "B"}]}]}')
    res = client.post("/calculate/residue", data=body, content_type="application/json")
    assert res.status_code == 400
    assert "initial_weight" in res.get_json()["error"]


def test_fiber_settings_crud_persists(client):
    res = client.post("/fibers", json={"name": "Silk", "iso": 11, "eu": "11.5"})
    assert res.status_code == 201
    silk = res.get_json()["fiber"]
    assert silk["id"] == 6

    res = client.patch(f"/fibers/{silk['id']}", json={"aatcc": 10})
    assert res.get_json()["fiber"]["iso"] == 11.0
    assert client.get("/fibers/lookup?name=silk&standard=aatcc").get_json()["moisture_regain"] == 10.0

    res = client.put("/fibers/1", json={"name": "Cotton", "iso": 8.0})
    assert res.get_json()["fiber"] == {"id": 1, "name": "Cotton", "iso": 8.0, "aatcc": None, "eu": None, "canada": None}

    assert client.delete("/fibers/2").status_code == 200
    names = [f["name"] for f in client.get("/fibers").get_json()["fibers"]]
    assert names == ["Cotton", "Nylon", "Viscose", "Wool", "Silk"]
    assert client.delete("/fibers/2").status_code == 404


def test_blank_fiber_row_does_not_break_calculation(client):
    assert client.post("/fibers", json={}).status_code == 201
    res = client.post("/calculate/manual", json={"samples": [{"fibers": [{"name": "Cotton", "dry_weight": 5}]}]})
    assert res.status_code == 200
    assert res.get_json()["result"]["samples"][0][0]["moisture_content"] == 8.5


def test_fiber_update_rejects_bad_number(client):
    assert client.patch("/fibers/1", json={"iso": "wet"}).status_code == 400
    assert client.patch("/fibers/99", json={"iso": 1}).status_code == 404
