from app.tcms.models import AuditEvent
from app.tcms.modules.it.models import WifiNetwork
from app.tcms.modules.it.service import (
    create_network,
    networks_for_user,
    set_network_active,
    update_network,
    validate_network_payload,
)


def _network(db, staff, name, roles, password="s3cret-pass"):
    return create_network(db, {"name": name, "password": password, "assigned_roles": roles}, staff("it"))


def test_validate_network_payload():
    assert validate_network_payload({"name": "", "password": " ", "assigned_roles": ["guest"]}) == [
        "Network name is required.",
        "Password is required.",
        "Invalid role(s): guest",
    ]


def test_networks_for_user_matches_roles(db, staff):
    _network(db, staff, "Staff-5G", ["admin", "trainer", "secretary"])
    _network(db, staff, "Students", ["student"])
    old = _network(db, staff, "Legacy", ["trainer"])
    set_network_active(db, old, False, staff("it"))
    db.flush()

    assert [n.name for n in networks_for_user(db, staff("trainer"))] == ["Staff-5G"]
    assert networks_for_user(db, staff("finance")) == []
    assert networks_for_user(db, None) == []


def test_password_never_reaches_audit_log(db, staff):
    network = _network(db, staff, "Lab", ["trainer"], password="first-pass")
    update_network(db, network, {"name": "Lab", "password": "second-pass", "assigned_roles": ["trainer"]}, staff("it"))
    events = db.query(AuditEvent).filter(AuditEvent.entity_type == "WifiNetwork").order_by(AuditEvent.id).all()
    assert len(events) == 2
    for ev in events:
        assert "first-pass" not in (ev.metadata_json or "")
        assert "second-pass" not in (ev.metadata_json or "")
    assert '"password_changed": true' in events[1].metadata_json


def test_wifi_routes(client, login, db):
    login("it@example.com")
    r = client.post(
        "/admin/wifi/new",
        data={"name": "Trainers", "password": "teach-2026", "assigned_roles": ["trainer"]},
        follow_redirects=True,
    )
    assert b"Network Trainers added." in r.data

    r = client.post("/admin/wifi/new", data={"name": "", "password": ""}, follow_redirects=True)
    assert b"Network name is required." in r.data
    assert db.query(WifiNetwork).count() == 1

    client.get("/auth/logout")
    login("trainer@example.com")
    r = client.get("/admin/wifi")
    assert r.status_code == 200
    assert b"teach-2026" in r.data
    assert client.get("/admin/wifi/new").status_code == 403

    client.get("/auth/logout")
    login("finance@example.com")
    r = client.get("/admin/wifi")
    assert b"teach-2026" not in r.data
