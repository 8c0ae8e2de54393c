"""Tests for SRS card routes."""
from datetime import timedelta

import db


def _create(client, headers, **fields):
    payload = {"word": "Hund", "translation": "dog"}
    payload.update(fields)
    return client.post("/api/srs/cards", headers=headers, json=payload)


def _make_due_later(card_id, days=3):
    conn = db.get_db()
    try:
        conn.execute("UPDATE cards SET due = ? WHERE id = ?", (db.to_iso(db.now_utc() + timedelta(days=days)), card_id))
        conn.commit()
    finally:
        conn.close()


def test_create_card_defaults(client, auth_headers):
    resp = _create(client, auth_headers, context="Der Hund bellt.")
    assert resp.status_code == 201
    body = resp.json()
    card = body["card"]
    assert card["word"] == "Hund"
    assert card["translation"] == "dog"
    assert card["context"] == "Der Hund bellt."
    assert card["state"] == 0
    assert card["reps"] == 0
    assert card["lapses"] == 0
    assert card["last_review"] is None
    assert card["due"] <= db.now_iso()
    assert body["labelsAdded"] == []
    assert body["labelsFailed"] == []


def test_create_card_requires_word(client, auth_headers):
    assert client.post("/api/srs/cards", headers=auth_headers, json={"translation": "dog"}).status_code == 400
    assert _create(client, auth_headers, word="   ").status_code == 400


def test_duplicate_card_is_case_and_space_insensitive(client, auth_headers, other_headers):
    assert _create(client, auth_headers).status_code == 201
    assert _create(client, auth_headers, word="  hund ", translation="DOG").status_code == 409
    assert _create(client, auth_headers, translation="hound").status_code == 201
    # Another user may hold the same card
    assert _create(client, other_headers).status_code == 201


def test_create_card_with_system_and_user_labels(client, auth_headers, other_headers):
    mine = client.post("/api/srs/labels", headers=auth_headers, json={"name": "animals"}).json()["label"]
    theirs = client.post("/api/srs/labels", headers=other_headers, json={"name": "theirs"}).json()["label"]

    resp = _create(client, auth_headers, type="word", labels=[mine["id"], theirs["id"], 9999])
    assert resp.status_code == 201
    body = resp.json()
    names = sorted(label["name"] for label in body["card"]["labels"])
    assert names == ["animals", "word"]
    assert mine["id"] in body["labelsAdded"]
    assert [f["label_id"] for f in body["labelsFailed"]] == [theirs["id"], 9999]


def test_create_card_rejects_unknown_type(client, auth_headers):
    assert _create(client, auth_headers, type="paragraph").status_code == 400


def test_list_cards_paging_ordering_and_search(client, auth_headers, other_headers):
    for word, translation in [("Apfel", "apple"), ("Birne", "pear"), ("Kirsche", "cherry")]:
        _create(client, auth_headers, word=word, translation=translation)
    _create(client, other_headers, word="Zitrone", translation="lemon")

    resp = client.get("/api/srs/cards", headers=auth_headers, params={"order_by": "word", "order_dir": "asc"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert [c["word"] for c in body["cards"]] == ["Apfel", "Birne", "Kirsche"]

    page = client.get("/api/srs/cards", headers=auth_headers,
                      params={"order_by": "word", "order_dir": "desc", "limit": 1, "offset": 1}).json()
    assert page["total"] == 3
    assert [c["word"] for c in page["cards"]] == ["Birne"]

    found = client.get("/api/srs/cards", headers=auth_headers, params={"search": "PEA"}).json()
    assert [c["word"] for c in found["cards"]] == ["Birne"]
    assert found["total"] == 1


def test_list_cards_rejects_unknown_order(client, auth_headers):
    assert client.get("/api/srs/cards", headers=auth_headers, params={"order_by": "password"}).status_code == 400
    assert client.get("/api/srs/cards", headers=auth_headers, params={"order_dir": "sideways"}).status_code == 400


def test_get_update_delete_card(client, auth_headers, other_headers):
    card_id = _create(client, auth_headers, context="old").json()["card"]["id"]

    assert client.get(f"/api/srs/cards/{card_id}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/srs/cards/{card_id}", headers=other_headers).status_code == 404

    updated = client.put(f"/api/srs/cards/{card_id}", headers=auth_headers, json={"word": "der Hund"})
    assert updated.status_code == 200
    card = updated.json()["card"]
    assert card["word"] == "der Hund"
    assert card["translation"] == "dog"
    assert card["context"] == "old"

    assert client.put(f"/api/srs/cards/{card_id}", headers=auth_headers, json={"translation": "x"}).status_code == 400
    assert client.put(f"/api/srs/cards/{card_id}", headers=other_headers, json={"word": "mine"}).status_code == 404

    assert client.delete(f"/api/srs/cards/{card_id}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/srs/cards/{card_id}", headers=auth_headers).json() == {"ok": True}
    assert client.get(f"/api/srs/cards/{card_id}", headers=auth_headers).status_code == 404


def test_review_cards_only_returns_due(client, auth_headers):
    due_id = _create(client, auth_headers, word="eins", translation="one").json()["card"]["id"]
    later_id = _create(client, auth_headers, word="zwei", translation="two").json()["card"]["id"]
    _make_due_later(later_id)

    body = client.get("/api/srs/review-cards", headers=auth_headers).json()
    assert [c["id"] for c in body["cards"]] == [due_id]
    assert body["total"] == 2
    assert body["due"] == 1


def test_review_cards_by_label(client, auth_headers):
    label_id = client.post("/api/srs/labels", headers=auth_headers, json={"name": "numbers"}).json()["label"]["id"]
    tagged = _create(client, auth_headers, word="drei", translation="three", labels=[label_id]).json()["card"]["id"]
    _create(client, auth_headers, word="vier", translation="four")

    body = client.get("/api/srs/review-cards", headers=auth_headers, params={"label_id": label_id}).json()
    assert [c["id"] for c in body["cards"]] == [tagged]
    assert body["total"] == 1
    assert client.get("/api/srs/review-cards", headers=auth_headers, params={"label_id": 9999}).status_code == 404


def test_answer_card_runs_scheduler(client, auth_headers):
    card_id = _create(client, auth_headers).json()["card"]["id"]

    resp = client.post(f"/api/srs/cards/{card_id}/answer", headers=auth_headers, json={"rating": 3})
    assert resp.status_code == 200
    body = resp.json()
    assert body["result"]["rating"] == 3
    assert body["result"]["state"] == 1
    assert body["card"]["reps"] == 1
    assert body["card"]["last_review"] is not None
    assert body["card"]["due"] > db.now_iso()

    easy = client.post(f"/api/srs/cards/{card_id}/answer", headers=auth_headers, json={"rating": 4}).json()
    assert easy["result"]["state"] == 2
    assert easy["result"]["scheduled_days"] >= 1
    assert easy["card"]["reps"] == 2


def test_answer_card_rejects_bad_rating(client, auth_headers, other_headers):
    card_id = _create(client, auth_headers).json()["card"]["id"]
    for rating in (0, 5, "good", None, 2.5):
        resp = client.post(f"/api/srs/cards/{card_id}/answer", headers=auth_headers, json={"rating": rating})
        assert resp.status_code == 400
    assert client.post(f"/api/srs/cards/{card_id}/answer", headers=other_headers, json={"rating": 3}).status_code == 404


def test_search_orders_exact_then_prefix(client, auth_headers):
    for word, translation in [("Hausaufgabe", "homework"), ("Haus", "house"), ("Rathaus", "town hall"),
                              ("Heim", "haus-like home")]:
        _create(client, auth_headers, word=word, translation=translation)

    words = [c["word"] for c in client.get("/api/srs/search", headers=auth_headers, params={"q": "haus"}).json()["cards"]]
    assert words == ["Haus", "Hausaufgabe", "Heim", "Rathaus"]
    assert client.get("/api/srs/search", headers=auth_headers, params={"q": " "}).json()["cards"] == []


def test_search_caps_results(client, auth_headers):
    for i in range(12):
        _create(client, auth_headers, word=f"Wort{i}", translation=f"word {i}")
    assert len(client.get("/api/srs/search", headers=auth_headers, params={"q": "wort"}).json()["cards"]) == 10


def test_search_treats_wildcards_literally(client, auth_headers):
    _create(client, auth_headers, word="Apfel", translation="apple")
    _create(client, auth_headers, word="Birne", translation="pear")

    for term in ("%", "_", "\\"):
        listed = client.get("/api/srs/cards", headers=auth_headers, params={"search": term}).json()
        assert listed["total"] == 0
        assert listed["cards"] == []
        assert client.get("/api/srs/search", headers=auth_headers, params={"q": term}).json()["cards"] == []


def test_search_matches_literal_wildcard_characters(client, auth_headers):
    _create(client, auth_headers, word="Rabatt", translation="50% off")
    _create(client, auth_headers, word="snake_case", translation="Schlangenschrift")
    _create(client, auth_headers, word="Rabbit", translation="Kaninchen")

    listed = client.get("/api/srs/cards", headers=auth_headers, params={"search": "0%"}).json()
    assert [c["word"] for c in listed["cards"]] == ["Rabatt"]
    found = client.get("/api/srs/search", headers=auth_headers, params={"q": "e_c"}).json()["cards"]
    assert [c["word"] for c in found] == ["snake_case"]


def test_stats(client, auth_headers):
    label_id = client.post("/api/srs/labels", headers=auth_headers, json={"name": "empty"}).json()["label"]["id"]
    first = _create(client, auth_headers, word="eins", translation="one", type="word").json()["card"]["id"]
    _create(client, auth_headers, word="zwei", translation="two")
    client.post(f"/api/srs/cards/{first}/answer", headers=auth_headers, json={"rating": 1})

    stats = client.get("/api/srs/stats", headers=auth_headers).json()
    assert stats["totalCards"] == 2
    assert stats["newCards"] == 1
    assert stats["learningCards"] == 1
    assert stats["reviewCards"] == 0
    assert stats["dueCards"] == 1
    counts = {item["name"]: item["count"] for item in stats["labelCounts"]}
    assert counts == {"word": 1, "sentence": 0, "empty": 0}
    assert any(item["id"] == label_id for item in stats["labelCounts"])
