"""Tests for the shared word base dictionary."""
import pytest


def _word(client, headers, **fields):
    payload = {"word": "Haus", "groupAlphabetName": "H", "type_of_word": "noun",
               "translate": "house", "article": "das", "plural_sign": "-er"}
    payload.update(fields)
    return client.post("/api/word-base", headers=headers, json=payload)


@pytest.fixture()
def seeded(client, admin_headers):
    for word, group, kind in [("Haus", "H", "noun"), ("Hund", "H", "noun"), ("helfen", "H", "verb"),
                              ("Apfel", "A", "noun"), ("arbeiten", "A", "verb")]:
        assert _word(client, admin_headers, word=word, groupAlphabetName=group, type_of_word=kind).status_code == 201


def test_create_and_get_word(client, admin_headers, auth_headers):
    resp = _word(client, admin_headers, meaning="a building to live in")
    assert resp.status_code == 201
    word = resp.json()["word"]
    assert word["word"] == "Haus"
    assert word["groupAlphabetName"] == "H"
    assert "group_alphabet_name" not in word
    assert word["type_of_word"] == "noun"
    assert word["article"] == "das"
    assert word["meaning"] == "a building to live in"
    assert word["female_form"] is None

    fetched = client.get(f"/api/word-base/{word['id']}", headers=auth_headers)
    assert fetched.status_code == 200
    assert fetched.json()["word"] == word


def test_writes_need_admin_reads_need_login(client, auth_headers):
    assert _word(client, auth_headers).status_code == 403
    assert client.post("/api/word-base/bulk", headers=auth_headers, json={"words": []}).status_code == 403
    assert client.get("/api/word-base").status_code == 401
    assert client.get("/api/word-base", headers=auth_headers).json() == {"words": [], "count": 0}


@pytest.mark.parametrize("missing", ["word", "groupAlphabetName", "type_of_word"])
def test_create_requires_core_fields(client, admin_headers, missing):
    assert _word(client, admin_headers, **{missing: "  "}).status_code == 400
    assert _word(client, admin_headers, **{missing: None}).status_code == 400


def test_list_filters_and_paging(client, auth_headers, seeded):
    everything = client.get("/api/word-base", headers=auth_headers).json()
    assert everything["count"] == 5
    assert [w["word"] for w in everything["words"]] == ["Apfel", "Haus", "Hund", "arbeiten", "helfen"]

    nouns_h = client.get("/api/word-base", headers=auth_headers,
                         params={"groupAlphabetName": "H", "type_of_word": "noun"}).json()
    assert [w["word"] for w in nouns_h["words"]] == ["Haus", "Hund"]

    snake = client.get("/api/word-base", headers=auth_headers, params={"group_alphabet_name": "A"}).json()
    assert snake["count"] == 2

    found = client.get("/api/word-base", headers=auth_headers, params={"search": "HU"}).json()
    assert [w["word"] for w in found["words"]] == ["Hund"]

    page = client.get("/api/word-base", headers=auth_headers, params={"limit": 2, "offset": 1}).json()
    assert [w["word"] for w in page["words"]] == ["Haus", "Hund"]


def test_group_type_search_and_count(client, auth_headers, seeded):
    by_group = client.get("/api/word-base/group/A", headers=auth_headers).json()
    assert [w["word"] for w in by_group["words"]] == ["Apfel", "arbeiten"]
    assert by_group["count"] == 2

    by_type = client.get("/api/word-base/type/verb", headers=auth_headers).json()
    assert [w["word"] for w in by_type["words"]] == ["arbeiten", "helfen"]

    searched = client.get("/api/word-base/search/el", headers=auth_headers).json()
    assert [w["word"] for w in searched["words"]] == ["Apfel", "helfen"]

    assert client.get("/api/word-base/count/total", headers=auth_headers).json() == {"count": 5}


def test_search_wildcards_are_literal(client, auth_headers, seeded):
    assert client.get("/api/word-base/search/_", headers=auth_headers).json()["count"] == 0
    assert client.get("/api/word-base", headers=auth_headers, params={"search": "%"}).json()["count"] == 0


def test_bulk_insert(client, admin_headers, auth_headers):
    words = [
        {"word": "Baum", "groupAlphabetName": "B", "type_of_word": "noun", "article": "der"},
        {"word": "bauen", "groupAlphabetName": "B", "type_of_word": "verb"},
    ]
    resp = client.post("/api/word-base/bulk", headers=admin_headers, json={"words": words})
    assert resp.status_code == 201
    assert resp.json() == {"insertedCount": 2, "total": 2}
    assert client.get("/api/word-base/count/total", headers=auth_headers).json()["count"] == 2


def test_bulk_insert_validation(client, admin_headers, auth_headers):
    assert client.post("/api/word-base/bulk", headers=admin_headers, json={"words": []}).status_code == 400
    assert client.post("/api/word-base/bulk", headers=admin_headers, json={}).status_code == 400
    bad = [{"word": "Baum", "groupAlphabetName": "B", "type_of_word": "noun"}, {"word": "bauen"}]
    resp = client.post("/api/word-base/bulk", headers=admin_headers, json={"words": bad})
    assert resp.status_code == 400
    assert "index 1" in resp.json()["detail"]
    assert client.get("/api/word-base/count/total", headers=auth_headers).json()["count"] == 0


def test_update_word(client, admin_headers, auth_headers):
    word_id = _word(client, admin_headers).json()["word"]["id"]
    resp = client.put(f"/api/word-base/{word_id}", headers=admin_headers,
                      json={"word": "Häuschen", "groupAlphabetName": "H", "type_of_word": "noun", "article": "das"})
    assert resp.status_code == 200
    word = resp.json()["word"]
    assert word["word"] == "Häuschen"
    assert word["translate"] is None
    assert word["updated_at"] >= word["created_at"]

    assert client.put(f"/api/word-base/{word_id}", headers=admin_headers, json={"word": "Haus"}).status_code == 400
    assert client.put("/api/word-base/9999", headers=admin_headers,
                      json={"word": "x", "groupAlphabetName": "X", "type_of_word": "noun"}).status_code == 404
    assert client.put(f"/api/word-base/{word_id}", headers=auth_headers,
                      json={"word": "x", "groupAlphabetName": "X", "type_of_word": "noun"}).status_code == 403


def test_delete_word(client, admin_headers, auth_headers):
    word_id = _word(client, admin_headers).json()["word"]["id"]
    assert client.delete(f"/api/word-base/{word_id}", headers=auth_headers).status_code == 403
    assert client.delete(f"/api/word-base/{word_id}", headers=admin_headers).json() == {"ok": True}
    assert client.get(f"/api/word-base/{word_id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/word-base/{word_id}", headers=admin_headers).status_code == 404
