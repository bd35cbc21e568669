from tests.helpers import register, store_song


def _create(client, headers, name="Road Trip", public=False):
    response = client.post('/api/playlists', json={"name": name, "isPublic": public}, headers=headers)
    assert response.status_code == 201
    return response.get_json()


def test_non_owner_cannot_delete_playlist(client):
    _, alice = register(client, "alice")
    _, bob = register(client, "bob")
    playlist = _create(client, alice, public=True)

    response = client.delete(f"/api/playlists/{playlist['id']}", headers=bob)
    assert response.status_code == 403

    still_there = client.get(f"/api/playlists/{playlist['id']}")
    assert still_there.status_code == 200
    assert still_there.get_json()['name'] == "Road Trip"


def test_owner_deletes_playlist(client):
    _, alice = register(client, "alice")
    playlist = _create(client, alice)

    assert client.delete(f"/api/playlists/{playlist['id']}", headers=alice).status_code == 200
    assert client.get(f"/api/playlists/{playlist['id']}", headers=alice).status_code == 404


def test_private_playlist_hidden_from_others(client):
    _, alice = register(client, "alice")
    _, bob = register(client, "bob")
    playlist = _create(client, alice, public=False)

    assert client.get(f"/api/playlists/{playlist['id']}").status_code == 403
    assert client.get(f"/api/playlists/{playlist['id']}", headers=bob).status_code == 403
    assert client.get(f"/api/playlists/{playlist['id']}", headers=alice).status_code == 200


def test_create_requires_name(client):
    _, alice = register(client, "alice")
    response = client.post('/api/playlists', json={"description": "no name"}, headers=alice)
    assert response.status_code == 400


def test_add_and_remove_songs(client, library):
    user, alice = register(client, "alice")
    song = store_song(library, user['id'], b"\x00" * 64, title="Blue in Green")
    playlist = _create(client, alice)
    url = f"/api/playlists/{playlist['id']}/songs"

    client.post(url, json={"songId": song.id}, headers=alice)
    added = client.post(url, json={"songId": song.id}, headers=alice)
    assert added.get_json()['songs'] == [song.id, song.id]

    expanded = client.get(f"/api/playlists/{playlist['id']}", headers=alice).get_json()
    assert [s['title'] for s in expanded['songs']] == ["Blue in Green", "Blue in Green"]
    assert expanded['owner_name'] == "alice"

    removed = client.delete(f"{url}/{song.id}", headers=alice)
    assert removed.get_json()['songs'] == []


def test_add_unknown_song_is_404(client):
    _, alice = register(client, "alice")
    playlist = _create(client, alice)
    response = client.post(f"/api/playlists/{playlist['id']}/songs", json={"songId": "nope"}, headers=alice)
    assert response.status_code == 404


def test_non_owner_cannot_modify(client, library):
    user, alice = register(client, "alice")
    _, bob = register(client, "bob")
    song = store_song(library, user['id'], b"\x00" * 64)
    playlist = _create(client, alice, public=True)

    assert client.put(f"/api/playlists/{playlist['id']}", json={"name": "Mine"}, headers=bob).status_code == 403
    assert client.post(f"/api/playlists/{playlist['id']}/songs",
                       json={"songId": song.id}, headers=bob).status_code == 403


def test_update_playlist(client):
    _, alice = register(client, "alice")
    playlist = _create(client, alice)

    response = client.put(f"/api/playlists/{playlist['id']}",
                          json={"name": "Late Night", "isPublic": True}, headers=alice)
    data = response.get_json()
    assert data['name'] == "Late Night"
    assert data['is_public'] is True


def test_listing_and_search(client):
    _, alice = register(client, "alice")
    _, bob = register(client, "bob")
    _create(client, alice, name="Morning Jazz", public=True)
    _create(client, alice, name="Secret Mix", public=False)
    _create(client, bob, name="Evening Jazz", public=True)

    mine = client.get('/api/playlists/my-playlists', headers=alice).get_json()
    assert sorted(p['name'] for p in mine) == ["Morning Jazz", "Secret Mix"]

    public = client.get('/api/playlists/public').get_json()
    assert sorted(p['name'] for p in public) == ["Evening Jazz", "Morning Jazz"]

    found = client.get('/api/playlists/search?q=evening').get_json()
    assert [p['name'] for p in found] == ["Evening Jazz"]


def test_visibility_flag_parses_strings(client):
    _, alice = register(client, "alice")
    playlist = _create(client, alice, public=True)

    hidden = client.put(f"/api/playlists/{playlist['id']}", json={"isPublic": "false"}, headers=alice)
    assert hidden.get_json()['is_public'] is False

    bad = client.put(f"/api/playlists/{playlist['id']}", json={"isPublic": "maybe"}, headers=alice)
    assert bad.status_code == 400
