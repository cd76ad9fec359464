# rescue_feed/api/test_routes.py
from rescue_feed.services.entity_store import CASES


def test_list_cases_pages_through(client, make_case):
    for i in range(5):
        make_case(f"c{i}", 1000 + i)

    first = client.get('/api/cases?limit=2')
    body = first.get_json()

    assert first.status_code == 200
    assert [c['case_id'] for c in body['items']] == ["c4", "c3"]
    assert body['has_more'] is True

    second = client.get(f"/api/cases?limit=2&cursor={body['next_cursor']}").get_json()
    assert [c['case_id'] for c in second['items']] == ["c2", "c1"]


def test_list_cases_rejects_bad_params(client):
    assert client.get('/api/cases?limit=0').status_code == 400
    assert client.get('/api/cases?limit=1000').status_code == 400
    assert client.get('/api/cases?status=sleepy').status_code == 400

    response = client.get('/api/cases?cursor=%25%25broken')
    assert response.status_code == 400
    assert response.get_json()['error_code'] == "INVALID_CURSOR"

    overflow = client.get('/api/cases?cursor=99999999999999999999')
    assert overflow.status_code == 400
    assert overflow.get_json()['error_code'] == "INVALID_CURSOR"


def test_get_case_not_found(client):
    response = client.get('/api/cases/nope')
    assert response.status_code == 404
    assert response.get_json()['error_code'] == "NOT_FOUND"


def test_lifecycle_requires_login(client, make_case):
    make_case("c1", 1000)
    response = client.post('/api/cases/c1/lifecycle', json={"target_stage": "closed_success"})
    assert response.status_code == 401


def test_lifecycle_transition_and_errors(client, store, make_case, make_user, auth_headers):
    make_case("c1", 1000)
    make_user("stranger")

    forbidden = client.post('/api/cases/c1/lifecycle', json={"target_stage": "closed_success"},
                            headers=auth_headers("stranger"))
    assert forbidden.status_code == 403

    ok = client.post('/api/cases/c1/lifecycle', json={"target_stage": "closed_success", "notes": "Adopted!"},
                     headers=auth_headers("owner-1"))
    assert ok.status_code == 200
    assert ok.get_json()['closed_reason'] == "Adopted!"
    assert store.get(CASES, "c1")['lifecycle_stage'] == "closed_success"

    invalid = client.post('/api/cases/c1/lifecycle', json={"target_stage": "seeking_adoption"},
                          headers=auth_headers("owner-1"))
    assert invalid.status_code == 409
    assert invalid.get_json()['error_code'] == "INVALID_TRANSITION"

    stale = client.post('/api/cases/c1/lifecycle',
                        json={"target_stage": "closed_other", "expected_stage": "active_treatment"},
                        headers=auth_headers("owner-1"))
    assert stale.status_code == 409
    assert stale.get_json()['error_code'] == "CONFLICT"


def test_lifecycle_unknown_stage(client, make_case, auth_headers):
    make_case("c1", 1000)
    response = client.post('/api/cases/c1/lifecycle', json={"target_stage": "archived"},
                           headers=auth_headers("owner-1"))
    assert response.status_code == 400


def test_add_case_update(client, make_case, auth_headers):
    make_case("c1", 1000)

    created = client.post('/api/cases/c1/updates', json={"text": "  Walking again  ", "type": "medical"},
                          headers=auth_headers("owner-1"))
    assert created.status_code == 201
    assert created.get_json()['updates'][-1]['text'] == "Walking again"

    blank = client.post('/api/cases/c1/updates', json={"text": "   "}, headers=auth_headers("owner-1"))
    assert blank.status_code == 400


def test_feeds(client, make_case, make_user, make_donation, auth_headers):
    make_user("owner-1", name="Maria")
    make_case("c1", 1000, goal=1000, current=500)
    make_donation("d1", "c1", "owner-1", 500, 2000, anonymous=True)

    case_feed = client.get('/api/feed/cases/c1').get_json()
    assert [a['type'] for a in case_feed] == ["donation", "milestone", "case_created"]
    assert case_feed[0]['user'] is None
    assert case_feed[2]['user']['name'] == "Maria"
    assert case_feed[2]['case']['lifecycle_stage'] == "active_treatment"

    anonymous_view = client.get('/api/feed/users/owner-1').get_json()
    own_view = client.get('/api/feed/users/owner-1', headers=auth_headers("owner-1")).get_json()
    assert "donation-d1" not in [a['id'] for a in anonymous_view]
    assert "donation-d1" in [a['id'] for a in own_view]

    global_feed = client.get('/api/feed/global?limit=2').get_json()
    assert len(global_feed) == 2
    assert client.get('/api/feed/announcements').get_json() == []


def test_unknown_route_is_json_404(client):
    response = client.get('/api/does-not-exist')
    assert response.status_code == 404
    assert response.get_json()['error_code'] == "NOT_FOUND"
