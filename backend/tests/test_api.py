from scoreboard.services.scoring import StoreUnavailable
from scoreboard.services.scoring.registry import sessions
from scoreboard.services.store import SqlRoundScoreBackend


def _create_match(client, **body):
    res = client.post('/api/matches/create', json=body)
    assert res.status_code == 201
    return res.get_json()['match_id']


def _points(client, match_id, team, count=1, points=1):
    res = None
    for _ in range(count):
        res = client.post(f'/api/matches/{match_id}/points', json={'team': team, 'points': points})
        assert res.status_code == 200
    return res.get_json()


def test_create_match(client):
    res = client.post('/api/matches/create', json={'title': 'Final', 'win_score': 2})
    assert res.status_code == 201
    data = res.get_json()
    assert data['match']['target_score'] == 15
    assert data['match']['overtime_margin'] == 2
    assert data['match']['max_rounds'] == 3


def test_create_match_rejects_unknown_win_score(client):
    res = client.post('/api/matches/create', json={'win_score': 7})
    assert res.status_code == 400


def test_unknown_match_is_404(client):
    assert client.get('/api/matches/999/state').status_code == 404
    assert client.post('/api/matches/999/points', json={'team': 1}).status_code == 404


def test_points_and_state(client):
    match_id = _create_match(client)
    state = _points(client, match_id, 1, count=2)
    state = _points(client, match_id, 2)
    assert state['scores'] == {'team1': 2, 'team2': 1}
    assert [e['team'] for e in state['events']] == [1, 1, 2]
    assert state['match']['status'] == 2

    fetched = client.get(f'/api/matches/{match_id}/state').get_json()
    assert fetched['scores'] == state['scores']


def test_invalid_point_rejected_without_append(client):
    match_id = _create_match(client)
    for body in ({'team': 3}, {'team': 1, 'points': 0}, {'team': '1'}, {'team': 1, 'points': 1.5}):
        res = client.post(f'/api/matches/{match_id}/points', json=body)
        assert res.status_code == 400
    state = client.get(f'/api/matches/{match_id}/state').get_json()
    assert state['events'] == []
    assert state['match']['status'] == 1


def test_point_after_win_is_conflict(client):
    match_id = _create_match(client)
    state = _points(client, match_id, 1, count=11)
    assert state['status']['winner'] == 1
    res = client.post(f'/api/matches/{match_id}/points', json={'team': 2})
    assert res.status_code == 409
    # Undo is still allowed after a win
    res = client.post(f'/api/matches/{match_id}/undo')
    assert res.status_code == 200
    assert res.get_json()['status']['game_point'] == 1


def test_undo_and_reset(client):
    match_id = _create_match(client)
    _points(client, match_id, 1)
    _points(client, match_id, 2)
    state = client.post(f'/api/matches/{match_id}/undo').get_json()
    assert state['scores'] == {'team1': 1, 'team2': 0}
    state = client.post(f'/api/matches/{match_id}/reset').get_json()
    assert state['events'] == []
    state = client.post(f'/api/matches/{match_id}/reset').get_json()
    assert state['events'] == []


def test_finalize_end_and_stored_scores(client):
    match_id = _create_match(client)
    _points(client, match_id, 2, count=5)
    _points(client, match_id, 1, count=11)
    res = client.post(f'/api/matches/{match_id}/rounds/finalize', json={'note': 'Round one', 'current_half': 1})
    assert res.status_code == 201
    body = res.get_json()
    assert body['round_score']['team1_score'] == 11
    assert body['round_score']['source'] == 'local'
    assert body['state']['current_round'] == 2
    assert body['state']['events'] == []

    # Nothing stored until the match is ended
    assert client.get(f'/api/matches/{match_id}/scores').get_json() == []

    res = client.post(f'/api/matches/{match_id}/end')
    assert res.status_code == 200
    data = res.get_json()
    assert data['submitted_rounds'] == [1]
    assert data['state']['local_rounds'] == []
    assert data['state']['match']['status'] == 3

    stored = client.get(f'/api/matches/{match_id}/scores').get_json()
    assert len(stored) == 1
    assert stored[0]['team1_score'] == 11
    assert stored[0]['team2_score'] == 5
    assert stored[0]['note'] == 'Round one'
    assert len(stored[0]['logs']) == 16

    # A completed match no longer takes points
    assert client.post(f'/api/matches/{match_id}/points', json={'team': 1}).status_code == 409


def test_end_with_nothing_local_is_ok(client):
    match_id = _create_match(client)
    res = client.post(f'/api/matches/{match_id}/end')
    assert res.status_code == 200
    assert res.get_json()['submitted_rounds'] == []


def test_end_reports_partial_failure(client, monkeypatch):
    match_id = _create_match(client)
    _points(client, match_id, 1, count=11)
    client.post(f'/api/matches/{match_id}/rounds/finalize', json={})
    _points(client, match_id, 1, count=3)
    client.post(f'/api/matches/{match_id}/rounds/finalize', json={'current_half': 2})

    original = SqlRoundScoreBackend.save

    def flaky(self, mid, score):
        if score.round == 2:
            raise StoreUnavailable('backend down')
        return original(self, mid, score)

    monkeypatch.setattr(SqlRoundScoreBackend, 'save', flaky)
    res = client.post(f'/api/matches/{match_id}/end')
    assert res.status_code == 207
    data = res.get_json()
    assert data['failed_rounds'] == [2]
    assert data['submitted_rounds'] == [1]
    assert data['state']['local_rounds'] == [2]
    assert data['state']['match']['status'] == 2

    monkeypatch.setattr(SqlRoundScoreBackend, 'save', original)
    res = client.post(f'/api/matches/{match_id}/end')
    assert res.status_code == 200
    assert res.get_json()['submitted_rounds'] == [2]
    assert len(client.get(f'/api/matches/{match_id}/scores').get_json()) == 2


def test_finalize_empty_round_is_conflict(client):
    match_id = _create_match(client)
    res = client.post(f'/api/matches/{match_id}/rounds/finalize', json={})
    assert res.status_code == 409


def test_max_rounds_and_delete(client):
    match_id = _create_match(client, max_rounds=1)
    _points(client, match_id, 1, count=2)
    assert client.post(f'/api/matches/{match_id}/rounds/finalize', json={}).status_code == 201
    _points(client, match_id, 2)
    assert client.post(f'/api/matches/{match_id}/rounds/finalize', json={}).status_code == 409

    res = client.delete(f'/api/matches/{match_id}/rounds/1')
    assert res.status_code == 200
    assert res.get_json()['round_scores'] == []
    assert client.delete(f'/api/matches/{match_id}/rounds/1').status_code == 404

    res = client.post(f'/api/matches/{match_id}/rounds/select', json={'round': 1})
    assert res.get_json()['current_round'] == 1


def test_rescoring_a_round_overwrites_stored_result(client):
    match_id = _create_match(client)
    _points(client, match_id, 1, count=4)
    client.post(f'/api/matches/{match_id}/rounds/finalize', json={})
    client.post(f'/api/matches/{match_id}/rounds/select', json={'round': 1})
    _points(client, match_id, 2, count=6)
    state = client.post(f'/api/matches/{match_id}/rounds/finalize', json={}).get_json()['state']
    assert len(state['round_scores']) == 1
    assert state['round_scores'][0]['team2_score'] == 6


def test_score_persistence_endpoint_creates_then_updates(client):
    match_id = _create_match(client)
    payload = {'round': 1, 'team1_score': 11, 'team2_score': 3, 'current_half': 1, 'note': 'seed'}
    res = client.post(f'/api/matches/{match_id}/scores', json=payload)
    assert res.status_code == 201
    record_id = res.get_json()['id']

    payload['team2_score'] = 9
    res = client.post(f'/api/matches/{match_id}/scores', json=payload)
    assert res.get_json()['id'] == record_id

    stored = client.get(f'/api/matches/{match_id}/scores').get_json()
    assert len(stored) == 1
    assert stored[0]['team2_score'] == 9

    # A session opened afterwards picks the stored round up as remote
    state = client.get(f'/api/matches/{match_id}/state').get_json()
    assert state['current_round'] == 2
    assert state['round_scores'][0]['source'] == 'remote'


def test_score_persistence_endpoint_validates(client):
    match_id = _create_match(client)
    res = client.post(f'/api/matches/{match_id}/scores', json={'round': 0, 'team1_score': 1, 'team2_score': 0})
    assert res.status_code == 400
    res = client.post(f'/api/matches/{match_id}/scores', json={'round': 1, 'team1_score': -2, 'team2_score': 0})
    assert res.status_code == 400


def test_completed_match_is_closed_to_changes(client):
    match_id = _create_match(client)
    _points(client, match_id, 1, count=11)
    client.post(f'/api/matches/{match_id}/rounds/finalize', json={})
    assert client.post(f'/api/matches/{match_id}/end').status_code == 200
    assert sessions.get(match_id) is None

    base = f'/api/matches/{match_id}'
    attempts = [
        client.post(f'{base}/undo'),
        client.post(f'{base}/reset'),
        client.post(f'{base}/rounds/select', json={'round': 1}),
        client.post(f'{base}/rounds/finalize', json={}),
        client.post(f'{base}/rounds', json={'round': 2, 'team1_score': 11, 'team2_score': 1}),
        client.put(f'{base}/rounds/1', json={'team2_score': 9}),
        client.delete(f'{base}/rounds/1'),
        client.post(f'{base}/end'),
        client.post(f'{base}/scores', json={'round': 1, 'team1_score': 0, 'team2_score': 11}),
    ]
    assert [res.status_code for res in attempts] == [409] * len(attempts)
    assert sessions.get(match_id) is None

    stored = client.get(f'{base}/scores').get_json()
    assert [(s['round'], s['team1_score'], s['team2_score']) for s in stored] == [(1, 11, 0)]
    state = client.get(f'{base}/state').get_json()
    assert state['match']['status'] == 3
    assert state['round_scores'][0]['source'] == 'remote'


def test_round_entered_by_hand_is_edited_then_submitted(client):
    match_id = _create_match(client)
    base = f'/api/matches/{match_id}'
    res = client.post(f'{base}/rounds', json={'round': 1, 'team1_score': 11, 'team2_score': 6, 'note': 'typed'})
    assert res.status_code == 201
    body = res.get_json()
    assert body['round_score']['source'] == 'local'
    assert body['state']['current_round'] == 1
    assert body['state']['match']['status'] == 2

    assert client.post(f'{base}/rounds', json={'round': 1, 'team1_score': 1, 'team2_score': 0}).status_code == 409

    res = client.put(f'{base}/rounds/1', json={'team2_score': 8})
    assert res.status_code == 200
    edited = res.get_json()['round_score']
    assert (edited['team1_score'], edited['team2_score'], edited['note']) == (11, 8, 'typed')
    assert client.put(f'{base}/rounds/4', json={'team1_score': 1}).status_code == 404

    # Buffered until the match ends
    assert client.get(f'{base}/scores').get_json() == []
    res = client.post(f'{base}/end')
    assert res.status_code == 200
    assert res.get_json()['submitted_rounds'] == [1]
    stored = client.get(f'{base}/scores').get_json()
    assert (stored[0]['team2_score'], stored[0]['note']) == (8, 'typed')


def test_round_entered_by_hand_is_validated(client):
    match_id = _create_match(client, max_rounds=1)
    base = f'/api/matches/{match_id}'
    assert client.post(f'{base}/rounds', json={'round': 'one', 'team1_score': 1, 'team2_score': 0}).status_code == 400
    assert client.post(f'{base}/rounds', json={'round': 1, 'team1_score': -1, 'team2_score': 0}).status_code == 400
    assert client.post(f'{base}/rounds', json={'round': 1, 'team1_score': 11, 'team2_score': 0}).status_code == 201
    assert client.post(f'{base}/rounds', json={'round': 2, 'team1_score': 11, 'team2_score': 0}).status_code == 409
