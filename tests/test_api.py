import json

from fastapi.testclient import TestClient

from dailyword.main import app
from dailyword import deps
from dailyword.clock import FixedClock
from dailyword.history import key_history, key_lost_timestamp
from dailyword.kvstore import MemoryKeyValueStore

LOSING_BOARD = ['SLEEP', 'GUCCI', 'YANNO', 'WANGE', 'SLEEP', 'GUCCI']


def setup_app(moment='2026-02-15T09:00:00'):
    deps.store = MemoryKeyValueStore()
    deps.clock = FixedClock(moment)
    return deps.store, deps.clock


def login(client, username='alice'):
    r = client.post('/api/user', json={'username': username})
    assert r.status_code == 200
    return r


def test_health():
    setup_app()
    client = TestClient(app)
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json().get('status') == 'ok'


def test_user_selection_flow():
    setup_app()
    client = TestClient(app)

    assert client.get('/api/user').json()['username'] is None
    assert login(client, '  alice ').json()['username'] == 'alice'
    assert client.get('/api/user').json()['username'] == 'alice'

    assert client.delete('/api/user').status_code == 200
    assert client.get('/api/user').json()['username'] is None


def test_username_validation():
    setup_app()
    client = TestClient(app)

    for bad in ['bad name', 'x' * 13, '<script>', '']:
        r = client.post('/api/user', json={'username': bad})
        assert r.status_code == 422, bad
    assert client.get('/api/user').json()['username'] is None


def test_per_user_endpoints_need_a_user():
    setup_app()
    client = TestClient(app)

    for path in ['/api/stats', '/api/history', '/api/replay_status']:
        r = client.get(path)
        assert r.status_code == 401, path
    r = client.post('/api/complete', json={'guesses': ['LMFAO']})
    assert r.status_code == 401


def test_before_launch_reports_countdown():
    setup_app('2026-02-14T12:00:00')
    client = TestClient(app)
    login(client)

    data = client.get('/api/puzzle').json()
    assert data['launched'] is False
    assert data['time_until_launch_ms'] == 12 * 60 * 60 * 1000


def test_puzzle_payload_hides_solution_until_won():
    setup_app()
    client = TestClient(app)
    login(client)

    data = client.get('/api/puzzle').json()
    assert data['launched'] is True
    assert data['date'] == '2026-02-15'
    assert data['display_date'] == 'February 15, 2026'
    assert data['puzzle_number'] == 'No. 0321'
    assert data['state'] == 'unplayed'
    assert data['max_guesses'] == 6
    assert 'solution' not in data

    client.post('/api/complete', json={'guesses': ['lmfao']})
    data = client.get('/api/puzzle').json()
    assert data['state'] == 'won'
    assert data['solution'] == 'LMFAO'


def test_future_and_malformed_dates_are_rejected():
    setup_app()
    client = TestClient(app)
    login(client)

    assert client.get('/api/puzzle', params={'date': '2026-02-16'}).status_code == 404
    assert client.get('/api/puzzle', params={'date': '2026-02-14'}).status_code == 404
    assert client.get('/api/puzzle', params={'date': '15/02/2026'}).status_code == 400
    r = client.post('/api/complete', json={'guesses': ['GUCCI'], 'date': '2026-02-16'})
    assert r.status_code == 404


def test_evaluate_guess():
    setup_app()
    client = TestClient(app)

    r = client.post('/api/evaluate', json={'guess': 'loafs'})
    assert r.status_code == 200
    data = r.json()
    assert data['guess'] == 'LOAFS'
    assert data['tiles'] == ['correct', 'present', 'present', 'present', 'absent']
    assert data['solved'] is False

    assert client.post('/api/evaluate', json={'guess': 'LMFAO'}).json()['solved'] is True
    assert client.post('/api/evaluate', json={'guess': 'abc'}).status_code == 422
    assert client.post('/api/evaluate', json={'guess': 'ab1de'}).status_code == 422


def test_loss_lock_and_next_day_replay():
    store, clock = setup_app('2026-02-15T18:00:00')
    client = TestClient(app)
    login(client)

    r = client.post('/api/complete', json={'guesses': LOSING_BOARD})
    assert r.status_code == 200
    data = r.json()
    assert data['outcome'] == 'lose'
    assert data['replay'] is False
    assert 'solution' not in data
    assert data['stats'] == {'played': 1, 'wins': 0, 'current_streak': 0,
                             'max_streak': 0, 'win_percentage': 0}

    locked = client.post('/api/complete', json={'guesses': ['LMFAO']})
    assert locked.status_code == 403
    assert locked.json()['time_remaining_ms'] == 6 * 60 * 60 * 1000

    status = client.get('/api/replay_status').json()
    assert status['state'] == 'lost_locked'
    assert status['can_replay'] is False

    clock.set('2026-02-16T08:00:00')
    status = client.get('/api/replay_status', params={'date': '2026-02-15'}).json()
    assert status['state'] == 'lost_unlockable'
    assert status['can_replay'] is True

    r = client.post('/api/complete', json={'guesses': ['LMFAO'], 'date': '2026-02-15'})
    assert r.status_code == 200
    data = r.json()
    assert data['replay'] is True
    assert data['solution'] == 'LMFAO'
    assert data['stats']['played'] == 1
    assert data['stats']['wins'] == 0

    # a won date is never replayed
    again = client.post('/api/complete', json={'guesses': ['LMFAO'], 'date': '2026-02-15'})
    assert again.status_code == 403

    history = client.get('/api/history').json()
    assert history['history'] == {'2026-02-15': 'win'}
    assert history['recovered'] is False


def test_unfinished_board_is_rejected():
    setup_app()
    client = TestClient(app)
    login(client)

    r = client.post('/api/complete', json={'guesses': ['SLEEP', 'GUCCI']})
    assert r.status_code == 400
    assert client.get('/api/history').json()['history'] == {}
    too_many = client.post('/api/complete', json={'guesses': LOSING_BOARD + ['LMFAO']})
    assert too_many.status_code == 422


def test_saved_board_for_finished_dates_only():
    setup_app()
    client = TestClient(app)
    login(client)

    assert client.get('/api/guesses').status_code == 404
    client.post('/api/complete', json={'guesses': ['SLEEP', 'LMFAO']})

    data = client.get('/api/guesses', params={'date': '2026-02-15'}).json()
    assert data['outcome'] == 'win'
    assert data['guesses'] == ['SLEEP', 'LMFAO']
    assert data['tiles'][1] == ['correct'] * 5
    assert data['keyboard']['L'] == 'correct'
    assert data['keyboard']['S'] == 'absent'
    assert data['solution'] == 'LMFAO'


def test_stats_report_recovery_from_corrupt_values():
    store, _ = setup_app()
    client = TestClient(app)
    login(client)

    client.post('/api/complete', json={'guesses': ['LMFAO']})
    store._data['stats_alice'] = '{broken'

    data = client.get('/api/stats').json()
    assert data['username'] == 'alice'
    assert data['recovered'] is True
    assert data['stats']['played'] == 1
    assert data['stats']['wins'] == 0


def test_extended_date_borrows_a_lost_original():
    store, _ = setup_app('2026-02-20T10:00:00')
    lost_at = FixedClock('2026-02-15T12:00:00').timestamp_ms()
    store._data[key_history('alice')] = json.dumps({'2026-02-15': 'lose', '2026-02-16': 'win'})
    store._data[key_lost_timestamp('alice', '2026-02-15')] = str(lost_at)
    client = TestClient(app)
    login(client)

    data = client.get('/api/puzzle', params={'date': '2026-02-20'}).json()
    assert data['original_date'] == '2026-02-15'
    assert data['is_replayable'] is True
    assert data['puzzle_number'] == 'No. 0321'

    r = client.post('/api/complete', json={'guesses': ['LMFAO'], 'date': '2026-02-20'})
    assert r.status_code == 200
    assert r.json()['synced_date'] == '2026-02-15'
    history = client.get('/api/history').json()['history']
    assert history['2026-02-15'] == 'win'
    assert history['2026-02-20'] == 'win'


def test_request_id_is_echoed():
    setup_app()
    client = TestClient(app)
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.headers.get('X-Request-ID') == 'abc123'


def test_username_length_limit_matches_schema():
    setup_app()
    client = TestClient(app)

    schema = app.openapi()['components']['schemas']['UserRequest']
    assert schema['properties']['username']['maxLength'] == 12

    assert client.post('/api/user', json={'username': 'x' * 13}).status_code == 422
    assert login(client, 'x' * 12).json()['username'] == 'x' * 12
    assert login(client, '   ' + 'y' * 12 + '   ').json()['username'] == 'y' * 12
