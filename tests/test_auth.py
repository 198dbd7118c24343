from utils.security import bearer_token_matches, hash_password, verify_admin_password


def test_login_rejects_wrong_password(client):
    r = client.post('/auth/login', json={"password": "nope"})
    assert r.status_code == 401
    assert client.get('/auth/status').get_json()["authenticated"] is False


def test_login_logout_cycle(client):
    assert client.get('/api/students').status_code == 401
    r = client.post('/auth/login', json={"password": "letmein", "school_code": "Main Campus"})
    assert r.status_code == 200
    assert r.get_json()["school"]["code"] == "main-campus"
    assert client.get('/api/students').status_code == 200
    assert client.get('/auth/status').get_json()["authenticated"] is True

    client.post('/auth/logout')
    assert client.get('/api/students').status_code == 401


def test_hashed_admin_password(app, client):
    app.config['ADMIN_PASSWORD'] = hash_password("s3cret")
    try:
        assert client.post('/auth/login', json={"password": "letmein"}).status_code == 401
        assert client.post('/auth/login', json={"password": "s3cret"}).status_code == 200
    finally:
        app.config['ADMIN_PASSWORD'] = "letmein"


def test_unset_password_never_matches():
    assert verify_admin_password(None, "anything") is False
    assert verify_admin_password("", "") is False


def test_bearer_token_matching():
    assert bearer_token_matches("Bearer abc", "abc") is True
    assert bearer_token_matches("Bearer abd", "abc") is False
    assert bearer_token_matches("abc", "abc") is False
    assert bearer_token_matches("Bearer abc", None) is False


def test_unknown_school_header_is_not_found(client):
    client.post('/auth/logout')
    with client.session_transaction() as sess:
        sess['admin_logged_in'] = True
    r = client.get('/api/batches', headers={"X-School-Code": "nowhere"})
    assert r.status_code == 404


def test_health_and_request_id(client):
    r = client.get('/healthz', headers={"X-Request-ID": "req-42"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "req-42"
