import uuid

import pytest
from werkzeug.test import Client

from tubely.app import Config, ConfigError, Thumbnail, create_app, ensure_assets_dir
from tubely.database import Database

USER_A = uuid.UUID("11111111-1111-1111-1111-111111111111")
USER_B = uuid.UUID("22222222-2222-2222-2222-222222222222")
AUTH_A = {"Authorization": "Bearer token"}
AUTH_B = {"Authorization": "Bearer placeholder"}
AUTH_BAD = {"Authorization": "Bearer secret"}


def _validator(token, secret):
    assert secret == "secret"
    users = {"token": USER_A, "placeholder": USER_B}
    if token not in users:
        raise ValueError("invalid token")
    return users[token]


def _config(tmp_path, platform="dev", validator=_validator):
    return Config(
        db_path=str(tmp_path / "tubely.db"),
        jwt_secret="secret",
        platform=platform,
        filepath_root=str(tmp_path / "static"),
        assets_root=str(tmp_path / "assets"),
        s3_bucket="bucket",
        s3_region="region",
        s3_cf_distribution="cdn.example.com",
        port="8091",
        token_validator=validator,
    )


@pytest.fixture
def setup(tmp_path):
    static = tmp_path / "static"
    static.mkdir()
    (static / "index.html").write_text("<h1>tubely</h1>")
    assets = tmp_path / "assets"
    assets.mkdir()
    (assets / "a.txt").write_bytes(b"asset")
    db = Database(str(tmp_path / "tubely.db"))
    app = create_app(_config(tmp_path), db)
    yield app, db, Client(app)
    db.close()


def _create(client, title, headers=AUTH_A):
    resp = client.post(
        "/api/videos", json={"title": title, "description": "desc"}, headers=headers
    )
    assert resp.status_code == 201
    return resp.get_json()


def _env():
    return {
        "DB_PATH": "/tmp/db.sqlite",
        "JWT_SECRET": "secret",
        "PLATFORM": "dev",
        "FILEPATH_ROOT": "./app",
        "ASSETS_ROOT": "./assets",
        "S3_BUCKET": "bucket",
        "S3_REGION": "region",
        "S3_CF_DISTRO": "cdn.example.com",
        "PORT": "8091",
    }


def test_config_from_env():
    config = Config.from_env(_env())
    assert config.db_path == "/tmp/db.sqlite"
    assert config.platform == "dev"
    assert config.s3_cf_distribution == "cdn.example.com"
    assert config.port == "8091"
    assert config.token_validator is None


@pytest.mark.parametrize(
    "missing, message",
    [
        ("DB_PATH", "DB_URL must be set"),
        ("PORT", "PORT environment variable is not set"),
        ("S3_CF_DISTRO", "S3_CF_DISTRO environment variable is not set"),
    ],
)
def test_config_from_env_missing(missing, message):
    env = _env()
    env[missing] = ""
    with pytest.raises(ConfigError) as info:
        Config.from_env(env)
    assert str(info.value) == message


def test_ensure_assets_dir(tmp_path):
    target = tmp_path / "assets"
    ensure_assets_dir(str(target))
    assert target.is_dir()
    (target / "keep.txt").write_text("x")
    ensure_assets_dir(str(target))
    assert (target / "keep.txt").read_text() == "x"


def test_create_video(setup):
    _, db, client = setup
    body = _create(client, "First")
    assert body["title"] == "First"
    assert body["description"] == "desc"
    assert body["user_id"] == str(USER_A)
    stored = db.get_video(body["id"])
    assert stored.title == "First"


def test_create_video_bad_json(setup):
    _, _, client = setup
    resp = client.post("/api/videos", data=b"{", headers=AUTH_A)
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Couldn't decode parameters"}


def test_missing_token(setup):
    _, _, client = setup
    resp = client.get("/api/videos")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Couldn't find JWT"}


def test_invalid_token(setup):
    _, _, client = setup
    resp = client.get("/api/videos", headers=AUTH_BAD)
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Couldn't validate JWT"}


def test_no_validator_refuses(tmp_path):
    with Database(str(tmp_path / "tubely.db")) as db:
        client = Client(create_app(_config(tmp_path, validator=None), db))
        resp = client.get("/api/videos", headers=AUTH_A)
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Couldn't validate JWT"}


def test_list_only_own_videos(setup):
    _, _, client = setup
    _create(client, "one")
    _create(client, "two")
    _create(client, "theirs", headers=AUTH_B)
    resp = client.get("/api/videos", headers=AUTH_A)
    assert resp.status_code == 200
    assert {v["title"] for v in resp.get_json()} == {"one", "two"}


def test_get_video(setup):
    _, _, client = setup
    created = _create(client, "Shown")
    resp = client.get(f"/api/videos/{created['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["title"] == "Shown"


def test_get_video_invalid_id(setup):
    _, _, client = setup
    resp = client.get("/api/videos/not-a-uuid")
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid video ID"}


def test_get_video_unknown(setup):
    _, _, client = setup
    resp = client.get(f"/api/videos/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Couldn't get video"}


def test_delete_video(setup):
    _, db, client = setup
    created = _create(client, "Doomed")
    resp = client.delete(f"/api/videos/{created['id']}", headers=AUTH_B)
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "You can't delete this video"}
    resp = client.delete(f"/api/videos/{created['id']}", headers=AUTH_A)
    assert resp.status_code == 204
    assert db.get_video(created["id"]) is None


def test_delete_video_invalid_id(setup):
    _, _, client = setup
    resp = client.delete("/api/videos/nope", headers=AUTH_A)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid ID"}


def test_method_not_allowed(setup):
    _, _, client = setup
    resp = client.put("/api/videos", headers=AUTH_A)
    assert resp.status_code == 405


def test_reset_in_dev(setup):
    _, db, client = setup
    _create(client, "gone")
    resp = client.post("/admin/reset")
    assert resp.status_code == 200
    assert resp.data == b"Database reset to initial state"
    assert db.get_videos(USER_A) == []


def test_reset_forbidden_outside_dev(tmp_path):
    with Database(str(tmp_path / "tubely.db")) as db:
        db.create_video("kept", "", USER_A)
        client = Client(create_app(_config(tmp_path, platform="production"), db))
        resp = client.post("/admin/reset")
        assert resp.status_code == 403
        assert resp.data == b"Reset is only allowed in dev environment."
        assert len(db.get_videos(USER_A)) == 1


def test_static_app_index(setup):
    _, _, client = setup
    resp = client.get("/app/")
    assert resp.status_code == 200
    assert resp.data == b"<h1>tubely</h1>"
    resp.close()


def test_assets_are_not_cached(setup):
    _, _, client = setup
    resp = client.get("/assets/a.txt")
    assert resp.status_code == 200
    assert resp.data == b"asset"
    assert resp.headers["Cache-Control"] == "no-store"
    resp.close()
    missing = client.get("/assets/missing.txt")
    assert missing.status_code == 404
    assert missing.headers["Cache-Control"] == "no-store"


def test_thumbnail_get(setup):
    app, _, client = setup
    video_id = uuid.uuid4()
    app.thumbnails[video_id] = Thumbnail(data=b"\x89PNG", media_type="image/png")
    resp = client.get(f"/api/thumbnails/{video_id}")
    assert resp.status_code == 200
    assert resp.data == b"\x89PNG"
    assert resp.headers["Content-Type"] == "image/png"
    assert resp.headers["Content-Length"] == str(len(b"\x89PNG"))


def test_thumbnail_missing(setup):
    _, _, client = setup
    resp = client.get(f"/api/thumbnails/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Thumbnail not found"}