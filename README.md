# tubely

tubely is a small video-sharing HTTP server. It keeps users, refresh tokens
and video metadata in a SQLite database, serves a static front-end and an
assets directory over WSGI, and has helpers for preparing uploaded media:
classifying a video's aspect ratio, moving an MP4's index to the front for
streaming, and choosing file names and storage key prefixes.

## Installing

```
pip install .
```

The media helpers in `tubely.media` call `ffprobe` and `ffmpeg`, so both
must be on your `PATH` if you use them.

## Running the server

The `tubely` command reads its settings from the environment, after loading
any `KEY=value` lines from a `.env` file in the current directory (variables
already set in the environment win). Every one of these must be set, or the
command logs which one is missing and exits with status 1:

| Variable        | Meaning                                                |
|-----------------|--------------------------------------------------------|
| `DB_PATH`       | Path of the SQLite database file                       |
| `JWT_SECRET`    | Secret passed to the token validator                   |
| `PLATFORM`      | Deployment platform; `dev` enables `/admin/reset`      |
| `FILEPATH_ROOT` | Directory served under `/app/`                         |
| `ASSETS_ROOT`   | Directory served under `/assets/` (created if absent)  |
| `S3_BUCKET`     | Bucket name (read and kept in the configuration)       |
| `S3_REGION`     | Bucket region (read and kept in the configuration)     |
| `S3_CF_DISTRO`  | Distribution host name (read and kept in the configuration) |
| `PORT`          | Port to listen on; must be an integer                  |

For example:

```
export DB_PATH=tubely.db
export JWT_SECRET=secret
export PLATFORM=dev
export FILEPATH_ROOT=./app
export ASSETS_ROOT=./assets
export S3_BUCKET=placeholder
export S3_REGION=us-east-1
export S3_CF_DISTRO=placeholder
export PORT=8091
tubely
```

The server listens on all interfaces and logs
`Serving on: http://localhost:8091/app/`.

### Routes

| Method   | Path                          | Purpose                                         |
|----------|-------------------------------|-------------------------------------------------|
| `GET`    | `/app/...`                    | Static files from `FILEPATH_ROOT` (`index.html` for directories) |
| `GET`    | `/assets/...`                 | Files from `ASSETS_ROOT`, sent with `Cache-Control: no-store` |
| `POST`   | `/api/videos`                 | Create a video from `{"title": ..., "description": ...}` for the signed-in user (201) |
| `GET`    | `/api/videos`                 | List the signed-in user's videos, newest first  |
| `GET`    | `/api/videos/{videoID}`       | Fetch one video (404 if there is none)          |
| `DELETE` | `/api/videos/{videoID}`       | Delete a video you own (204; 403 otherwise)     |
| `GET`    | `/api/thumbnails/{videoID}`   | Return a thumbnail held in memory for the video |
| `POST`   | `/admin/reset`                | Empty every table (only when `PLATFORM=dev`, else 403) |

Requests that need a user carry an `Authorization: Bearer token` header.
Errors come back as JSON of the form `{"error": "..."}`; a malformed video id
gives 400. JSON bodies escape `<`, `>` and `&`, and times are written in UTC
with a trailing `Z`.

## Authentication

The server does not check tokens by itself. `Config` has a `token_validator`
field: a callable taking the bearer token and the JWT secret and returning
the user's `uuid.UUID`, raising if the token is not valid. The `tubely`
command starts without one, so every authenticated request is answered with
401. To use those routes, build the application yourself:

```python
import uuid

from tubely.app import Config, create_app
from tubely.database import Database

def validate(token, secret):
    ...  # check the token and return the user's id as a uuid.UUID

config = Config.from_env({
    "DB_PATH": "tubely.db",
    "JWT_SECRET": "secret",
    "PLATFORM": "dev",
    "FILEPATH_ROOT": "./app",
    "ASSETS_ROOT": "./assets",
    "S3_BUCKET": "placeholder",
    "S3_REGION": "us-east-1",
    "S3_CF_DISTRO": "placeholder",
    "PORT": "8091",
})
config.token_validator = validate
db = Database(config.db_path)
app = create_app(config, db)  # an ordinary WSGI callable
```

`Config.from_env` raises `ConfigError` when a variable is missing or empty.
`ensure_assets_dir(path)` creates the assets directory if it does not exist.

## The database

`tubely.database.Database` wraps a SQLite file (or `":memory:"`), creating
the tables on first use. It can be used as a context manager, which closes
it on exit. Records are the dataclasses `User`, `Video` and `RefreshToken`,
each with a `to_dict()` for JSON output. Lookups that find nothing return
`None`.

```python
from tubely.database import Database

password = "password"
with Database(":memory:") as db:
    user = db.create_user("alice@example.com", password)
    video = db.create_video("Boots", "A video about boots", user.id)
    video.thumbnail_url = "http://localhost:8091/assets/boots.png"
    db.update_video(video)
    print([v.to_dict() for v in db.get_videos(user.id)])
```

Passwords are stored exactly as given; hash them before calling
`create_user`. Refresh tokens are handled with `create_refresh_token`,
`get_refresh_token`, `revoke_refresh_token`, `delete_refresh_token` and
`get_user_by_refresh_token`.

## Media helpers

```python
from tubely.media import (
    classify_aspect_ratio,
    extension_from_content_type,
    key_prefix_for_aspect_ratio,
    random_file_name,
)

classify_aspect_ratio(1920, 1080)          # "16:9"
classify_aspect_ratio(1080, 1920)          # "9:16"
key_prefix_for_aspect_ratio("16:9")        # "landscape/"
key_prefix_for_aspect_ratio("other")       # "other/"
extension_from_content_type("image/png")   # ".png"
random_file_name(".mp4")                   # 43 random URL-safe characters, then ".mp4"
```

`get_video_aspect_ratio(path)` asks `ffprobe` for the first stream's size
and classifies it; `process_video_for_fast_start(path)` runs `ffmpeg` to
write a fast-start copy at `path + ".processing"` and returns that path. Both
raise `MediaError` when the tool fails or its output is unusable, as does
`classify_aspect_ratio` for a zero width or height.

## What it does not do

- There are no routes for creating users, logging in, or refreshing and
  revoking tokens, and no token issuing or checking is built in.
- There are no upload routes for thumbnails or videos, and nothing uploads
  to object storage; the S3 settings are only read into `Config`. The media
  helpers are there to build such handlers with.
- `/api/thumbnails/{videoID}` serves only what has been put in the
  application's in-memory `thumbnails` mapping (`uuid.UUID` to `Thumbnail`);
  nothing fills it on its own, and it is lost when the server stops.

## Running the tests

```
pip install ".[test]"
pytest
```