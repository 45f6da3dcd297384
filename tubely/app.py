"""HTTP application: configuration, routing, handlers and the server entry point."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from werkzeug.exceptions import HTTPException, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.serving import run_simple
from werkzeug.utils import send_from_directory
from werkzeug.wrappers import Request, Response

from .database import Database
from .responses import error_response, json_response

logger = logging.getLogger(__name__)

TokenValidator = Callable[[str, str], uuid.UUID]

_REQUIRED_ENV = (
    ("db_path", "DB_PATH", "DB_URL must be set"),
    ("jwt_secret", "JWT_SECRET", "JWT_SECRET environment variable is not set"),
    ("platform", "PLATFORM", "PLATFORM environment variable is not set"),
    ("filepath_root", "FILEPATH_ROOT", "FILEPATH_ROOT environment variable is not set"),
    ("assets_root", "ASSETS_ROOT", "ASSETS_ROOT environment variable is not set"),
    ("s3_bucket", "S3_BUCKET", "S3_BUCKET environment variable is not set"),
    ("s3_region", "S3_REGION", "S3_REGION environment variable is not set"),
    ("s3_cf_distribution", "S3_CF_DISTRO", "S3_CF_DISTRO environment variable is not set"),
    ("port", "PORT", "PORT environment variable is not set"),
)

_SCHEME_SEPARATOR = " "


class ConfigError(ValueError):
    """Raised when a required setting is missing."""


@dataclass
class Config:
    """Server settings.

    ``token_validator`` turns a bearer token and the JWT secret into a user id,
    raising on an invalid token. Without one, authenticated requests are refused.
    """

    db_path: str
    jwt_secret: str
    platform: str
    filepath_root: str
    assets_root: str
    s3_bucket: str
    s3_region: str
    s3_cf_distribution: str
    port: str
    token_validator: Optional[TokenValidator] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Read every required setting from ``environ`` (the process environment by default)."""
        env = os.environ if environ is None else environ
        values = {}
        for attr, var, message in _REQUIRED_ENV:
            value = env.get(var, "")
            if not value:
                raise ConfigError(message)
            values[attr] = value
        return cls(**values)


@dataclass(frozen=True)
class Thumbnail:
    """An image kept in memory for a video."""

    data: bytes
    media_type: str


class _ApiError(Exception):
    def __init__(self, code: int, msg: str, err: Optional[BaseException] = None) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg
        self.err = err


def ensure_assets_dir(assets_root: str) -> None:
    """Create the assets directory if it does not exist yet."""
    if not os.path.exists(assets_root):
        os.mkdir(assets_root, 0o755)


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise _ApiError(401, "Couldn't find JWT", ValueError("no auth header included in request"))
    scheme, _, bearer = header.partition(_SCHEME_SEPARATOR)
    if scheme != "Bearer" or not bearer:
        raise _ApiError(401, "Couldn't find JWT", ValueError("malformed authorization header"))
    return bearer


def _parse_uuid(raw: str, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise _ApiError(400, message, exc) from exc


def _string_field(params: dict, name: str) -> str:
    value = params.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _ApiError(500, "Couldn't decode parameters", TypeError(f"{name} must be a string"))
    return value


def _plain_text(body: str, status: int) -> Response:
    return Response(body, status=status, content_type="text/plain; charset=utf-8")


class _TubelyApp:
    """WSGI application serving the API and static files."""

    def __init__(self, config: Config, db: Database) -> None:
        self.config = config
        self.db = db
        self.thumbnails: dict[uuid.UUID, Thumbnail] = {}
        self._url_map = Map([
            Rule("/app/", defaults={"path": ""}, endpoint=self._serve_app_file),
            Rule("/app/<path:path>", endpoint=self._serve_app_file),
            Rule("/assets/", defaults={"path": ""}, endpoint=self._serve_asset),
            Rule("/assets/<path:path>", endpoint=self._serve_asset),
            Rule("/api/videos", methods=["POST"], endpoint=self._video_meta_create),
            Rule("/api/videos", methods=["GET"], endpoint=self._videos_retrieve),
            Rule("/api/videos/<video_id>", methods=["GET"], endpoint=self._video_get),
            Rule("/api/videos/<video_id>", methods=["DELETE"], endpoint=self._video_meta_delete),
            Rule("/api/thumbnails/<video_id>", methods=["GET"], endpoint=self._thumbnail_get),
            Rule("/admin/reset", methods=["POST"], endpoint=self._reset),
        ])

    def __call__(self, environ: dict, start_response: Callable) -> Any:
        response = self._dispatch(Request(environ))
        return response(environ, start_response)

    def _dispatch(self, request: Request) -> Any:
        adapter = self._url_map.bind_to_environ(request.environ)
        try:
            handler, args = adapter.match()
            return handler(request, **args)
        except _ApiError as exc:
            return error_response(exc.code, exc.msg, exc.err)
        except HTTPException as exc:
            return exc

    def _authenticate(self, request: Request) -> uuid.UUID:
        bearer = _bearer_token(request)
        validator = self.config.token_validator
        if validator is None:
            raise _ApiError(401, "Couldn't validate JWT", RuntimeError("no token validator configured"))
        try:
            return validator(bearer, self.config.jwt_secret)
        except Exception as exc:
            raise _ApiError(401, "Couldn't validate JWT", exc) from exc

    @staticmethod
    def _serve_file(root: str, path: str, request: Request) -> Response:
        if path == "" or path.endswith("/"):
            path += "index.html"
        try:
            return send_from_directory(root, path, request.environ)
        except NotFound as exc:
            return exc.get_response(request.environ)

    def _serve_app_file(self, request: Request, path: str) -> Response:
        return self._serve_file(self.config.filepath_root, path, request)

    def _serve_asset(self, request: Request, path: str) -> Response:
        response = self._serve_file(self.config.assets_root, path, request)
        response.headers["Cache-Control"] = "no-store"
        return response

    def _video_meta_create(self, request: Request) -> Response:
        user_id = self._authenticate(request)
        try:
            params = json.loads(request.get_data())
        except ValueError as exc:
            raise _ApiError(500, "Couldn't decode parameters", exc) from exc
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise _ApiError(500, "Couldn't decode parameters", TypeError("expected a JSON object"))
        title = _string_field(params, "title")
        description = _string_field(params, "description")
        try:
            video = self.db.create_video(title, description, user_id)
        except sqlite3.Error as exc:
            raise _ApiError(500, "Couldn't create video", exc) from exc
        return json_response(201, video)

    def _video_meta_delete(self, request: Request, video_id: str) -> Response:
        parsed_id = _parse_uuid(video_id, "Invalid ID")
        user_id = self._authenticate(request)
        try:
            video = self.db.get_video(parsed_id)
        except sqlite3.Error as exc:
            raise _ApiError(404, "Couldn't get video", exc) from exc
        if video is None or video.user_id != user_id:
            raise _ApiError(403, "You can't delete this video")
        try:
            self.db.delete_video(parsed_id)
        except sqlite3.Error as exc:
            raise _ApiError(500, "Couldn't delete video", exc) from exc
        return Response(status=204)

    def _video_get(self, request: Request, video_id: str) -> Response:
        parsed_id = _parse_uuid(video_id, "Invalid video ID")
        try:
            video = self.db.get_video(parsed_id)
        except sqlite3.Error as exc:
            raise _ApiError(404, "Couldn't get video", exc) from exc
        if video is None:
            raise _ApiError(404, "Couldn't get video")
        return json_response(200, video)

    def _videos_retrieve(self, request: Request) -> Response:
        user_id = self._authenticate(request)
        try:
            videos = self.db.get_videos(user_id)
        except sqlite3.Error as exc:
            raise _ApiError(500, "Couldn't retrieve videos", exc) from exc
        return json_response(200, videos)

    def _thumbnail_get(self, request: Request, video_id: str) -> Response:
        parsed_id = _parse_uuid(video_id, "Invalid video ID")
        thumbnail = self.thumbnails.get(parsed_id)
        if thumbnail is None:
            raise _ApiError(404, "Thumbnail not found")
        return Response(thumbnail.data, status=200, content_type=thumbnail.media_type)

    def _reset(self, request: Request) -> Response:
        if self.config.platform != "dev":
            return _plain_text("Reset is only allowed in dev environment.", 403)
        try:
            self.db.reset()
        except sqlite3.Error as exc:
            raise _ApiError(500, "Couldn't reset database", exc) from exc
        return _plain_text("Database reset to initial state", 200)


def create_app(config: Config, db: Database) -> _TubelyApp:
    """Build the WSGI application for ``config`` backed by ``db``."""
    return _TubelyApp(config, db)


def _load_dotenv(path: str) -> None:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError:
        return
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key, value = key.strip(), value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        os.environ.setdefault(key, value)


def main(argv: Optional[list] = None) -> int:
    """Start the server using settings from the environment and ``.env``."""
    parser = argparse.ArgumentParser(prog="tubely", description="Serve the video-sharing API.")
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    _load_dotenv(".env")
    try:
        config = Config.from_env()
        port = int(config.port)
    except (ConfigError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    try:
        db = Database(config.db_path)
    except sqlite3.Error as exc:
        logger.error("Couldn't connect to database: %s", exc)
        return 1

    with db:
        try:
            ensure_assets_dir(config.assets_root)
        except OSError as exc:
            logger.error("Couldn't create assets directory: %s", exc)
            return 1
        if config.token_validator is None:
            logger.warning("No token validator configured; authenticated requests will be refused")
        app = create_app(config, db)
        logger.info("Serving on: http://localhost:%s/app/", config.port)
        run_simple("0.0.0.0", port, app, threaded=True)
    return 0