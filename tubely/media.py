"""Helpers for probing, preparing and naming uploaded media files."""

from __future__ import annotations

import base64
import json
import secrets
import subprocess

_ASPECT_TOLERANCE = 0.2


class MediaError(Exception):
    """Raised when an external media tool fails or gives unusable output."""


def classify_aspect_ratio(width: int, height: int) -> str:
    """Return ``"16:9"``, ``"9:16"`` or ``"other"`` for the given dimensions."""
    if width == 0 or height == 0:
        raise MediaError("invalid dimensions")
    ratio = width / height
    if width >= height:
        if abs(ratio - 16.0 / 9.0) < _ASPECT_TOLERANCE:
            return "16:9"
    elif abs(ratio - 9.0 / 16.0) < _ASPECT_TOLERANCE:
        return "9:16"
    return "other"


def get_video_aspect_ratio(file_path: str) -> str:
    """Probe the first stream of a video with ffprobe and classify its shape."""
    command = [
        "ffprobe", "-v", "error", "-print_format", "json", "-show_streams", str(file_path),
    ]
    try:
        result = subprocess.run(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise MediaError(f"ffprobe failed: {exc}") from exc

    try:
        parsed = json.loads(result.stdout)
    except ValueError as exc:
        raise MediaError(f"could not parse ffprobe output: {exc}") from exc

    streams = parsed.get("streams") if isinstance(parsed, dict) else None
    if not streams:
        raise MediaError("no streams found in ffprobe output")

    first = streams[0] if isinstance(streams[0], dict) else {}
    width = int(first.get("width") or 0)
    height = int(first.get("height") or 0)
    return classify_aspect_ratio(width, height)


def process_video_for_fast_start(file_path: str) -> str:
    """Rewrite a video with its index at the front; return the new file's path."""
    output_path = f"{file_path}.processing"
    command = [
        "ffmpeg",
        "-i", str(file_path),
        "-c", "copy",
        "-movflags", "faststart",
        "-f", "mp4",
        output_path,
    ]
    try:
        subprocess.run(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise MediaError(f"ffmpeg faststart processing failed: {exc}") from exc
    return output_path


def extension_from_content_type(content_type: str) -> str:
    """Map an image content type to a file extension, or ``""`` if unsupported."""
    lowered = content_type.lower()
    if lowered in ("image/jpeg", "image/jpg"):
        return ".jpg"
    if lowered == "image/png":
        return ".png"
    if lowered == "image/gif":
        return ".gif"
    return ""


def key_prefix_for_aspect_ratio(aspect_ratio: str) -> str:
    """Return the storage key prefix used for videos of the given shape."""
    if aspect_ratio == "16:9":
        return "landscape/"
    if aspect_ratio == "9:16":
        return "portrait/"
    return "other/"


def random_file_name(ext: str) -> str:
    """Return 32 random bytes as unpadded URL-safe base64, followed by ``ext``."""
    stem = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")
    return stem + ext