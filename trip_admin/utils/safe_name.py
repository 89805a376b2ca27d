"""Path-safe, collision-free storage keys for user supplied file names"""
import re
import uuid
from typing import Optional

# Last ".ext" of a name; a dot followed by at least one character that is not "/" or "."
_EXTENSION = re.compile(r"\.[^/.]+$")
_UNSAFE = re.compile(r"[^A-Za-z0-9_\-]")


def split_extension(file_name: str) -> tuple:
    """Split a file name into (base, extension); extension keeps its dot or is empty"""
    match = _EXTENSION.search(file_name)
    if not match:
        return file_name, ""
    return file_name[:match.start()], match.group(0)


def get_safe_file_name(file_name: str) -> str:
    """
    Build a unique storage key from an arbitrary file name

    Every character of the base name outside [A-Za-z0-9_-] becomes "_", a
    random UUID is prepended and the original extension is put back.

    Args:
        file_name: Name as supplied by the client (e.g. "Beach day #1.JPG")

    Returns:
        Key such as "3f0c...-Beach_day__1.JPG"
    """
    base, extension = split_extension(file_name or "")
    sanitized_base = _UNSAFE.sub("_", base)
    return f"{uuid.uuid4()}-{sanitized_base}{extension}"


def build_object_path(file_name: str, folder: Optional[str] = None) -> str:
    """Safe key, optionally nested under a folder prefix"""
    safe_name = get_safe_file_name(file_name)
    folder = (folder or "").strip("/")
    return f"{folder}/{safe_name}" if folder else safe_name
