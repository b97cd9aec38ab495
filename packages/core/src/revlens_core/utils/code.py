import fnmatch

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".bmp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    ".mp4",
    ".mp3",
    ".wav",
    ".ogg",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
    ".7z",
    ".lock",  # e.g. package-lock.json, Pipfile.lock
}


def is_code_file(file_name: str) -> bool:
    return not any(file_name.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def is_excluded(file_path: str, patterns: list[str]) -> bool:
    """Return True if file_path matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(file_path, pattern):
            return True
        if fnmatch.fnmatch(file_path.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if file_path.startswith(prefix) or ("/" + prefix) in file_path:
            return True
    return False


def should_review(file_path: str, patterns: list[str]) -> bool:
    return bool(file_path) and is_code_file(file_path) and not is_excluded(file_path, patterns)
