from pathlib import Path


def parse_root_dir(spec):
    """Split "path::env" into (absolute directory, env override).

    Relative paths resolve against the cwd. Raises ValueError when the path
    is empty or not a directory.
    """
    if not spec:
        raise ValueError("root directory is empty")

    path, _, env = spec.partition("::")
    directory = Path(path or ".")
    if not directory.is_absolute():
        directory = Path.cwd() / directory

    if not directory.is_dir():
        raise ValueError(f"not a directory: {directory}")

    return directory, env
