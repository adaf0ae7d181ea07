import unittest

from topclients.io import DataFolder


def require_rich(test_case):
    try:
        import rich  # noqa: F401
    except ImportError:
        test_case = unittest.skip("test requires rich")(test_case)
    return test_case


def write_files(folder: DataFolder, files: dict[str, list[str]]):
    """Write each list of lines to its (relative) path in `folder`."""
    for path, lines in files.items():
        with folder.open(path, "wt") as f:
            f.writelines(f"{line}\n" for line in lines)
