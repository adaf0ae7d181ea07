import importlib.util
from functools import lru_cache
from typing import NoReturn


def check_required_dependencies(step_name: str, required_dependencies: list[str] | list[tuple[str, str]]):
    """Raises an ImportError naming every missing package. Dependencies are given either as the import name or as
    an (import name, pip name) tuple."""
    missing_dependencies: dict[str, str] = {}
    for dependency in required_dependencies:
        package_name, pip_name = dependency if isinstance(dependency, tuple) else (dependency, dependency)
        if not _is_package_available(package_name):
            missing_dependencies[package_name] = pip_name
    if missing_dependencies:
        _raise_error_for_missing_dependencies(step_name, missing_dependencies)


def _raise_error_for_missing_dependencies(step_name: str, dependencies: dict[str, str]) -> NoReturn:
    dependencies = dict(sorted(dependencies.items()))
    names = [f"`{package_name}`" for package_name in dependencies]
    package_names = f"{','.join(names[:-1])} and {names[-1]}" if len(names) > 1 else names[0]
    raise ImportError(
        f"Please install {package_names} to use {step_name} (`pip install {' '.join(dependencies.values())}`)."
    )


@lru_cache
def _is_package_available(package_name):
    return importlib.util.find_spec(package_name) is not None


def is_rich_available():
    return _is_package_available("rich")
