"""
Process Store Module.

File-backed source of serialized transport processes:
- Load a ProcessInstanceData from a YAML or JSON file
- Save a ProcessInstanceData (e.g. a snapshot of a live process)
- List and look up process files in a directory
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from tpm.exceptions import ProcessDataError
from tpm.logger import get_logger
from tpm.schemas import ProcessInstanceData


YAML_SUFFIXES = (".yaml", ".yml")
JSON_SUFFIXES = (".json",)
SUPPORTED_SUFFIXES = YAML_SUFFIXES + JSON_SUFFIXES


def _read_document(path: Path) -> Any:
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ProcessDataError(
            f"Unsupported process file format: {suffix or '(none)'}",
            context={"path": str(path)},
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            if suffix in YAML_SUFFIXES:
                return yaml.safe_load(f)
            return json.load(f)
    except OSError as e:
        raise ProcessDataError(
            f"Failed to read process file {path}: {e}", context={"path": str(path)}
        ) from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ProcessDataError(
            f"Failed to parse process file {path}: {e}", context={"path": str(path)}
        ) from e


def load_process_data(path: Union[str, Path]) -> ProcessInstanceData:
    """
    Load a serialized process from a YAML or JSON file.

    Args:
        path: File path (.yaml, .yml or .json)

    Returns:
        Validated ProcessInstanceData

    Raises:
        ProcessDataError: If the file cannot be read, parsed or validated
    """
    path = Path(path)
    document = _read_document(path)
    if not isinstance(document, dict):
        raise ProcessDataError(
            f"Process file {path} must contain a mapping at the top level",
            context={"path": str(path), "found": type(document).__name__},
        )

    try:
        data = ProcessInstanceData.model_validate(document)
    except ValidationError as e:
        raise ProcessDataError(
            f"Invalid process description in {path}: {e.error_count()} validation error(s)",
            context={"path": str(path), "errors": e.errors(include_url=False)},
        ) from e

    get_logger().debug(
        f"Loaded process '{data.name}' from {path}",
        context={"path": str(path), "steps": len(data.steps), "edges": len(data.edges)},
    )
    return data


def save_process_data(data: ProcessInstanceData, path: Union[str, Path]) -> Path:
    """
    Write a serialized process to a YAML or JSON file.

    Parent directories are created as needed.

    Args:
        data: Process description to write
        path: Target file path; the suffix selects the format

    Returns:
        The path written

    Raises:
        ProcessDataError: If the format is unsupported or writing fails
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ProcessDataError(
            f"Unsupported process file format: {suffix or '(none)'}",
            context={"path": str(path)},
        )

    document = data.to_dict()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            if suffix in YAML_SUFFIXES:
                yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
            else:
                json.dump(document, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise ProcessDataError(
            f"Failed to write process file {path}: {e}", context={"path": str(path)}
        ) from e

    get_logger().debug(f"Saved process '{data.name}' to {path}", context={"path": str(path)})
    return path


class ProcessStore:
    """
    Directory of process files addressed by name.

    A process named "deliver" is stored as `<directory>/deliver.yaml`
    (or .yml / .json when such a file already exists).

    Example:
        store = ProcessStore("processes")
        data = store.load("deliver")
        store.save(process.to_data(), "deliver-snapshot")
    """

    def __init__(self, directory: Union[str, Path], default_suffix: str = ".yaml"):
        if default_suffix not in SUPPORTED_SUFFIXES:
            raise ValueError(f"Unsupported default suffix: {default_suffix}")
        self.directory = Path(directory)
        self.default_suffix = default_suffix

    def path_for(self, name: str) -> Optional[Path]:
        """Existing file for a process name, or None."""
        for suffix in SUPPORTED_SUFFIXES:
            candidate = self.directory / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def list_names(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            {p.stem for p in self.directory.iterdir() if p.suffix.lower() in SUPPORTED_SUFFIXES}
        )

    def exists(self, name: str) -> bool:
        return self.path_for(name) is not None

    def load(self, name: str) -> ProcessInstanceData:
        """
        Load a process by name.

        Raises:
            ProcessDataError: If no file exists for the name or it is invalid
        """
        path = self.path_for(name)
        if path is None:
            raise ProcessDataError(
                f"No process file named '{name}' in {self.directory}",
                context={"name": name, "directory": str(self.directory)},
            )
        return load_process_data(path)

    def save(self, data: ProcessInstanceData, name: Optional[str] = None) -> Path:
        """Save a process under name (defaults to the process's own name)."""
        name = name or data.name
        if not name:
            raise ProcessDataError("Cannot save a process without a name")
        path = self.path_for(name) or self.directory / f"{name}{self.default_suffix}"
        return save_process_data(data, path)

    def load_all(self) -> Dict[str, ProcessInstanceData]:
        return {name: self.load(name) for name in self.list_names()}

    def __repr__(self) -> str:
        return f"ProcessStore(directory={self.directory})"
