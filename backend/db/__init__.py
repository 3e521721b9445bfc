"""
Database Module
File-based storage: db/{project_id}/ contains graph.json (work items) and
metadata.json (nodePositions and other view metadata).
Uses orjson for faster JSON parsing; json_repair salvages hand-edited or truncated files.
"""

import asyncio
import shutil
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
import json_repair
import orjson
from loguru import logger

from shared import WorkNode
from shared.config import get_db_dir

DEFAULT_PROJECT_ID = "default"
GRAPH_FILE = "graph.json"
METADATA_FILE = "metadata.json"

_write_locks: Dict[tuple, asyncio.Lock] = {}


def _validate_project_id(project_id: str) -> None:
    """Reject path traversal and invalid project_id."""
    if not project_id or not isinstance(project_id, str):
        raise ValueError("project_id must be a non-empty string")
    if ".." in project_id or "/" in project_id or "\\" in project_id:
        raise ValueError("project_id must not contain path separators")


def _get_project_dir(project_id: str = DEFAULT_PROJECT_ID) -> Path:
    _validate_project_id(project_id)
    return get_db_dir() / project_id


def _get_write_lock(project_id: str, filename: str) -> asyncio.Lock:
    key = (project_id, filename)
    if key not in _write_locks:
        _write_locks[key] = asyncio.Lock()
    return _write_locks[key]


async def _read_json_file(project_id: str, filename: str):
    file_path = _get_project_dir(project_id) / filename
    try:
        async with aiofiles.open(file_path, "rb") as f:
            raw = await f.read()
    except FileNotFoundError:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        logger.warning("Invalid JSON in {}: {}", file_path, e)
    try:
        repaired = json_repair.loads(raw.decode("utf-8", errors="replace"))
    except Exception as e:
        logger.warning("Could not repair {}: {}", file_path, e)
        return None
    return repaired if isinstance(repaired, (dict, list)) and repaired else None


async def _write_json_file(project_id: str, filename: str, data) -> dict:
    """Atomic write: write to .tmp then rename to avoid partial/corrupt files on concurrent access."""
    project_dir = _get_project_dir(project_id)
    project_dir.mkdir(parents=True, exist_ok=True)
    file_path = project_dir / filename
    tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    content = orjson.dumps(data, option=orjson.OPT_INDENT_2).decode("utf-8")
    async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
        await f.write(content)
    tmp_path.replace(file_path)
    return {"success": True}


async def get_graph(project_id: str = DEFAULT_PROJECT_ID) -> List[WorkNode]:
    """Load work items. Entries that fail validation are skipped with a warning."""
    data = await _read_json_file(project_id, GRAPH_FILE)
    raw_nodes = data.get("nodes") if isinstance(data, dict) else data
    nodes: List[WorkNode] = []
    for raw in raw_nodes or []:
        try:
            nodes.append(WorkNode.model_validate(raw))
        except ValueError as e:
            logger.warning("Skipping invalid node in project {}: {}", project_id, e)
    return nodes


async def save_graph(nodes: List[WorkNode], project_id: str = DEFAULT_PROJECT_ID) -> dict:
    payload = {"nodes": [n.model_dump(by_alias=True, mode="json") for n in nodes]}
    async with _get_write_lock(project_id, GRAPH_FILE):
        await _write_json_file(project_id, GRAPH_FILE, payload)
    return {"success": True, "count": len(nodes)}


async def get_metadata(project_id: str = DEFAULT_PROJECT_ID) -> dict:
    data = await _read_json_file(project_id, METADATA_FILE)
    return data if isinstance(data, dict) else {}


async def get_node_positions(project_id: str = DEFAULT_PROJECT_ID) -> Dict[str, Dict[str, float]]:
    """nodePositions from metadata.json; {} when absent."""
    metadata = await get_metadata(project_id)
    positions = metadata.get("nodePositions")
    return positions if isinstance(positions, dict) else {}


async def save_node_positions(
    positions: Dict[str, Dict[str, float]], project_id: str = DEFAULT_PROJECT_ID
) -> dict:
    """Replace nodePositions, keeping other metadata keys. Serialized per project."""
    async with _get_write_lock(project_id, METADATA_FILE):
        metadata = await get_metadata(project_id)
        metadata["nodePositions"] = positions
        await _write_json_file(project_id, METADATA_FILE, metadata)
    return {"success": True}


async def list_project_ids() -> List[str]:
    """List project IDs, sorted by graph.json mtime (newest first)."""
    db_dir = get_db_dir()
    if not db_dir.exists():
        return []
    result = []
    for p in db_dir.iterdir():
        if p.is_dir() and not p.name.startswith("."):
            graph_file = p / GRAPH_FILE
            try:
                mtime = graph_file.stat().st_mtime if graph_file.exists() else 0
            except OSError:
                mtime = 0
            result.append((p.name, mtime))
    result.sort(key=lambda x: x[1], reverse=True)
    return [pid for pid, _ in result]


async def clear_db(project_id: Optional[str] = None) -> dict:
    """Remove one project folder, or all of them when project_id is None."""
    db_dir = get_db_dir()
    if not db_dir.exists():
        return {"success": True, "removed": []}
    targets = [_get_project_dir(project_id)] if project_id else list(db_dir.iterdir())
    removed = []
    for p in targets:
        if not p.is_dir() or p.name.startswith("."):
            continue
        try:
            shutil.rmtree(p)
            removed.append(p.name)
        except OSError as e:
            logger.warning("Failed to remove {}: {}", p, e)
    return {"success": True, "removed": removed}
