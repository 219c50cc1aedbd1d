"""JSON-file stores. One file per chat, named by a hash of the chat ID."""

import json
import logging
from pathlib import Path
from typing import Any, cast

import aiofiles  # type: ignore

from conversational_agent.core.common import make_hash
from conversational_agent.interfaces.langchain.agent_state import (
    AgentContextState,
    SavedCommand,
)
from conversational_agent.utils.constants import COMMAND_STORE_DIR, CONTEXT_STORE_DIR


class JSONFileStore:
    """Reads and writes one JSON document per chat."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(__name__)

    def _path(self, chat_id: str) -> Path:
        return self.directory / f"{make_hash(chat_id)}.json"

    async def _read(self, chat_id: str) -> dict[str, Any] | None:
        path = self._path(chat_id)
        if not path.exists():
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            raw = await f.read()
        return cast(dict[str, Any], json.loads(raw))

    async def _write(self, chat_id: str, payload: dict[str, Any]) -> None:
        path = self._path(chat_id)
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(payload, ensure_ascii=False, indent=2))
        tmp_path.replace(path)


class JSONFileContextStore(JSONFileStore):
    def __init__(self, directory: str | Path = CONTEXT_STORE_DIR):
        super().__init__(directory)

    async def get(self, chat_id: str) -> AgentContextState | None:
        data = await self._read(chat_id)
        if data is None:
            return None
        return AgentContextState.model_validate(data)

    async def put(self, chat_id: str, state: AgentContextState) -> None:
        await self._write(chat_id, state.model_dump(mode="json"))


class JSONFileCommandStore(JSONFileStore):
    """Retry records per chat, keeping the most recent ``max_records``."""

    def __init__(self, directory: str | Path = COMMAND_STORE_DIR, max_records: int = 20):
        super().__init__(directory)
        self.max_records = max_records

    async def put(self, chat_id: str, message_id: str, record: SavedCommand) -> None:
        data = await self._read(chat_id) or {"commands": {}}
        commands: dict[str, Any] = data.get("commands", {})
        commands.pop(message_id, None)
        commands[message_id] = record.model_dump(mode="json")
        while len(commands) > self.max_records:
            commands.pop(next(iter(commands)))
        await self._write(
            chat_id, {"last_message_id": message_id, "commands": commands}
        )

    async def get(self, chat_id: str, message_id: str) -> SavedCommand | None:
        data = await self._read(chat_id)
        if not data:
            return None
        record = data.get("commands", {}).get(message_id)
        return SavedCommand.model_validate(record) if record else None

    async def get_last(self, chat_id: str) -> SavedCommand | None:
        data = await self._read(chat_id)
        if not data or not data.get("last_message_id"):
            return None
        return await self.get(chat_id, data["last_message_id"])
