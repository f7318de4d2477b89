from datetime import datetime
from typing import Dict

# ==================== CLIENT FLAGS ====================
# One-shot UI prompts (onboarding tour, install prompt) remember that the
# user has seen them. The store is injected so the API and tests can swap
# the backend.

ONBOARDING_FLAG = 'has-seen-onboarding'
INSTALL_PROMPT_FLAG = 'pwa-install-prompt-seen'

KNOWN_FLAGS = [ONBOARDING_FLAG, INSTALL_PROMPT_FLAG]


def check_flag_name(flag: str) -> str:
    if flag not in KNOWN_FLAGS:
        raise ValueError(f"Unknown flag '{flag}'. Valid flags: {', '.join(KNOWN_FLAGS)}")
    return flag


class FlagStore:
    """Async key-value store of boolean flags, partitioned by user id."""

    async def all(self, user_id: str) -> Dict[str, bool]:
        raise NotImplementedError

    async def get(self, user_id: str, flag: str) -> bool:
        flags = await self.all(user_id)
        return bool(flags.get(flag, False))

    async def set(self, user_id: str, flag: str) -> None:
        raise NotImplementedError

    async def delete(self, user_id: str, flag: str) -> None:
        raise NotImplementedError

    async def clear(self, user_id: str) -> None:
        raise NotImplementedError


class MemoryFlagStore(FlagStore):
    def __init__(self):
        self._flags: Dict[str, Dict[str, bool]] = {}

    async def all(self, user_id: str) -> Dict[str, bool]:
        return dict(self._flags.get(user_id, {}))

    async def set(self, user_id: str, flag: str) -> None:
        self._flags.setdefault(user_id, {})[flag] = True

    async def delete(self, user_id: str, flag: str) -> None:
        self._flags.get(user_id, {}).pop(flag, None)

    async def clear(self, user_id: str) -> None:
        self._flags.pop(user_id, None)


class MongoFlagStore(FlagStore):
    """One document per user: {'user_id': ..., 'flags': {name: True}}"""

    def __init__(self, collection):
        self.collection = collection

    async def all(self, user_id: str) -> Dict[str, bool]:
        doc = await self.collection.find_one({'user_id': user_id})
        if not doc:
            return {}
        return {k: bool(v) for k, v in (doc.get('flags') or {}).items()}

    async def set(self, user_id: str, flag: str) -> None:
        flags = await self.all(user_id)
        flags[flag] = True
        await self.collection.update_one(
            {'user_id': user_id},
            {'$set': {'user_id': user_id, 'flags': flags, 'updated_at': datetime.utcnow()}},
            upsert=True
        )

    async def delete(self, user_id: str, flag: str) -> None:
        flags = await self.all(user_id)
        if flag not in flags:
            return
        flags.pop(flag)
        await self.collection.update_one(
            {'user_id': user_id},
            {'$set': {'flags': flags, 'updated_at': datetime.utcnow()}}
        )

    async def clear(self, user_id: str) -> None:
        await self.collection.delete_many({'user_id': user_id})


class ClientFlags:
    """
    Flags of one user, read once from the store on load().

    Writes go through to the store and update the loaded snapshot, so
    should_show() stays consistent without re-reading.
    """

    def __init__(self, store: FlagStore, user_id: str):
        self.store = store
        self.user_id = user_id
        self._flags: Dict[str, bool] = {}
        self._loaded = False

    async def load(self) -> 'ClientFlags':
        if not self._loaded:
            self._flags = await self.store.all(self.user_id)
            self._loaded = True
        return self

    def should_show(self, flag: str) -> bool:
        check_flag_name(flag)
        return not self._flags.get(flag, False)

    def as_dict(self) -> Dict[str, bool]:
        return {flag: bool(self._flags.get(flag, False)) for flag in KNOWN_FLAGS}

    async def mark_seen(self, flag: str) -> None:
        check_flag_name(flag)
        await self.store.set(self.user_id, flag)
        self._flags[flag] = True

    async def reset(self, flag: str) -> None:
        check_flag_name(flag)
        await self.store.delete(self.user_id, flag)
        self._flags.pop(flag, None)
