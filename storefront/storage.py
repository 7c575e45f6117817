"""
Persisted client state.

A small key -> string store kept in one JSON file, playing the role of the
browser's localStorage: it survives the full-page redirects of the checkout
and login flows. Writes go through a temp file and os.replace; a lock file
created with O_EXCL serialises read-modify-write cycles across processes.
A lock file older than stale_lock seconds belongs to a dead writer and is
taken over.
"""

import json
import os
import time
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

# key names shared by every flow
CART = "cart"
AUTH_STATE = "authState"
BASKET_IDENT = "tebex_basket_ident"
PENDING_ITEMS = "tebex_pending_items"
OAUTH_STATE = "oauth_state"
OAUTH_PROVIDER = "oauth_provider"
AUTH_RETURN_URL = "auth_return_url"
AUTH_COMPLETE_PROCESSING = "auth_complete_processing"
DISCORD_TOKEN = "discord_token"
CFX_AUTH_BASKET = "cfx_auth_basket"


class StorageLockTimeout(RuntimeError):
    pass


class LocalStorage:
    def __init__(self, path: str, lock_timeout: float = 5.0, stale_lock: float = 10.0):
        self.path = os.path.abspath(path)
        self.lock_path = self.path + ".lock"
        self.lock_timeout = lock_timeout
        self.stale_lock = stale_lock
        os.makedirs(os.path.dirname(self.path), exist_ok=True)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                break
            except FileExistsError:
                if self._break_stale_lock():
                    continue
                if time.monotonic() >= deadline:
                    raise StorageLockTimeout(self.lock_path)
                time.sleep(0.01)
        try:
            yield
        finally:
            os.close(fd)
            try:
                os.remove(self.lock_path)
            except FileNotFoundError:
                pass

    def _break_stale_lock(self) -> bool:
        """Remove a lock file left behind by a process that died holding it."""
        try:
            age = time.time() - os.path.getmtime(self.lock_path)
        except FileNotFoundError:
            return True
        if age < self.stale_lock:
            return False
        try:
            os.remove(self.lock_path)
        except FileNotFoundError:
            pass
        return True

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError:
            # corrupt file behaves like an empty store
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        tmp = f"{self.path}.{uuid.uuid4().hex}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._locked():
            data = self._read()
            data[key] = str(value)
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._locked():
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def clear(self) -> None:
        with self._locked():
            self._write({})

    def keys(self):
        return list(self._read().keys())

    def get_json(self, key: str, default=None):
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return default

    def set_json(self, key: str, value) -> None:
        self.set_item(key, json.dumps(value))

    def claim(self, key: str, ttl: float, now: Optional[float] = None) -> Optional[str]:
        """
        Take a one-shot claim on key. Returns an owner token, or None when
        another live claim holds it. Claims older than ttl seconds are taken over.
        """
        now = time.time() if now is None else now
        with self._locked():
            data = self._read()
            current = data.get(key)
            if current is not None:
                try:
                    held = json.loads(current)
                    if now - float(held["at"]) < ttl:
                        return None
                except (ValueError, KeyError, TypeError):
                    pass
            token = uuid.uuid4().hex
            data[key] = json.dumps({"owner": token, "at": now})
            self._write(data)
            return token

    def release(self, key: str, token: str) -> bool:
        """Drop the claim on key if token still owns it."""
        with self._locked():
            data = self._read()
            try:
                held = json.loads(data.get(key) or "null")
            except ValueError:
                held = None
            if not isinstance(held, dict) or held.get("owner") != token:
                return False
            del data[key]
            self._write(data)
            return True


class MemoryStorage(LocalStorage):
    """Same interface without a backing file."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        yield

    def _read(self) -> Dict[str, str]:
        return dict(self._data)

    def _write(self, data: Dict[str, str]) -> None:
        self._data = dict(data)
