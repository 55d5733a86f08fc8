"""Awaitable access to the wallet's IndexedDB key-value store.

IndexedDB only exposes request/callback APIs; each script below wraps one
operation in a single Promise so the Python side sees a plain coroutine
that either resolves or raises.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError

from escrow_harness.errors import StoreIntegrityError, StoreRestoreError

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

DELETE_JS = """
({ dbName }) => new Promise((resolve, reject) => {
  const request = indexedDB.deleteDatabase(dbName);
  request.onsuccess = () => resolve(true);
  request.onerror = () => reject(new Error(String(request.error)));
  request.onblocked = () => reject(new Error('delete blocked by an open connection'));
})
"""

RESTORE_JS = """
({ dbName, storeName, data }) => new Promise((resolve, reject) => {
  const request = indexedDB.open(dbName, 1);
  request.onupgradeneeded = () => {
    const db = request.result;
    if (!db.objectStoreNames.contains(storeName)) {
      db.createObjectStore(storeName);
    }
  };
  request.onerror = () => reject(new Error(String(request.error)));
  request.onsuccess = () => {
    const db = request.result;
    let tx;
    try {
      tx = db.transaction(storeName, 'readwrite');
    } catch (e) {
      db.close();
      reject(e);
      return;
    }
    const store = tx.objectStore(storeName);
    let written = 0;
    for (const [key, value] of Object.entries(data)) {
      store.put(value, key);
      written += 1;
    }
    tx.oncomplete = () => { db.close(); resolve(written); };
    tx.onerror = () => { db.close(); reject(new Error(String(tx.error))); };
    tx.onabort = () => { db.close(); reject(new Error('transaction aborted: ' + String(tx.error))); };
  };
})
"""

DUMP_JS = """
({ dbName, storeName }) => new Promise((resolve, reject) => {
  const request = indexedDB.open(dbName);
  request.onerror = () => reject(new Error(String(request.error)));
  request.onsuccess = () => {
    const db = request.result;
    if (!db.objectStoreNames.contains(storeName)) { db.close(); resolve({}); return; }
    const store = db.transaction(storeName, 'readonly').objectStore(storeName);
    const keysRequest = store.getAllKeys();
    const valuesRequest = store.getAll();
    valuesRequest.onsuccess = () => {
      const data = {};
      keysRequest.result.forEach((key, i) => {
        if (typeof key === 'string') data[key] = valuesRequest.result[i];
      });
      db.close();
      resolve(data);
    };
    valuesRequest.onerror = () => { db.close(); reject(new Error(String(valuesRequest.error))); };
  };
})
"""

COUNT_JS = """
({ dbName, storeName }) => new Promise((resolve, reject) => {
  const request = indexedDB.open(dbName);
  request.onerror = () => reject(new Error(String(request.error)));
  request.onsuccess = () => {
    const db = request.result;
    if (!db.objectStoreNames.contains(storeName)) { db.close(); resolve(0); return; }
    const countRequest = db.transaction(storeName, 'readonly').objectStore(storeName).count();
    countRequest.onsuccess = () => { db.close(); resolve(countRequest.result); };
    countRequest.onerror = () => { db.close(); reject(new Error(String(countRequest.error))); };
  };
})
"""

# Per-key JSON.stringify length, computed in the page for both the live
# store and the snapshot so both sides serialize identically.
LENGTHS_JS = """
({ dbName, storeName, data }) => new Promise((resolve, reject) => {
  const measure = (obj) => Object.fromEntries(
    Object.entries(obj).map(([k, v]) => [k, v === undefined ? 0 : JSON.stringify(v).length]));
  const request = indexedDB.open(dbName);
  request.onerror = () => reject(new Error(String(request.error)));
  request.onsuccess = () => {
    const db = request.result;
    if (!db.objectStoreNames.contains(storeName)) { db.close(); resolve({ live: {}, snapshot: measure(data) }); return; }
    const store = db.transaction(storeName, 'readonly').objectStore(storeName);
    const keysRequest = store.getAllKeys();
    const valuesRequest = store.getAll();
    valuesRequest.onsuccess = () => {
      const live = {};
      keysRequest.result.forEach((key, i) => { live[String(key)] = valuesRequest.result[i]; });
      db.close();
      resolve({ live: measure(live), snapshot: measure(data) });
    };
    valuesRequest.onerror = () => { db.close(); reject(new Error(String(valuesRequest.error))); };
  };
})
"""


class BrowserStore:
    """One named object store inside one IndexedDB database, seen through a page."""

    def __init__(self, page: Page, db_name: str, store_name: str):
        self.page = page
        self.db_name = db_name
        self.store_name = store_name

    def _args(self, **extra: Any) -> dict[str, Any]:
        return {"dbName": self.db_name, "storeName": self.store_name, **extra}

    async def delete(self) -> None:
        try:
            await self.page.evaluate(DELETE_JS, self._args())
        except PlaywrightError as e:
            raise StoreRestoreError(f"Could not delete {self.db_name}: {e}") from e

    async def restore(self, data: dict[str, Any]) -> int:
        try:
            written = await self.page.evaluate(RESTORE_JS, self._args(data=data))
        except PlaywrightError as e:
            raise StoreRestoreError(f"Restore transaction on {self.db_name} failed: {e}") from e
        logger.debug("Restored %d keys into %s/%s", written, self.db_name, self.store_name)
        return int(written)

    async def dump(self) -> dict[str, Any]:
        try:
            return await self.page.evaluate(DUMP_JS, self._args())
        except PlaywrightError as e:
            raise StoreIntegrityError(f"Could not read {self.db_name}: {e}") from e

    async def count(self) -> int:
        try:
            return int(await self.page.evaluate(COUNT_JS, self._args()))
        except PlaywrightError as e:
            raise StoreIntegrityError(f"Could not count {self.db_name}: {e}") from e

    async def lengths(self, snapshot: dict[str, Any]) -> tuple[dict[str, int], dict[str, int]]:
        """Return (live, snapshot) per-key serialized lengths."""
        try:
            result = await self.page.evaluate(LENGTHS_JS, self._args(data=snapshot))
        except PlaywrightError as e:
            raise StoreIntegrityError(f"Could not measure {self.db_name}: {e}") from e
        return result["live"], result["snapshot"]


def compare_lengths(live: dict[str, int], snapshot: dict[str, int]) -> list[str]:
    """Keys whose presence or serialized length differs between the two sides."""
    bad = sorted(set(live) ^ set(snapshot))
    bad.extend(k for k in snapshot if k in live and live[k] != snapshot[k])
    return bad
