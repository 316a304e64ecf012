import os
import sys
import threading
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import MemoryGridBackend
from key_locks import KeyedLocks
from row_store import DEFAULT_HEADERS, PROJECTS, USERS, RowStore
from sheetkit.records import field_equals


HEADERS = DEFAULT_HEADERS[USERS]


def _run_all(*targets) -> list:
    errors: list = []
    start = threading.Barrier(len(targets), timeout=5)

    def wrap(fn):
        def inner():
            start.wait()
            try:
                fn()
            except Exception as exc:  # surfaced through the errors list
                errors.append(exc)

        return inner

    threads = [threading.Thread(target=wrap(fn)) for fn in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    return errors


def _user(user_id: str, name: str) -> list:
    return [user_id, name, f"{name.lower()}@example.com"]


class TestRowStoreConcurrency(unittest.TestCase):
    def _store(self, rows: list) -> tuple:
        backend = MemoryGridBackend({USERS: [HEADERS] + rows}, latency=0.01)
        return backend, RowStore(backend, locks=KeyedLocks(timeout=5))

    def test_update_and_delete_race_keeps_right_row(self) -> None:
        for _ in range(5):
            backend, store = self._store([_user("u1", "Ada"), _user("u2", "Grace")])
            errors = _run_all(
                lambda: store.update_row(USERS, field_equals(id="u1"), {"bio": "updated"}),
                lambda: store.delete_row(USERS, field_equals(id="u2")),
            )
            self.assertEqual(errors, [])
            rows = store.get_all(USERS)
            self.assertEqual([r["id"] for r in rows], ["u1"])
            self.assertEqual(rows[0]["bio"], "updated")

    def test_delete_of_earlier_row_does_not_misplace_update(self) -> None:
        for _ in range(5):
            backend, store = self._store([_user("u1", "Ada"), _user("u2", "Grace"), _user("u3", "Linus")])
            errors = _run_all(
                lambda: store.delete_row(USERS, field_equals(id="u1")),
                lambda: store.update_row(USERS, field_equals(id="u3"), {"status": "approved"}),
            )
            self.assertEqual(errors, [])
            rows = store.get_all(USERS)
            self.assertEqual([r["id"] for r in rows], ["u2", "u3"])
            self.assertEqual(rows[0]["status"], "")
            self.assertEqual(rows[1]["status"], "approved")
            self.assertEqual(rows[1]["name"], "Linus")

    def test_concurrent_updates_on_different_rows_both_apply(self) -> None:
        backend, store = self._store([_user("u1", "Ada"), _user("u2", "Grace")])
        errors = _run_all(
            lambda: store.update_row(USERS, field_equals(id="u1"), {"tagline": "one"}),
            lambda: store.update_row(USERS, field_equals(id="u2"), {"tagline": "two"}),
        )
        self.assertEqual(errors, [])
        by_id = {r["id"]: r for r in store.get_all(USERS)}
        self.assertEqual(by_id["u1"]["tagline"], "one")
        self.assertEqual(by_id["u2"]["tagline"], "two")

    def test_concurrent_deletes_remove_exactly_their_rows(self) -> None:
        backend, store = self._store([_user(f"u{i}", f"N{i}") for i in range(6)])
        errors = _run_all(
            lambda: store.delete_row(USERS, field_equals(id="u1")),
            lambda: store.delete_row(USERS, field_equals(id="u2")),
            lambda: store.delete_row(USERS, field_equals(id="u4")),
        )
        self.assertEqual(errors, [])
        self.assertEqual([r["id"] for r in store.get_all(USERS)], ["u0", "u3", "u5"])

    def test_concurrent_appends_on_fresh_table_write_one_header(self) -> None:
        backend = MemoryGridBackend(latency=0.005)
        store = RowStore(backend, locks=KeyedLocks(timeout=5))
        errors = _run_all(*[
            (lambda i=i: store.append_row(PROJECTS, {"id": f"p{i}", "user_id": "u1"})) for i in range(6)
        ])
        self.assertEqual(errors, [])
        raw = backend.snapshot(PROJECTS)
        self.assertEqual(raw[0], DEFAULT_HEADERS[PROJECTS])
        self.assertEqual(sum(1 for row in raw if row == DEFAULT_HEADERS[PROJECTS]), 1)
        self.assertEqual(sorted(r["id"] for r in store.get_all(PROJECTS)), [f"p{i}" for i in range(6)])

    def test_other_tables_do_not_wait(self) -> None:
        backend = MemoryGridBackend({USERS: [HEADERS, _user("u1", "Ada")]})
        store = RowStore(backend, locks=KeyedLocks(timeout=0.05))
        with store.mutation_scope(USERS):
            done = []
            t = threading.Thread(target=lambda: done.append(store.append_row(PROJECTS, {"id": "p1"})))
            t.start()
            t.join(2)
            self.assertEqual(len(done), 1)
        self.assertEqual(store.find_one(PROJECTS, field_equals(id="p1"))["id"], "p1")


if __name__ == "__main__":
    unittest.main()
