import copy
import threading

from reconcile import merge_records, merge_snapshot


def _cust(cid, last, name="Ramesh", due=0.0):
    return {
        "id": cid,
        "name": name,
        "phone": f"+91{cid}",
        "totalSales": due,
        "totalPaid": 0.0,
        "due": due,
        "lastActivity": last,
        "isActive": True,
    }


def _tx(tid, cid, date, amount=100.0):
    return {"id": tid, "customerId": cid, "type": "SALE", "amount": amount, "description": "Sale Entry", "date": date}


class TestMergeRecords:
    def test_local_only_records_survive_once(self):
        remote = [_cust("r1", "2024-06-02T10:00:00.000Z"), _cust("r2", "2024-06-01T10:00:00.000Z")]
        local = [_cust("x", "2024-06-03T10:00:00.000+05:30"), _cust("r1", "2024-05-01T10:00:00.000Z")]

        merged = merge_records(remote, local, "lastActivity")
        ids = [c["id"] for c in merged]

        assert sorted(ids) == ["r1", "r2", "x"]
        assert ids.count("x") == 1
        assert len(ids) == len(set(ids))

    def test_remote_wins_for_known_ids(self):
        remote = [_cust("c1", "2024-06-01T10:00:00.000Z", name="Remote Name", due=900.0)]
        local = [_cust("c1", "2024-06-05T10:00:00.000Z", name="Local Name", due=100.0)]

        merged = merge_records(remote, local, "lastActivity")

        assert merged == remote

    def test_sorted_newest_first_across_zones(self):
        remote = [_tx("t1", "c1", "2024-06-01T10:00:00.000Z")]
        local = [
            _tx("t2", "c1", "2024-06-01T15:00:00.000+05:30"),  # 09:30Z
            _tx("t3", "c1", "2024-06-01T16:00:00.000+05:30"),  # 10:30Z
        ]
        merged = merge_records(remote, local, "date")
        assert [t["id"] for t in merged] == ["t3", "t1", "t2"]

    def test_unparseable_dates_sink(self):
        merged = merge_records([_tx("t1", "c1", "")], [_tx("t2", "c1", "2024-06-01T10:00:00Z")], "date")
        assert [t["id"] for t in merged] == ["t2", "t1"]

    def test_duplicate_remote_ids_collapse_to_first(self):
        remote = [_cust("c1", "2024-06-01T10:00:00Z", name="First"), _cust("c1", "2024-06-02T10:00:00Z", name="Second")]
        merged = merge_records(remote, [], "lastActivity")
        assert [c["name"] for c in merged] == ["First"]

    def test_merge_does_not_mutate_inputs(self):
        remote = [_cust("r1", "2024-06-02T10:00:00Z")]
        local = [_cust("x", "2024-06-03T10:00:00Z")]
        before = copy.deepcopy((remote, local))

        merged = merge_records(remote, local, "lastActivity")
        merged[0]["name"] = "Changed"

        assert (remote, local) == before


def test_merge_is_idempotent():
    snapshot = {
        "customers": [_cust("r1", "2024-06-02T10:00:00Z"), _cust("r2", "2024-06-02T10:00:00Z", name="Tie")],
        "transactions": [_tx("t1", "r1", "2024-06-02T10:00:00Z"), _tx("t2", "r2", "2024-06-02T10:00:00Z")],
    }
    local_customers = [_cust("x", "2024-06-02T10:00:00Z", name="Local"), _cust("r1", "2024-01-01T00:00:00Z")]
    local_transactions = [_tx("tx", "x", "2024-06-03T10:00:00Z")]

    once = merge_snapshot(snapshot, local_customers, local_transactions)
    twice = merge_snapshot(snapshot, *once)

    assert twice == once


class TestRefresh:
    def test_refresh_merges_remote_and_keeps_local_work(self, ledger, sheet):
        ok, local = ledger.add_customer("Local", "9000000001")
        ledger.sync.flush()
        remote_customer = _cust("remote-1", "2099-01-01T00:00:00.000Z", name="From Sheet", due=100.0)
        sheet.snapshot = {
            "customers": [remote_customer],
            "transactions": [_tx("rt1", "remote-1", "2099-01-01T00:00:00.000Z")],
        }

        ok, msg = ledger.refresh()

        assert ok and msg == "Data Refreshed!"
        assert [c["id"] for c in ledger.customers()] == ["remote-1", local["id"]]
        assert [t["id"] for t in ledger.transactions()] == ["rt1"]
        assert ledger.settings()["last_sync"] != "Never"
        assert str(sheet.requests[-1].url).endswith("?action=get")

    def test_refresh_converges_to_remote_copy(self, ledger, sheet):
        _, customer = ledger.add_customer("Ramesh", "9876543210")
        ledger.add_transaction(customer["id"], "SALE", 500)
        ledger.sync.flush()
        synced = dict(ledger.get_customer(customer["id"]), name="Ramesh (Sheet)")
        sheet.snapshot = {"customers": [synced], "transactions": ledger.transactions()}

        ok, _ = ledger.refresh()
        assert ok
        assert len(ledger.customers()) == 1
        assert ledger.get_customer(customer["id"])["name"] == "Ramesh (Sheet)"
        assert len(ledger.transactions()) == 1

        before = (ledger.customers(), ledger.transactions())
        ledger.refresh()
        assert (ledger.customers(), ledger.transactions()) == before

    def test_failed_pull_leaves_ledger_untouched(self, ledger, sheet):
        _, customer = ledger.add_customer("Ramesh", "9876543210")
        ledger.add_transaction(customer["id"], "SALE", 500)
        ledger.sync.flush()
        before = (ledger.customers(), ledger.transactions(), ledger.settings())

        sheet.offline = True
        assert ledger.refresh() == (False, "Sync failed.")

        assert (ledger.customers(), ledger.transactions(), ledger.settings()) == before

    def test_error_status_is_a_failed_pull(self, ledger, sheet):
        sheet.status_code = 500
        assert ledger.refresh() == (False, "Sync failed.")

    def test_malformed_snapshot_is_a_failed_pull(self, ledger, sheet):
        ledger.add_customer("Ramesh", "9876543210")
        before = ledger.customers()
        sheet.snapshot = {"customers": [_cust("r1", "2024-06-01T10:00:00Z")]}

        assert ledger.refresh() == (False, "Sync failed.")
        assert ledger.customers() == before

    def test_refresh_without_url(self, offline_ledger):
        ok, _ = offline_ledger.refresh()
        assert not ok

    def test_mutation_during_pull_is_not_lost(self, ledger, sheet):
        sheet.snapshot = {"customers": [_cust("r1", "2024-06-01T10:00:00Z")], "transactions": []}
        added = {}

        def add_while_pulling():
            sheet.on_get = None
            added["result"] = ledger.add_customer("Mid Merge", "9111111111")

        sheet.on_get = add_while_pulling
        ok, _ = ledger.refresh()

        assert ok
        ok, customer = added["result"]
        assert ok
        assert {c["id"] for c in ledger.customers()} == {"r1", customer["id"]}


def test_auto_refresh_runs_in_background(ledger, sheet):
    pulled = threading.Event()
    sheet.snapshot = {"customers": [], "transactions": []}
    sheet.on_get = pulled.set

    ledger.start_auto_refresh(0.05)
    try:
        assert pulled.wait(5)
    finally:
        ledger.stop_auto_refresh()
    assert ledger._refresh_thread is None
