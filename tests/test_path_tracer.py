import unittest
from decimal import Decimal

from pathtracer.adapters.chain.static_chain_adapter import StaticChainAdapter
from pathtracer.core.dto import BlockWindow, RecentWindow, TxRecord
from pathtracer.core.errors import DataSourceError
from pathtracer.core.models import TraceConfig
from pathtracer.services.path_tracer import PathTracer, chain_score, is_likely_chained


def _tx(tx_hash, frm, to, value, ts, block=100, network="ethereum") -> TxRecord:
    return TxRecord(
        hash=tx_hash,
        network=network,
        from_address=frm,
        to_address=to,
        value=str(value),
        block_number=block,
        timestamp=ts,
        status="success",
    )


class _RecordingChain(StaticChainAdapter):
    """Static data plus a log of history calls and optional failing addresses."""

    def __init__(self, transactions=None, failing=(), seed_error=False) -> None:
        super().__init__(transactions)
        self.history_calls = []
        self._failing = set(failing)
        self._seed_error = seed_error

    def fetch_transaction(self, tx_hash, network):
        if self._seed_error:
            raise DataSourceError("explorer down")
        return super().fetch_transaction(tx_hash, network)

    def fetch_address_history(self, address, network, window):
        self.history_calls.append((address, network, window))
        if address in self._failing:
            raise DataSourceError(f"history unavailable for {address}")
        return super().fetch_address_history(address, network, window)


SEED = _tx("0xa", "0xx", "0xy", 10, 1000, block=100)


class PredicateTests(unittest.TestCase):
    def test_forward_link_within_window_and_band(self) -> None:
        b = _tx("0xb", "0xy", "0xz", 9, 2000, block=101)
        self.assertTrue(is_likely_chained(SEED, b))

    def test_reflux_link_counts_as_connected(self) -> None:
        r = _tx("0xr", "0xw", "0xx", 10, 2000)
        self.assertTrue(is_likely_chained(SEED, r))

    def test_unrelated_addresses_rejected(self) -> None:
        e = _tx("0xe", "0xx", "0xw", 10, 1500)
        self.assertFalse(is_likely_chained(SEED, e))

    def test_value_ratio_bounds_are_exclusive(self) -> None:
        low = _tx("0xl", "0xy", "0xz", 1, 2000)
        high = _tx("0xh", "0xy", "0xz", 100, 2000)
        just_inside = _tx("0xi", "0xy", "0xz", "1.0001", 2000)
        self.assertFalse(is_likely_chained(SEED, low))
        self.assertFalse(is_likely_chained(SEED, high))
        self.assertTrue(is_likely_chained(SEED, just_inside))

    def test_ratio_twenty_rejected(self) -> None:
        c = _tx("0xc", "0xy", "0xz", 200, 2000, block=101)
        self.assertFalse(is_likely_chained(SEED, c))

    def test_time_window_bound_is_exclusive(self) -> None:
        at_limit = _tx("0xt", "0xy", "0xz", 10, 1000 + 3_600_000)
        before_limit = _tx("0xu", "0xy", "0xz", 10, 1000 + 3_599_999)
        earlier_at_limit = _tx("0xv", "0xy", "0xz", 10, 1000 - 3_600_000)
        self.assertFalse(is_likely_chained(SEED, at_limit))
        self.assertTrue(is_likely_chained(SEED, before_limit))
        self.assertFalse(is_likely_chained(SEED, earlier_at_limit))

    def test_zero_or_garbage_value_rejected(self) -> None:
        self.assertFalse(is_likely_chained(SEED, _tx("0x0", "0xy", "0xz", 0, 2000)))
        self.assertFalse(is_likely_chained(SEED, _tx("0x1", "0xy", "0xz", "abc", 2000)))
        self.assertFalse(is_likely_chained(SEED, _tx("0x2", "0xy", "0xz", "", 2000)))

    def test_missing_sender_rejected(self) -> None:
        self.assertFalse(is_likely_chained(SEED, _tx("0xm", "", "0xx", 10, 2000)))

    def test_custom_band_and_window(self) -> None:
        c = _tx("0xc", "0xy", "0xz", 30, 1000 + 2 * 3_600_000)
        self.assertFalse(is_likely_chained(SEED, c))
        self.assertTrue(
            is_likely_chained(
                SEED,
                c,
                time_window_ms=3 * 3_600_000,
                min_value_ratio=Decimal("0.01"),
                max_value_ratio=Decimal("100"),
            )
        )


class ScoreTests(unittest.TestCase):
    def test_forward_one_minute_equal_value(self) -> None:
        f = _tx("0xf", "0xy", "0xz", 10, 1000 + 60_000)
        self.assertAlmostEqual(chain_score(SEED, f), 50 + 19 + 10)

    def test_reflux_scores_lower_than_forward(self) -> None:
        f = _tx("0xf", "0xy", "0xz", 10, 2000)
        r = _tx("0xr", "0xw", "0xx", 10, 2000)
        self.assertGreater(chain_score(SEED, f), chain_score(SEED, r))
        self.assertAlmostEqual(chain_score(SEED, f) - chain_score(SEED, r), 20)

    def test_time_component_floors_at_zero(self) -> None:
        f = _tx("0xf", "0xy", "0xz", 5, 1000 + 30 * 60_000)
        self.assertAlmostEqual(chain_score(SEED, f), 50 + 0 + 5)


class PathTracerTests(unittest.TestCase):
    def _trace(self, txs, seed="0xa", **overrides):
        chain = _RecordingChain(txs)
        cfg = TraceConfig(seed_hash=seed, network=overrides.pop("network", "ethereum"), **overrides)
        return PathTracer(chain=chain).trace(cfg), chain

    def test_unknown_seed_returns_empty(self) -> None:
        path, chain = self._trace([SEED], seed="0xmissing")
        self.assertEqual(path, [])
        self.assertEqual(chain.history_calls, [])

    def test_seed_lookup_error_returns_empty(self) -> None:
        chain = _RecordingChain([SEED], seed_error=True)
        self.assertEqual(PathTracer(chain=chain).trace_path("0xa", "ethereum"), [])

    def test_unsupported_network_returns_empty(self) -> None:
        chain = _RecordingChain([SEED])
        self.assertEqual(PathTracer(chain=chain).trace_path("0xa", "solana"), [])

    def test_seed_only_when_nothing_links(self) -> None:
        path, _ = self._trace([SEED])
        self.assertEqual(path, [SEED])

    def test_forward_candidate_included_unrelated_excluded(self) -> None:
        b = _tx("0xb", "0xy", "0xz", 9, 2000, block=101)
        e = _tx("0xe", "0xx", "0xw", 10, 1500, block=100)
        path, _ = self._trace([SEED, b, e])
        self.assertEqual([t.hash for t in path], ["0xa", "0xb"])

    def test_value_outlier_excluded(self) -> None:
        c = _tx("0xc", "0xy", "0xz", 200, 2000, block=101)
        path, _ = self._trace([SEED, c])
        self.assertEqual(path, [SEED])

    def test_forward_ranked_above_reflux(self) -> None:
        # reflux is discovered first (sender's history) but scores lower
        r = _tx("0xr", "0xw", "0xx", 10, 2000)
        f = _tx("0xf", "0xy", "0xz", 10, 2000)
        path, _ = self._trace([SEED, r, f], max_depth=2)
        self.assertEqual([t.hash for t in path], ["0xa", "0xf", "0xr"])

    def test_equal_scores_keep_discovery_order(self) -> None:
        g1 = _tx("0xg1", "0xy", "0xz1", 10, 2000)
        g2 = _tx("0xg2", "0xy", "0xz2", 10, 2000)
        path, _ = self._trace([SEED, g1, g2], max_depth=2)
        self.assertEqual([t.hash for t in path], ["0xa", "0xg1", "0xg2"])

    def test_fan_out_caps_children(self) -> None:
        kids = [_tx(f"0xk{i}", "0xy", f"0xz{i}", 10, 2000 + i) for i in range(6)]
        path, _ = self._trace([SEED] + kids, max_depth=2)
        self.assertEqual(len(path), 4)
        self.assertEqual([t.hash for t in path[1:]], ["0xk0", "0xk1", "0xk2"])

        path, _ = self._trace([SEED] + kids, max_depth=2, fan_out=5)
        self.assertEqual(len(path), 6)

    def test_depth_first_discovery_order(self) -> None:
        f1 = _tx("0xf1", "0xy", "0xp", 10, 1100)
        f2 = _tx("0xf2", "0xy", "0xq", 10, 1000 + 5 * 60_000)
        h = _tx("0xh", "0xp", "0xs", 10, 1200)
        path, _ = self._trace([SEED, f1, f2, h], max_depth=3)
        self.assertEqual([t.hash for t in path], ["0xa", "0xf1", "0xh", "0xf2"])

    def test_linear_chain_stops_at_max_depth(self) -> None:
        txs = [SEED]
        prev = "0xy"
        for i in range(8):
            nxt = f"0xn{i}"
            txs.append(_tx(f"0xc{i}", prev, nxt, 10, 1000 + (i + 1) * 1000, block=100 + i + 1))
            prev = nxt
        path, _ = self._trace(txs)
        self.assertEqual([t.hash for t in path], ["0xa", "0xc0", "0xc1", "0xc2", "0xc3"])

        path, _ = self._trace(txs, max_depth=2)
        self.assertEqual(len(path), 2)

    def test_max_depth_one_skips_history(self) -> None:
        b = _tx("0xb", "0xy", "0xz", 9, 2000, block=101)
        path, chain = self._trace([SEED, b], max_depth=1)
        self.assertEqual(path, [SEED])
        self.assertEqual(chain.history_calls, [])

    def test_dense_graph_has_no_duplicates_and_is_bounded(self) -> None:
        addrs = ["0xx", "0xy", "0xz", "0xw"]
        txs = [SEED]
        n = 0
        for a in addrs:
            for b in addrs:
                if a == b:
                    continue
                n += 1
                txs.append(_tx(f"0xd{n}", a, b, 10 + n % 3, 1000 + n * 10))
        for depth in (1, 2, 3):
            path, _ = self._trace(txs, max_depth=depth)
            hashes = [t.hash for t in path]
            self.assertEqual(len(hashes), len(set(hashes)))
            self.assertEqual(path[0], SEED)
            self.assertLessEqual(len(path), sum(3 ** d for d in range(depth)))
            if depth == 2:
                self.assertLessEqual(len(path), 13)

    def test_branch_failure_does_not_abort_trace(self) -> None:
        r = _tx("0xr", "0xw", "0xx", 10, 2000)
        f = _tx("0xf", "0xy", "0xz", 10, 2000)
        chain = _RecordingChain([SEED, r, f], failing={"0xy"})
        path = PathTracer(chain=chain).trace(TraceConfig(seed_hash="0xa", network="ethereum", max_depth=2))
        self.assertEqual([t.hash for t in path], ["0xa", "0xr"])

    def test_account_network_uses_block_window(self) -> None:
        _, chain = self._trace([SEED], max_depth=2, block_window=50)
        self.assertEqual(
            chain.history_calls,
            [
                ("0xx", "ethereum", BlockWindow(50, 150, anchor_block=100)),
                ("0xy", "ethereum", BlockWindow(50, 150, anchor_block=100)),
            ],
        )

    def test_unknown_block_falls_back_to_recent(self) -> None:
        pending = _tx("0xa", "0xx", "0xy", 10, 1000, block=0)
        _, chain = self._trace([pending], max_depth=2, recent_limit=7)
        self.assertEqual(chain.history_calls[0][2], RecentWindow(7))

    def test_bitcoin_uses_recent_window_and_alias(self) -> None:
        seed = _tx("btc1", "bc1qsender", "bc1qrecv", "0.5", 1000, block=800000, network="bitcoin")
        nxt = _tx("btc2", "bc1qrecv", "bc1qnext", "0.49", 1000 + 600_000, block=800001, network="bitcoin")
        chain = _RecordingChain([seed, nxt])
        path = PathTracer(chain=chain).trace_path("btc1", "btc", max_depth=2)
        self.assertEqual([t.hash for t in path], ["btc1", "btc2"])
        self.assertTrue(all(isinstance(w, RecentWindow) for _, _, w in chain.history_calls))

    def test_progress_events(self) -> None:
        b = _tx("0xb", "0xy", "0xz", 9, 2000, block=101)
        events = []
        chain = _RecordingChain([SEED, b])
        PathTracer(chain=chain).trace(
            TraceConfig(seed_hash="0xa", network="ethereum", max_depth=2),
            on_progress=lambda ev, data: events.append(ev),
        )
        self.assertEqual(events[0], "start")
        self.assertEqual(events[-1], "done")
        self.assertEqual(events.count("visit"), 2)


class TraceConfigTests(unittest.TestCase):
    def test_rejects_bad_parameters(self) -> None:
        with self.assertRaises(ValueError):
            TraceConfig(seed_hash="0xa", max_depth=0)
        with self.assertRaises(ValueError):
            TraceConfig(seed_hash="0xa", fan_out=0)
        with self.assertRaises(ValueError):
            TraceConfig(seed_hash="0xa", min_value_ratio=Decimal("10"), max_value_ratio=Decimal("1"))

    def test_defaults(self) -> None:
        cfg = TraceConfig(seed_hash="0xa")
        self.assertEqual(cfg.max_depth, 5)
        self.assertEqual(cfg.fan_out, 3)
        self.assertEqual(cfg.time_window_ms, 3_600_000)


if __name__ == "__main__":
    unittest.main()
