from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from pathtracer.config import settings
from pathtracer.core.errors import TracerError, UnsupportedNetworkError
from pathtracer.core.models import ACCOUNT_NETWORKS, BITCOIN, BSC, ETHEREUM, TraceConfig, normalize_network
from pathtracer.ports.chain_data_port import ChainDataPort
from pathtracer.services.path_tracer import PathTracer
from pathtracer.services.risk_screening import screen_path_addresses
from pathtracer.io.output_writer import write_path_json, write_summary_md
from pathtracer.io.schemas import tx_from_dict

from pathtracer.adapters.chain.etherscan_chain_adapter import EtherscanChainAdapter
from pathtracer.adapters.chain.alchemy_chain_adapter import AlchemyChainAdapter
from pathtracer.adapters.chain.blockstream_chain_adapter import BlockstreamChainAdapter
from pathtracer.adapters.chain.routing_chain_adapter import FallbackChainAdapter, RoutingChainAdapter
from pathtracer.adapters.chain.static_chain_adapter import StaticChainAdapter
from pathtracer.adapters.risk.oklink_risk_adapter import OKLinkRiskAdapter


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pathtracer", description="Heuristic transaction path tracer")
    p.add_argument("--tx", required=True, help="Seed transaction hash")
    p.add_argument("--network", default=ETHEREUM, help="ethereum | bsc | bitcoin (aliases: eth, binance, btc)")
    p.add_argument("--max-depth", type=int, default=settings.TRACE_MAX_DEPTH, help="Maximum hop depth")
    p.add_argument("--fan-out", type=int, default=settings.TRACE_FAN_OUT, help="Candidates expanded per hop")
    p.add_argument(
        "--time-window-min",
        type=int,
        default=settings.TRACE_TIME_WINDOW_MS // 60_000,
        help="Max minutes between linked transactions",
    )
    p.add_argument("--out", default="out", help="Output folder")
    p.add_argument("--fixture", help="JSON file with a list of transactions (uses the static adapter)")
    p.add_argument("--risk", action="store_true", help="Screen path addresses with OKLink (needs OKLINK_API_KEY)")
    return p


def _make_progress_reporter(cfg: TraceConfig):
    start_time = time.time()
    last_print = 0.0
    is_tty = sys.stdout.isatty()

    def _short(s: str) -> str:
        if not s:
            return ""
        if len(s) <= 12:
            return s
        return f"{s[:6]}...{s[-4:]}"

    def _ts() -> str:
        return dt.datetime.now().strftime("%H:%M:%S")

    def _print_line(message: str) -> None:
        if is_tty:
            sys.stdout.write("\r" + message.ljust(88))
            sys.stdout.flush()

    def _clear_line() -> None:
        if is_tty:
            sys.stdout.write("\r" + (" " * 88) + "\r")
            sys.stdout.flush()

    def progress(event: str, data: dict) -> None:
        nonlocal last_print
        now = time.time()
        if event == "start":
            print(f"[{_ts()}] Tracing {_short(data['seed'])} on {data['network']} • depth {cfg.max_depth}")
            return
        if event == "visit":
            if now - last_print < 0.2:
                return
            _print_line(f"Depth {data['depth']}/{cfg.max_depth} • pending {data['pending']} • path {data['path']}")
            last_print = now
            return
        if event == "fetch":
            _print_line(f"Fetching history for {_short(str(data.get('address', '')))}...")
            last_print = now
            return
        if event == "done":
            _clear_line()
            elapsed = time.time() - start_time
            print(f"[{_ts()}] Done in {elapsed:.1f}s • {data['path']} transaction(s)")
            return
        if event == "error":
            _clear_line()
            print(f"[{_ts()}] Error: {data.get('message', 'Unknown error')}", file=sys.stderr)

    return progress


def load_fixture(path: str) -> StaticChainAdapter:
    with Path(path).open("r", encoding="utf-8") as f:
        raw = json.load(f)
    if isinstance(raw, dict):
        raw = raw.get("transactions", [])
    return StaticChainAdapter(tx_from_dict(d) for d in raw)


def _api_key_for(network: str) -> Optional[str]:
    return settings.BSCSCAN_API_KEY if network == BSC else settings.ETHERSCAN_API_KEY


def build_live_chain(network: str) -> ChainDataPort:
    if network == BITCOIN:
        return RoutingChainAdapter({BITCOIN: BlockstreamChainAdapter()})

    adapters: List[ChainDataPort] = []
    if _api_key_for(network):
        adapters.append(EtherscanChainAdapter(network=network, api_key=_api_key_for(network)))
    if settings.ALCHEMY_API_KEY and network in settings.ALCHEMY_BASE_URLS:
        adapters.append(AlchemyChainAdapter(network=network))
    if len(adapters) == 1:
        return RoutingChainAdapter({network: adapters[0]})
    return RoutingChainAdapter({network: FallbackChainAdapter(*adapters)})


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        network = normalize_network(args.network)
        cfg = TraceConfig(
            seed_hash=args.tx,
            network=network,
            max_depth=args.max_depth,
            fan_out=args.fan_out,
            time_window_ms=args.time_window_min * 60_000,
        )
    except (UnsupportedNetworkError, ValueError) as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return 2

    progress = _make_progress_reporter(cfg)

    # Ports
    if args.fixture:
        try:
            chain: ChainDataPort = load_fixture(args.fixture)
        except (OSError, ValueError, KeyError, TracerError) as exc:
            progress("error", {"message": f"Cannot load fixture: {exc}"})
            return 2
        adapter_label = f"StaticChainAdapter ({args.fixture})"
    else:
        has_alchemy = bool(settings.ALCHEMY_API_KEY) and network in settings.ALCHEMY_BASE_URLS
        if network in ACCOUNT_NETWORKS and not _api_key_for(network) and not has_alchemy:
            progress("error", {"message": "Missing ETHERSCAN_API_KEY environment variable"})
            return 2
        chain = build_live_chain(network)
        if network == BITCOIN:
            adapter_label = "BlockstreamChainAdapter"
        else:
            names = ["EtherscanChainAdapter"] if _api_key_for(network) else []
            if has_alchemy:
                names.append("AlchemyChainAdapter")
            adapter_label = " -> ".join(names)

    tracer = PathTracer(chain=chain)
    print(f"Adapter: {adapter_label}")
    try:
        path = tracer.trace(cfg, on_progress=progress)
    except TracerError as exc:
        progress("error", {"message": f"{exc.__class__.__name__}: {exc}"})
        return 1

    if not path:
        print("No path: seed transaction could not be resolved.")

    for i, t in enumerate(path):
        print(f"  {i + 1:>2}. {t.hash}  {t.from_address or '?'} -> {t.to_address or '?'}  {t.value}")

    risks = None
    if args.risk:
        risk_adapter = OKLinkRiskAdapter()
        if not risk_adapter.configured:
            progress("error", {"message": "Missing OKLINK_API_KEY; skipping address risk"})
        else:
            print("Screening path addresses...")
            risks = screen_path_addresses(path, network, risk_adapter)
            for addr, r in risks.items():
                print(f"  {r.level:<8} {addr}")

    # Outputs
    path_json = write_path_json(path, args.out, seed_hash=cfg.seed_hash, network=network, risks=risks)
    summary_path = write_summary_md(path, args.out, seed_hash=cfg.seed_hash, network=network, risks=risks)
    print(f"Wrote: {path_json}")
    print(f"Wrote: {summary_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
