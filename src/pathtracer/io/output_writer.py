from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Dict, List, Optional

from pathtracer.core.dto import TxRecord
from pathtracer.core.models import AddressRisk
from pathtracer.io.schemas import path_to_dict


def write_path_json(
    path: List[TxRecord],
    out_dir: str,
    seed_hash: str,
    network: str,
    filename: str = "path.json",
    risks: Optional[Dict[str, AddressRisk]] = None,
) -> str:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(path_to_dict(seed_hash, network, path, risks=risks), f, indent=2)

    return str(out_path)


def write_summary_md(
    path: List[TxRecord],
    out_dir: str,
    seed_hash: str,
    network: str,
    filename: str = "summary.md",
    risks: Optional[Dict[str, AddressRisk]] = None,
) -> str:
    """
    Minimal, investigator-friendly summary of a traced path.
    """
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename

    def short(s: str) -> str:
        if not s:
            return "(none)"
        return s if len(s) <= 14 else f"{s[:10]}..."

    def fmt_ts(ms: int) -> str:
        if ms <= 0:
            return "unknown"
        return dt.datetime.fromtimestamp(ms / 1000, tz=dt.timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    addresses = set()
    for t in path:
        if t.from_address:
            addresses.add(t.from_address)
        if t.to_address:
            addresses.add(t.to_address)

    def interpretation() -> str:
        if not path:
            return "The seed transaction could not be resolved, so no path was traced."
        if len(path) == 1:
            return (
                "No follow-up transaction matched the chaining heuristics "
                "(shared address, within the time window, similar value)."
            )
        return (
            f"{len(path) - 1} linked transaction(s) were found after the seed. "
            "Order reflects discovery during the search, not chronology."
        )

    lines = []
    lines.append("# Path Trace Summary\n")
    lines.append(f"- Seed: **{seed_hash}**\n")
    lines.append(f"- Network: **{network}**\n")
    lines.append(f"- Transactions: **{len(path)}**\n")
    lines.append(f"- Distinct addresses: **{len(addresses)}**\n")
    lines.append("\n")

    lines.append("## Interpretation\n\n")
    lines.append(f"{interpretation()}\n\n")

    lines.append("## Path\n\n")
    if not path:
        lines.append("_No transactions._\n\n")
    else:
        for i, t in enumerate(path):
            lines.append(
                f"{i + 1}. **{t.value}** | {short(t.from_address)} -> {short(t.to_address)} "
                f"| block {t.block_number or 'unknown'} | {fmt_ts(t.timestamp)} "
                f"| tx: {t.hash}\n"
            )
        lines.append("\n")

    if risks is not None:
        lines.append("## Address Risk\n\n")
        if not risks:
            lines.append("_No risk data returned for path addresses._\n\n")
        else:
            for addr, r in risks.items():
                score = f" (score {r.risk_score})" if r.risk_score is not None else ""
                lines.append(f"- **{r.level}**{score} | {addr}\n")
            lines.append("\n")

    lines.append("## Limitations\n\n")
    lines.append("- Links are heuristic: shared address, close in time, similar value.\n")
    lines.append("- History lookups are windowed; older or distant hops are not considered.\n")
    lines.append("- Bitcoin hops use the first input and first output of each transaction.\n")

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)
