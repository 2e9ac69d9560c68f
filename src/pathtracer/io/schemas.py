from __future__ import annotations

from typing import Any, Dict, List, Optional

from pathtracer.core.dto import TxRecord
from pathtracer.core.models import ACCOUNT_NETWORKS, AddressRisk, normalize_network


def tx_to_dict(tx: TxRecord) -> Dict[str, Any]:
    return {
        "hash": tx.hash,
        "blockNumber": tx.block_number,
        "from": tx.from_address,
        "to": tx.to_address,
        "value": tx.value,
        "gas": tx.gas,
        "gasPrice": tx.gas_price,
        "gasUsed": tx.gas_used,
        "timestamp": tx.timestamp,
        "input": tx.input,
        "status": tx.status,
        "network": tx.network,
    }


def tx_from_dict(d: Dict[str, Any]) -> TxRecord:
    # values stay strings for precision safety
    network = normalize_network(str(d["network"]))
    frm = str(d.get("from") or "")
    to = str(d.get("to") or "")
    if network in ACCOUNT_NETWORKS:
        frm, to = frm.lower(), to.lower()
    return TxRecord(
        hash=str(d["hash"]),
        network=network,
        from_address=frm,
        to_address=to,
        value=str(d.get("value", "0")),
        block_number=int(d.get("blockNumber") or 0),
        timestamp=int(d.get("timestamp") or 0),
        gas=str(d.get("gas", "0")),
        gas_price=str(d.get("gasPrice", "0")),
        gas_used=str(d.get("gasUsed", "0")),
        status=str(d.get("status", "pending")),
        input=str(d.get("input", "")),
    )


def address_risk_to_dict(r: AddressRisk) -> Dict[str, Any]:
    return {
        "address": r.address,
        "level": r.level,
        "riskScore": format(r.risk_score, "f") if r.risk_score is not None else None,
        "associateBlackAddresses": r.associate_black_addresses,
        "interactionTime": r.interaction_time,
        "amount": r.amount,
        "maliciousAddressList": [{"category": m.category, "value": m.value} for m in r.malicious_links],
    }


def path_to_dict(
    seed_hash: str,
    network: str,
    path: List[TxRecord],
    risks: Optional[Dict[str, AddressRisk]] = None,
) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "seedHash": seed_hash,
        "network": network,
        "transactions": [tx_to_dict(t) for t in path],
    }
    if risks is not None:
        out["addressRisk"] = [address_risk_to_dict(r) for r in risks.values()]
    return out


def path_tracing_section(path: List[TxRecord]) -> Dict[str, Any]:
    """The "path tracing" block of an analysis report."""
    hops = [
        {
            "from": t.from_address,
            "to": t.to_address,
            "value": t.value,
            "timestamp": t.timestamp,
        }
        for t in path
    ]
    return {"hops": hops, "totalHops": len(hops)}
