"""A small contract-like target speaking the HttpRemote protocol.

Fields are read by name (``treasure``) and written through ``set<Name>``
setters; roles use ``hasRole(role, account)`` / ``grantRole(role, account)``.
The /simulate endpoints inject failures to demo retries.
"""
from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

ZERO_ADDRESS = "0x" + "00" * 20
ADMIN_ROLE = os.getenv("ADMIN_ROLE", "0x" + "ab" * 32)

app = FastAPI(title="Example Target")


def _fresh() -> dict[str, Any]:
    return {
        "values": {
            "treasure": ZERO_ADDRESS,
            "legion": ZERO_ADDRESS,
            "legionMetadataStore": ZERO_ADDRESS,
            "ATLAS_MINE_ADMIN_ROLE": ADMIN_ROLE,
        },
        "roles": {},
    }


TARGETS: dict[str, dict[str, Any]] = {}
APP_STATE = {"fail_writes": 0, "writes": 0}


class Call(BaseModel):
    method: str
    args: list[Any] = Field(default_factory=list)


def _target(name: str) -> dict[str, Any]:
    return TARGETS.setdefault(name, _fresh())


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.post("/targets/{name}/read")
def read(name: str, call: Call) -> dict[str, Any]:
    t = _target(name)
    if call.method == "hasRole":
        if len(call.args) != 2:
            raise HTTPException(status_code=400, detail="hasRole(role, account)")
        role, account = call.args
        return {"value": str(account).lower() in t["roles"].get(str(role).lower(), set())}
    if call.method in t["values"]:
        return {"value": t["values"][call.method]}
    raise HTTPException(status_code=404, detail=f"unknown read method '{call.method}'")


@app.post("/targets/{name}/write")
def write(name: str, call: Call) -> dict[str, Any]:
    if APP_STATE["fail_writes"] > 0:
        APP_STATE["fail_writes"] -= 1
        raise HTTPException(status_code=503, detail="Simulated outage")
    t = _target(name)
    if call.method == "grantRole" and len(call.args) == 2:
        role, account = (str(a).lower() for a in call.args)
        t["roles"].setdefault(role, set()).add(account)
    elif call.method.startswith("set") and len(call.method) > 3 and len(call.args) == 1:
        field = call.method[3].lower() + call.method[4:]
        if field not in t["values"]:
            raise HTTPException(status_code=404, detail=f"unknown field '{field}'")
        t["values"][field] = call.args[0]
    else:
        raise HTTPException(status_code=400, detail=f"unsupported write '{call.method}'")
    APP_STATE["writes"] += 1
    return {"ok": True}


@app.post("/simulate/fail-writes/{count}")
def fail_writes(count: int) -> dict[str, Any]:
    APP_STATE["fail_writes"] = max(0, count)
    return {"msg": f"Next {APP_STATE['fail_writes']} writes will fail with 503."}


@app.post("/simulate/reset")
def reset() -> dict[str, Any]:
    TARGETS.clear()
    APP_STATE["fail_writes"] = 0
    APP_STATE["writes"] = 0
    return {"msg": "Target state reset."}
