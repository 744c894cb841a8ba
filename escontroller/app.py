# escontroller/app.py
from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from escontroller import settings
from escontroller.errors import MalformedVersion, ValidationError
from escontroller.models import validate_spec
from escontroller.version import is_prerelease, is_valid_upgrade

app = FastAPI(title="Elasticsearch Config Controller")


class UpgradeCheckReq(BaseModel):
    from_version: str = Field(alias="from")
    to_version: str = Field(alias="to")


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.get("/version")
async def version():
    try:
        prerelease = is_prerelease(settings.CONTROLLER_VERSION)
    except MalformedVersion as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"version": settings.CONTROLLER_VERSION, "prerelease": prerelease}


@app.post("/validate")
async def validate(spec: Dict[str, Any]):
    try:
        validate_spec(spec)
    except ValidationError as e:
        return {"ok": False, "errors": e.errors}
    return {"ok": True, "errors": []}


@app.post("/upgrade-check")
async def upgrade_check(req: UpgradeCheckReq):
    try:
        valid = is_valid_upgrade(req.from_version, req.to_version)
    except MalformedVersion as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"from": req.from_version, "to": req.to_version, "valid": valid}
