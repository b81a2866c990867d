"""Local gateway broker: token, direct charges and charge lookup relayed to Flutterwave."""
import json
import logging

from fastapi import APIRouter, Request

from academy.api.deps import Gateway
from academy.errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route("/ping", methods=["GET", "POST"])
async def ping():
    return {"ok": True}


@router.post("/flutterwave/token")
async def token(gateway: Gateway):
    return await gateway.get_token()


@router.post("/flutterwave/direct-charges")
async def direct_charges(request: Request, gateway: Gateway):
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("Request body must be JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return await gateway.direct_charge(payload)


@router.get("/flutterwave/charges/{charge_id}")
async def get_charge(charge_id: str, gateway: Gateway):
    return await gateway.get_charge(charge_id)
