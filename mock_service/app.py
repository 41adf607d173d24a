from typing import Dict, List

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Fulfillment Service")

_orders: Dict[str, dict] = {}
_request_count = {"create": 0, "get": 0}


class OrderItem(BaseModel):
    sku: str
    quantity: int


class OrderRequest(BaseModel):
    order_id: str
    customer: str
    destination: str = ""
    items: List[OrderItem] = []
    priority: int = 0
    idempotency_key: str = ""


@app.post("/api/v1/fulfillment-orders", status_code=201)
async def create_order(order: OrderRequest):
    _request_count["create"] += 1
    key = order.idempotency_key or order.order_id
    if key not in _orders:
        _orders[key] = order.model_dump()
    return {"order_id": order.order_id, "status": "accepted"}


@app.get("/api/v1/fulfillment-orders/{order_id}")
async def get_order(order_id: str):
    _request_count["get"] += 1
    for stored in _orders.values():
        if stored["order_id"] == order_id:
            return stored
    raise HTTPException(status_code=404, detail="order not found")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    return {"orders": len(_orders), "requests": dict(_request_count)}


# Run with: uvicorn mock_service.app:app --port 8082 --reload
