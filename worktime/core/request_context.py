from typing import Optional, Dict
from fastapi import Request

# Names read from headers (change to match your FE/GW)
HDR_REQUEST_ID = "X-Request-Id"
HDR_FORWARDED_FOR = "X-Forwarded-For"
HDR_REAL_IP = "X-Real-Ip"

def get_request_context(request: Request) -> Dict[str, Optional[str]]:
    """
    Extracts endpoint, client IP, user-agent and request_id from the FastAPI Request.
    - The client IP prefers the first X-Forwarded-For hop, then X-Real-Ip, then the socket peer.
    """
    forwarded = request.headers.get(HDR_FORWARDED_FOR)
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.headers.get(HDR_REAL_IP) or (request.client.host if request.client else None)
    user_agent = request.headers.get("user-agent")
    endpoint = f"{request.method} {request.url.path}"
    request_id = request.headers.get(HDR_REQUEST_ID)
    return {
        "ip_address": ip_address,
        "user_agent": user_agent,
        "endpoint": endpoint,
        "request_id": request_id,
    }

SYSTEM_CONTEXT: Dict[str, Optional[str]] = {
    "ip_address": None,
    "user_agent": "worktime-scheduler",
    "endpoint": None,
    "request_id": None,
}
