from dataclasses import dataclass
from typing import Any

# JSON-RPC 2.0 error-codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_METHOD_PARAMS = -32602
INTERNAL_ERROR = -32603

# client side only, never sent by a server
TRANSPORT_ERROR = -32099
INVALID_RESPONSE = -32098

# human-readable messages
ERROR_MESSAGE = {
    PARSE_ERROR: "Parse error.",
    INVALID_REQUEST: "Invalid Request.",
    METHOD_NOT_FOUND: "Method not found.",
    INVALID_METHOD_PARAMS: "Invalid parameters.",
    INTERNAL_ERROR: "Internal error.",
    TRANSPORT_ERROR: "Request did not reach the server.",
    INVALID_RESPONSE: "Invalid JSON-RPC response.",
}


@dataclass
class Success:
    payload: Any

    def __bool__(self) -> bool:
        return True


@dataclass
class Error:
    """Failed JSON-RPC call.

    Always falsy, so callers that only check truthiness treat a rejected
    request and a request that never arrived the same way.
    """
    error_code: int
    error_message: str
    error_data: Any = None
    is_transport_error: bool = False

    def __bool__(self) -> bool:
        return False


def build_json_rpc_request(
    method: str, params: list | None = None, request_id: int = 1
) -> dict[str, Any]:
    return {
        "id": request_id,
        "jsonrpc": "2.0",
        "method": method,
        "params": [] if params is None else params,
    }


def parse_json_rpc_response(data: Any) -> Success | Error:
    if not isinstance(data, dict):
        return Error(
            INVALID_RESPONSE,
            ERROR_MESSAGE[INVALID_RESPONSE],
            data,
        )
    if "result" in data and data["result"] is not None:
        return Success(data["result"])
    if "error" in data:
        error = data["error"]
        if isinstance(error, dict):
            return Error(
                error.get("code", INTERNAL_ERROR),
                error.get("message", ""),
                error.get("data"),
            )
        return Error(INTERNAL_ERROR, str(error))
    return Error(
        INVALID_RESPONSE,
        ERROR_MESSAGE[INVALID_RESPONSE],
        data,
    )


def transport_error(message: str) -> Error:
    return Error(TRANSPORT_ERROR, message, is_transport_error=True)
