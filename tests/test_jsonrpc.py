from safe_userop_relay.rpc.jsonrpc import (INTERNAL_ERROR, INVALID_RESPONSE,
                                           TRANSPORT_ERROR, Error, Success,
                                           build_json_rpc_request,
                                           parse_json_rpc_response,
                                           transport_error)


def test_build_request():
    assert build_json_rpc_request("eth_chainId") == {
        "id": 1, "jsonrpc": "2.0", "method": "eth_chainId", "params": [],
    }
    assert build_json_rpc_request("eth_call", ["0x1"], 7)["id"] == 7


def test_result_is_success():
    result = parse_json_rpc_response({"jsonrpc": "2.0", "result": "0x1"})

    assert isinstance(result, Success)
    assert result
    assert result.payload == "0x1"


def test_error_object():
    result = parse_json_rpc_response({
        "jsonrpc": "2.0",
        "error": {"code": -32602, "message": "invalid", "data": {"x": 1}},
    })

    assert isinstance(result, Error)
    assert not result
    assert result.error_code == -32602
    assert result.error_data == {"x": 1}
    assert not result.is_transport_error


def test_error_string():
    result = parse_json_rpc_response({"error": "boom"})

    assert result.error_code == INTERNAL_ERROR
    assert result.error_message == "boom"


def test_missing_result_and_non_object():
    assert parse_json_rpc_response({"jsonrpc": "2.0"}).error_code == \
        INVALID_RESPONSE
    assert parse_json_rpc_response({"result": None}).error_code == \
        INVALID_RESPONSE
    assert parse_json_rpc_response([1, 2]).error_code == INVALID_RESPONSE


def test_transport_error():
    error = transport_error("connection refused")

    assert not error
    assert error.is_transport_error
    assert error.error_code == TRANSPORT_ERROR
