import json
import logging

import pytest

from osbroker.binding_handlers import APIHandler, new_api_handler
from osbroker.context import Context, ContextKey
from osbroker.models import (
    BindDetails,
    Binding,
    FailureResponse,
    GetBindingSpec,
    LastOperation,
    LastOperationState,
    PollDetails,
    SharedDevice,
    UnbindDetails,
    UnbindSpec,
    VolumeMount,
)
from osbroker.web import Request

INSTANCE_ID = "some-instance-id"
BINDING_ID = "some-binding-id"
PLAN_ID = "a-plan"
SERVICE_ID = "a-service"
OPERATION = "a-operation"


class FakeBroker:
    def __init__(self):
        self.calls = {}
        self.results = {}

    def _answer(self, name, args):
        self.calls.setdefault(name, []).append(args)
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        return result

    def bind(self, ctx, instance_id, binding_id, details, async_allowed):
        return self._answer("bind", (instance_id, binding_id, details, async_allowed))

    def unbind(self, ctx, instance_id, binding_id, details, async_allowed):
        return self._answer("unbind", (instance_id, binding_id, details, async_allowed))

    def get_binding(self, ctx, instance_id, binding_id, details):
        return self._answer("get_binding", (instance_id, binding_id, details))

    def last_binding_operation(self, ctx, instance_id, binding_id, details):
        return self._answer("last_binding_operation", (instance_id, binding_id, details))


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def handler(broker):
    return new_api_handler(broker, logging.getLogger("osbroker-tests"))


def make_request(method="GET", version="2.14", query="", body=b"", request_identity=None):
    ctx = Context().with_value(ContextKey.CORRELATION_ID, "fake-correlation-id")
    if request_identity is not None:
        ctx = ctx.with_value(ContextKey.REQUEST_IDENTITY, request_identity)
    return Request(
        method=method,
        headers={"X-Broker-API-Version": version},
        query=query,
        body=body,
        path_params={"instance_id": INSTANCE_ID, "binding_id": BINDING_ID},
        context=ctx,
    )


def last_op_request(version="2.14"):
    query = f"plan_id={PLAN_ID}&service_id={SERVICE_ID}&operation={OPERATION}"
    return make_request(version=version, query=query)


def bind_body(**fields):
    data = {"service_id": SERVICE_ID, "plan_id": PLAN_ID}
    data.update(fields)
    return json.dumps(data).encode()


def test_new_api_handler_uses_given_broker(broker):
    built = new_api_handler(broker, logging.getLogger("osbroker-tests"))
    assert isinstance(built, APIHandler)
    broker.results["last_binding_operation"] = LastOperation(
        state=LastOperationState.SUCCEEDED, description="from the given broker"
    )
    response = built.last_binding_operation(last_op_request())
    assert response.status == 200
    assert response.json() == {"state": "succeeded", "description": "from the given broker"}
    assert len(broker.calls["last_binding_operation"]) == 1


def test_last_binding_operation_ok(handler, broker):
    broker.results["last_binding_operation"] = LastOperation(
        state=LastOperationState.SUCCEEDED, description="muy bien"
    )
    response = handler.last_binding_operation(last_op_request())
    assert response.status == 200
    assert response.json() == {"state": "succeeded", "description": "muy bien"}
    instance_id, binding_id, details = broker.calls["last_binding_operation"][0]
    assert details == PollDetails(plan_id=PLAN_ID, service_id=SERVICE_ID, operation_data=OPERATION)
    assert instance_id == INSTANCE_ID
    assert binding_id == BINDING_ID


def test_last_binding_operation_old_version(handler, broker):
    response = handler.last_binding_operation(last_op_request(version="2.13"))
    assert response.status == 412
    assert response.json() == {
        "description": "get binding endpoint only supported starting with OSB version 2.14"
    }
    assert "last_binding_operation" not in broker.calls


def test_last_binding_operation_unknown_error(handler, broker):
    broker.results["last_binding_operation"] = RuntimeError("some error")
    response = handler.last_binding_operation(last_op_request())
    assert response.status == 500
    assert response.json() == {"description": "some error"}


def test_last_binding_operation_known_error(handler, broker):
    broker.results["last_binding_operation"] = FailureResponse(
        RuntimeError("some-amazing-error"), 418, "last-binding-op"
    )
    response = handler.last_binding_operation(last_op_request())
    assert response.status == 418
    assert response.json() == {"description": "some-amazing-error"}


def test_bind_empty_body_is_unprocessable(handler, broker):
    response = handler.bind(make_request(method="PUT", body=b""))
    assert response.status == 422
    assert response.json() == {"description": "EOF"}
    assert "bind" not in broker.calls


def test_bind_missing_service_id(handler):
    response = handler.bind(make_request(method="PUT", body=b'{"plan_id":"a-plan"}'))
    assert response.status == 400
    assert response.json() == {"description": "service_id missing"}


def test_bind_missing_plan_id(handler):
    response = handler.bind(make_request(method="PUT", body=b'{"service_id":"a-service"}'))
    assert response.status == 400
    assert response.json() == {"description": "plan_id missing"}


def test_bind_created(handler, broker):
    broker.results["bind"] = Binding(credentials={"user": "user"}, metadata={"labels": {"a": "b"}})
    response = handler.bind(make_request(method="PUT", body=bind_body(app_guid="app")))
    assert response.status == 201
    assert response.json() == {
        "credentials": {"user": "user"},
        "metadata": {"labels": {"a": "b"}},
    }
    instance_id, binding_id, details, async_allowed = broker.calls["bind"][0]
    assert (instance_id, binding_id) == (INSTANCE_ID, BINDING_ID)
    assert details == BindDetails(app_guid="app", plan_id=PLAN_ID, service_id=SERVICE_ID)
    assert async_allowed is False


def test_bind_already_exists(handler, broker):
    broker.results["bind"] = Binding(already_exists=True, syslog_drain_url="syslog://drain")
    response = handler.bind(make_request(method="PUT", body=bind_body()))
    assert response.status == 200
    assert response.json() == {"syslog_drain_url": "syslog://drain"}


def test_bind_async(handler, broker):
    broker.results["bind"] = Binding(is_async=True, operation_data="op-1")
    request = make_request(method="PUT", query="accepts_incomplete=true", body=bind_body())
    response = handler.bind(request)
    assert response.status == 202
    assert response.json() == {"operation": "op-1"}
    assert broker.calls["bind"][0][3] is True


def test_bind_async_ignored_before_2_14(handler, broker):
    broker.results["bind"] = Binding()
    request = make_request(
        method="PUT", version="2.13", query="accepts_incomplete=true", body=bind_body()
    )
    response = handler.bind(request)
    assert response.status == 201
    assert broker.calls["bind"][0][3] is False


def test_bind_experimental_volume_mounts(handler, broker):
    broker.results["bind"] = Binding(
        credentials={"k": "v"},
        volume_mounts=[
            VolumeMount(
                driver="my-driver",
                container_dir="/dev/null",
                mode="rw",
                device_type="shared",
                device=SharedDevice(volume_id="some-guid", mount_config={"key": "value"}),
            )
        ],
    )
    response = handler.bind(make_request(method="PUT", version="2.9", body=bind_body()))
    assert response.status == 201
    assert response.json() == {
        "credentials": {"k": "v"},
        "volume_mounts": [
            {
                "container_path": "/dev/null",
                "mode": "rw",
                "private": {
                    "driver": "my-driver",
                    "group_id": "some-guid",
                    "config": '{"key":"value"}',
                },
            }
        ],
    }


def test_bind_failure_response(handler, broker):
    broker.results["bind"] = FailureResponse(RuntimeError("binding exists"), 409, "bind-exists")
    response = handler.bind(make_request(method="PUT", body=bind_body()))
    assert response.status == 409
    assert response.json() == {"description": "binding exists"}


def test_bind_echoes_request_identity(handler, broker):
    broker.results["bind"] = Binding()
    response = handler.bind(make_request(method="PUT", body=bind_body(), request_identity="req-1"))
    assert response.headers["X-Broker-API-Request-Identity"] == "req-1"


def test_unbind_missing_service_id(handler, broker):
    response = handler.unbind(make_request(method="DELETE", query="plan_id=a-plan"))
    assert response.status == 400
    assert response.json() == {"description": "service_id missing"}
    assert "unbind" not in broker.calls


def test_unbind_missing_plan_id(handler):
    response = handler.unbind(make_request(method="DELETE", query="service_id=a-service"))
    assert response.status == 400
    assert response.json() == {"description": "plan_id missing"}


def test_unbind_sync(handler, broker):
    broker.results["unbind"] = UnbindSpec()
    request = make_request(method="DELETE", query="plan_id=a-plan&service_id=a-service")
    response = handler.unbind(request)
    assert response.status == 200
    assert response.json() == {}
    assert broker.calls["unbind"][0][2] == UnbindDetails(plan_id=PLAN_ID, service_id=SERVICE_ID)


def test_unbind_async(handler, broker):
    broker.results["unbind"] = UnbindSpec(is_async=True, operation_data="op-2")
    request = make_request(
        method="DELETE", query="plan_id=a-plan&service_id=a-service&accepts_incomplete=true"
    )
    response = handler.unbind(request)
    assert response.status == 202
    assert response.json() == {"operation": "op-2"}
    assert broker.calls["unbind"][0][3] is True


def test_get_binding_old_version(handler, broker):
    response = handler.get_binding(make_request(version="2.13"))
    assert response.status == 412
    assert response.json() == {
        "description": "get binding endpoint only supported starting with OSB version 2.14"
    }
    assert "get_binding" not in broker.calls


def test_get_binding_ok(handler, broker):
    broker.results["get_binding"] = GetBindingSpec(
        credentials={"host": "localhost"}, parameters={"size": "small"}
    )
    response = handler.get_binding(make_request(query="service_id=a-service&plan_id=a-plan"))
    assert response.status == 200
    assert response.json() == {
        "credentials": {"host": "localhost"},
        "parameters": {"size": "small"},
    }
    details = broker.calls["get_binding"][0][2]
    assert (details.service_id, details.plan_id) == (SERVICE_ID, PLAN_ID)


def test_get_binding_unknown_error(handler, broker):
    broker.results["get_binding"] = RuntimeError("boom")
    response = handler.get_binding(make_request())
    assert response.status == 500
    assert response.json() == {"description": "boom"}