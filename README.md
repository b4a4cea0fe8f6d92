# osbroker

Building blocks for service brokers that speak the Open Service Broker API.
You write the broker logic. The package does the request-facing work:

- decoding and validating request bodies and query values
- checking the `X-Broker-API-Version` header
- turning broker results and raised errors into the status codes and JSON
  bodies the API expects

It needs nothing outside the standard library.

## Installation

```
pip install osbroker
```

## Modules

### `osbroker.models`

- **Request details** that handlers pass to your broker: `ProvisionDetails`,
  `BindDetails`, `UnbindDetails`, `UpdateDetails`, `DeprovisionDetails`,
  `PollDetails`, `FetchInstanceDetails` and `FetchBindingDetails`.
- **What your broker returns**: `ProvisionedServiceSpec`,
  `DeprovisionServiceSpec`, `UpdateServiceSpec`, `GetInstanceDetailsSpec`,
  `Binding`, `UnbindSpec`, `GetBindingSpec` and `LastOperation`.
- **Catalog entries**: `Service` and `ServicePlan`.
- **Response bodies**: `CatalogResponse`, `ProvisioningResponse`,
  `UpdateResponse`, `BindingResponse`, `ErrorResponse` and the rest.
- **Other types**: `LastOperationState` and `MaintenanceInfo`.
  `MaintenanceInfo.equals` compares version, private and public data; `None`
  counts as empty.
- **`FailureResponse(error, status_code, logger_action)`** is the exception to
  raise from your broker when a request should fail with a given status. A
  status outside 400–599 is logged and answered with 500.
- **`ServiceBroker`** is the protocol your broker implements. It has one
  method per endpoint:
  - `services`
  - `provision`
  - `deprovision`
  - `get_instance`
  - `update`
  - `last_operation`
  - `bind`
  - `unbind`
  - `get_binding`
  - `last_binding_operation`
- **`to_json_dict(value)`** turns any model into the plain values sent on the
  wire. Empty optional fields are left out.

### `osbroker.web`

- `Request` has these fields: `method`, `path`, `headers`, `query`, `body`,
  `path_params` and `context`. Header lookup ignores case.
- `Response` has a status, headers and a body, plus a `.json()` helper.
- `get_api_version(request)` reads `X-Broker-API-Version` into a
  `BrokerVersion`.
- `json_response(status, request_identity, body)` builds a JSON response.

### `osbroker.instance_handlers.InstanceHandler`

This handler serves these endpoints:

- `catalog`
- `provision`
- `deprovision`
- `update`
- `last_operation`
- `get_instance`

`provision` rejects a `service_id` or `plan_id` that is missing from the
broker's catalog, answering 400. `get_instance` requires API version 2.14 or
later; an earlier version gets 412.

### `osbroker.binding_handlers.APIHandler`

This subclass of `InstanceHandler` adds the binding endpoints:

- `bind`
- `unbind`
- `get_binding`
- `last_binding_operation`

Create one with `new_api_handler(broker, logger)`.

- `get_binding` and `last_binding_operation` require version 2.14 or later.
- `bind` allows asynchronous binding only from 2.14.
- For versions 2.8 and 2.9, `bind` answers with the older volume-mount form.

### `osbroker.middlewares`

- `APIVersionMiddleware(logger).validate_api_version_header` answers 412
  unless a 2.x version header is present.
- `check_broker_api_version_header(request)` raises `ValueError` when the
  version header is missing or not 2.x.
- `add_correlation_id_to_context` takes the first correlation header that is
  set. If none is, it uses a fresh UUID.
- `add_info_location_to_context` copies `X-Api-Info-Location` into the
  context.
- `add_originating_identity_to_context` copies
  `X-Broker-API-Originating-Identity` into the context.
- `add_request_identity_to_context` copies `X-Broker-API-Request-Identity`
  into the context. Handlers echo that value back in the same response header.

### `osbroker.middleware`

`use(endpoint, *middlewares)` chains middleware in front of an endpoint. They
run in the order given, and `None` entries are skipped.

### `osbroker.context`

- `Context` is an immutable request context, and `ContextKey` names its
  well-known keys.
- `add_service_to_context` and `retrieve_service_from_context` store and read
  the catalog service matched during provisioning.
- `add_service_plan_to_context` and `retrieve_service_plan_from_context` do
  the same for the matched plan.

### `osbroker.blog.Blog`

A logger wrapper that joins message prefixes with dots. Its structured fields
go to `extra["data"]`. `Blog.session(ctx, prefix, ...)` adds the correlation
ID and request identity found in the context.

## Example

```python
import logging

from osbroker.binding_handlers import new_api_handler
from osbroker.middleware import use
from osbroker.middlewares import (
    APIVersionMiddleware,
    add_correlation_id_to_context,
    add_request_identity_to_context,
)
from osbroker.models import Service, ServicePlan
from osbroker.web import Request


class MyBroker:
    def services(self, ctx):
        return [Service(id="svc", name="svc", plans=[ServicePlan(id="plan", name="small")])]

    # ... the other ServiceBroker methods ...


logger = logging.getLogger("broker")
handler = new_api_handler(MyBroker(), logger)

catalog = use(
    handler.catalog,
    add_correlation_id_to_context,
    add_request_identity_to_context,
    APIVersionMiddleware(logger).validate_api_version_header,
)

response = catalog(Request(method="GET", path="/v2/catalog",
                           headers={"X-Broker-API-Version": "2.14"}))
print(response.status, response.json())
```

An exception your broker raises that is not a `FailureResponse` is answered
with `500`. The exception's message becomes the description.

## What it does not do

The package contains no HTTP server and no router. It does not listen on a
socket and does not map URLs to handler methods. Your own server has to turn
each incoming request into a `Request`, with `path_params` holding
`instance_id` and `binding_id`. It then calls the matching handler method and
sends back the returned `Response`. There is also no storage; keeping
instances and bindings is up to your broker.

## Running the tests

```
pip install -e ".[test]"
pytest
```