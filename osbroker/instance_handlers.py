"""HTTP handlers for the catalog and service-instance endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import parse_qs

from . import blog
from .blog import Blog
from .context import (
    ContextKey,
    add_service_plan_to_context,
    add_service_to_context,
)
from .middlewares import API_VERSION_INVALID_KEY
from .models import (
    CatalogResponse,
    DeprovisionDetails,
    DeprovisionResponse,
    EmptyResponse,
    ErrorResponse,
    FailureResponse,
    FetchInstanceDetails,
    GetInstanceResponse,
    LastOperationResponse,
    PollDetails,
    ProvisionDetails,
    ProvisioningResponse,
    ServiceBroker,
    UpdateDetails,
    UpdateResponse,
    _from_json_dict,
    to_json_dict,
)
from .web import Request, Response, get_api_version, json_response

INVALID_SERVICE_DETAILS_ERROR_KEY = "invalid-service-details"
SERVICE_ID_MISSING_KEY = "service-id-missing"
PLAN_ID_MISSING_KEY = "plan-id-missing"
UNKNOWN_ERROR_KEY = "unknown-error"
INVALID_SERVICE_ID_KEY = "invalid-service-id"
INVALID_PLAN_ID_KEY = "invalid-plan-id"
INSTANCE_DETAILS_LOG_KEY = "instance-details"

SERVICE_ID_ERROR = "service_id missing"
PLAN_ID_ERROR = "plan_id missing"
INVALID_SERVICE_ID_ERROR = "service-id not in the catalog"
INVALID_PLAN_ID_ERROR = "plan-id not in the catalog"

_GET_CATALOG_LOG_KEY = "getCatalog"
_PROVISION_LOG_KEY = "provision"
_DEPROVISION_LOG_KEY = "deprovision"
_UPDATE_LOG_KEY = "update"
_LAST_OPERATION_LOG_KEY = "lastOperation"
_GET_INSTANCE_LOG_KEY = "getInstance"

_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}


def _request_identity(request: Request) -> str:
    value = request.context.value(ContextKey.REQUEST_IDENTITY)
    # An absent identity is rendered the same way the reference server renders a nil value.
    return "<nil>" if value is None else str(value)


def _query_value(request: Request, name: str) -> str:
    values = parse_qs(request.query, keep_blank_values=True).get(name)
    return values[0] if values else ""


def _decode_body(cls: Any, body: bytes) -> Any:
    """Decode the first JSON value of a request body into a model."""
    text = body.decode("utf-8").lstrip()
    if not text:
        raise ValueError("EOF")
    data, _ = json.JSONDecoder().raw_decode(text)
    return _from_json_dict(cls, data)


def _metadata_or_none(metadata: Any) -> Any:
    return metadata if metadata else None


class InstanceHandler:
    """Serves the catalog and the service-instance endpoints of a broker."""

    def __init__(self, service_broker: ServiceBroker, logger: Optional[logging.Logger] = None) -> None:
        self.service_broker = service_broker
        self.logger = Blog(logger) if logger is not None else Blog()

    def respond(self, status: int, request_identity: str, body: Any) -> Response:
        """Encode ``body`` as a JSON response with the given status."""
        return json_response(status, request_identity, to_json_dict(body))

    def _failure(self, logger: Blog, request_id: str, err: Exception) -> Response:
        if isinstance(err, FailureResponse):
            logger.error(err.logger_action, err)
            return self.respond(err.validated_status_code(logger), request_id, err.error_response())
        logger.error(UNKNOWN_ERROR_KEY, err)
        return self.respond(500, request_id, ErrorResponse(description=str(err)))

    def _rejected(self, logger: Blog, request_id: str, status: int, key: str, description: str) -> Response:
        logger.error(key, ValueError(description))
        return self.respond(status, request_id, ErrorResponse(description=description))

    def catalog(self, request: Request) -> Response:
        """Return the broker's service catalog."""
        logger = self.logger.session(request.context, _GET_CATALOG_LOG_KEY)
        request_id = _request_identity(request)
        try:
            services = self.service_broker.services(request.context)
        except Exception as err:
            return self._failure(logger, request_id, err)
        listed = list(services) if services is not None else None
        return self.respond(200, request_id, CatalogResponse(services=listed))

    def provision(self, request: Request) -> Response:
        """Create a service instance."""
        instance_id = request.path_value("instance_id")
        logger = self.logger.session(request.context, _PROVISION_LOG_KEY, **blog.instance_id(instance_id))
        request_id = _request_identity(request)

        try:
            details = _decode_body(ProvisionDetails, request.body)
        except ValueError as err:
            logger.error(INVALID_SERVICE_DETAILS_ERROR_KEY, err)
            return self.respond(422, request_id, ErrorResponse(description=str(err)))

        if details.service_id == "":
            return self._rejected(logger, request_id, 400, SERVICE_ID_MISSING_KEY, SERVICE_ID_ERROR)
        if details.plan_id == "":
            return self._rejected(logger, request_id, 400, PLAN_ID_MISSING_KEY, PLAN_ID_ERROR)

        try:
            services = list(self.service_broker.services(request.context) or [])
        except Exception:
            services = []

        service = next((s for s in services if s.id == details.service_id), None)
        if service is None:
            return self._rejected(
                logger, request_id, 400, INVALID_SERVICE_ID_KEY, INVALID_SERVICE_ID_ERROR
            )
        request = request.with_context(add_service_to_context(request.context, service))

        plan_found = False
        for candidate in services:
            plan = next((p for p in candidate.plans if p.id == details.plan_id), None)
            if plan is not None:
                request = request.with_context(add_service_plan_to_context(request.context, plan))
                plan_found = True
        if not plan_found:
            return self._rejected(
                logger, request_id, 400, INVALID_PLAN_ID_KEY, INVALID_PLAN_ID_ERROR
            )

        async_allowed = request.form_value("accepts_incomplete") == "true"
        logger = logger.with_fields(**{INSTANCE_DETAILS_LOG_KEY: to_json_dict(details)})

        try:
            spec = self.service_broker.provision(request.context, instance_id, details, async_allowed)
        except Exception as err:
            return self._failure(logger, request_id, err)

        metadata = _metadata_or_none(spec.metadata)
        if spec.already_exists:
            return self.respond(
                200,
                request_id,
                ProvisioningResponse(dashboard_url=spec.dashboard_url, metadata=metadata),
            )
        if spec.is_async:
            return self.respond(
                202,
                request_id,
                ProvisioningResponse(
                    dashboard_url=spec.dashboard_url,
                    operation_data=spec.operation_data,
                    metadata=metadata,
                ),
            )
        return self.respond(
            201,
            request_id,
            ProvisioningResponse(dashboard_url=spec.dashboard_url, metadata=metadata),
        )

    def deprovision(self, request: Request) -> Response:
        """Delete a service instance."""
        instance_id = request.path_value("instance_id")
        logger = self.logger.session(request.context, _DEPROVISION_LOG_KEY, **blog.instance_id(instance_id))
        details = DeprovisionDetails(
            plan_id=request.form_value("plan_id"),
            service_id=request.form_value("service_id"),
            force=request.form_value("force") == "true",
        )
        request_id = _request_identity(request)

        if details.service_id == "":
            return self._rejected(logger, request_id, 400, SERVICE_ID_MISSING_KEY, SERVICE_ID_ERROR)
        if details.plan_id == "":
            return self._rejected(logger, request_id, 400, PLAN_ID_MISSING_KEY, PLAN_ID_ERROR)

        async_allowed = request.form_value("accepts_incomplete") == "true"
        try:
            spec = self.service_broker.deprovision(request.context, instance_id, details, async_allowed)
        except Exception as err:
            return self._failure(logger, request_id, err)

        if spec.is_async:
            return self.respond(202, request_id, DeprovisionResponse(operation_data=spec.operation_data))
        return self.respond(200, request_id, EmptyResponse())

    def update(self, request: Request) -> Response:
        """Change a service instance."""
        instance_id = request.path_value("instance_id")
        logger = self.logger.session(request.context, _UPDATE_LOG_KEY, **blog.instance_id(instance_id))
        request_id = _request_identity(request)

        try:
            details = _decode_body(UpdateDetails, request.body)
        except ValueError as err:
            logger.error(INVALID_SERVICE_DETAILS_ERROR_KEY, err)
            return self.respond(422, request_id, ErrorResponse(description=str(err)))

        if details.service_id == "":
            return self._rejected(logger, request_id, 400, SERVICE_ID_MISSING_KEY, SERVICE_ID_ERROR)

        accepts_incomplete = _query_value(request, "accepts_incomplete") in _TRUE_WORDS

        try:
            spec = self.service_broker.update(request.context, instance_id, details, accepts_incomplete)
        except Exception as err:
            return self._failure(logger, request_id, err)

        status = 202 if spec.is_async else 200
        return self.respond(
            status,
            request_id,
            UpdateResponse(
                operation_data=spec.operation_data,
                dashboard_url=spec.dashboard_url,
                metadata=_metadata_or_none(spec.metadata),
            ),
        )

    def last_operation(self, request: Request) -> Response:
        """Report the state of the last operation on an instance."""
        instance_id = request.path_value("instance_id")
        poll_details = PollDetails(
            plan_id=request.form_value("plan_id"),
            service_id=request.form_value("service_id"),
            operation_data=request.form_value("operation"),
        )
        logger = self.logger.session(request.context, _LAST_OPERATION_LOG_KEY, **blog.instance_id(instance_id))
        logger.info("starting-check-for-operation")
        request_id = _request_identity(request)

        try:
            operation = self.service_broker.last_operation(request.context, instance_id, poll_details)
        except Exception as err:
            return self._failure(logger, request_id, err)

        logger.info("done-check-for-operation", state=to_json_dict(operation.state))
        return self.respond(
            200,
            request_id,
            LastOperationResponse(state=operation.state, description=operation.description),
        )

    def get_instance(self, request: Request) -> Response:
        """Describe a service instance; needs API version 2.14 or later."""
        instance_id = request.path_value("instance_id")
        logger = self.logger.session(request.context, _GET_INSTANCE_LOG_KEY, **blog.instance_id(instance_id))
        request_id = _request_identity(request)

        if get_api_version(request).minor < 14:
            return self._rejected(
                logger,
                request_id,
                412,
                API_VERSION_INVALID_KEY,
                "get instance endpoint only supported starting with OSB version 2.14",
            )

        details = FetchInstanceDetails(
            service_id=_query_value(request, "service_id"),
            plan_id=_query_value(request, "plan_id"),
        )
        try:
            spec = self.service_broker.get_instance(request.context, instance_id, details)
        except Exception as err:
            return self._failure(logger, request_id, err)

        return self.respond(
            200,
            request_id,
            GetInstanceResponse(
                service_id=spec.service_id,
                plan_id=spec.plan_id,
                dashboard_url=spec.dashboard_url,
                parameters=spec.parameters,
                metadata=_metadata_or_none(spec.metadata),
            ),
        )