"""HTTP handlers for the service-binding endpoints."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from . import blog
from .blog import Blog
from .instance_handlers import (
    PLAN_ID_ERROR,
    PLAN_ID_MISSING_KEY,
    SERVICE_ID_ERROR,
    SERVICE_ID_MISSING_KEY,
    UNKNOWN_ERROR_KEY,
    InstanceHandler,
    _decode_body,
    _metadata_or_none,
    _query_value,
    _request_identity,
)
from .middlewares import API_VERSION_INVALID_KEY
from .models import (
    AsyncBindResponse,
    BindDetails,
    BindingResponse,
    EmptyResponse,
    ErrorResponse,
    ExperimentalVolumeMount,
    ExperimentalVolumeMountBindingResponse,
    ExperimentalVolumeMountPrivate,
    FetchBindingDetails,
    GetBindingResponse,
    LastOperationResponse,
    PollDetails,
    ServiceBroker,
    UnbindDetails,
    UnbindResponse,
    to_json_dict,
)
from .web import Request, Response, get_api_version

INVALID_BIND_DETAILS_ERROR_KEY = "invalid-bind-details"

_BIND_LOG_KEY = "bind"
_UNBIND_LOG_KEY = "unbind"
_GET_BINDING_LOG_KEY = "getBinding"
_LAST_BINDING_OPERATION_LOG_KEY = "lastBindingOperation"

_BINDING_VERSION_ERROR = "get binding endpoint only supported starting with OSB version 2.14"


class APIHandler(InstanceHandler):
    """Serves every broker endpoint: catalog, instances and bindings."""

    def _binding_logger(self, request: Request, prefix: str) -> Blog:
        return self.logger.session(
            request.context,
            prefix,
            **blog.instance_id(request.path_value("instance_id")),
            **blog.binding_id(request.path_value("binding_id")),
        )

    def bind(self, request: Request) -> Response:
        """Create a binding to a service instance."""
        instance_id = request.path_value("instance_id")
        binding_id = request.path_value("binding_id")
        logger = self._binding_logger(request, _BIND_LOG_KEY)

        version = get_api_version(request)
        async_allowed = version.minor >= 14 and request.form_value("accepts_incomplete") == "true"
        request_id = _request_identity(request)

        try:
            details = _decode_body(BindDetails, request.body)
        except ValueError as err:
            logger.error(INVALID_BIND_DETAILS_ERROR_KEY, err)
            return self.respond(422, request_id, ErrorResponse(description=str(err)))

        if details.service_id == "":
            return self._rejected(logger, request_id, 400, SERVICE_ID_MISSING_KEY, SERVICE_ID_ERROR)
        if details.plan_id == "":
            return self._rejected(logger, request_id, 400, PLAN_ID_MISSING_KEY, PLAN_ID_ERROR)

        try:
            binding = self.service_broker.bind(
                request.context, instance_id, binding_id, details, async_allowed
            )
        except Exception as err:
            return self._failure(logger, request_id, err)

        metadata = _metadata_or_none(binding.metadata)

        if binding.already_exists:
            return self.respond(
                200,
                request_id,
                BindingResponse(
                    credentials=binding.credentials,
                    syslog_drain_url=binding.syslog_drain_url,
                    route_service_url=binding.route_service_url,
                    volume_mounts=binding.volume_mounts,
                    backup_agent_url=binding.backup_agent_url,
                    endpoints=binding.endpoints,
                    metadata=metadata,
                ),
            )

        if binding.is_async:
            return self.respond(
                202, request_id, AsyncBindResponse(operation_data=binding.operation_data)
            )

        if version.minor in (8, 9):
            experimental: List[ExperimentalVolumeMount] = []
            for volume in binding.volume_mounts:
                try:
                    config = json.dumps(
                        volume.device.mount_config, separators=(",", ":"), sort_keys=True
                    )
                except (TypeError, ValueError) as err:
                    logger.error(UNKNOWN_ERROR_KEY, err)
                    return self.respond(500, request_id, ErrorResponse(description=str(err)))
                experimental.append(
                    ExperimentalVolumeMount(
                        container_path=volume.container_dir,
                        mode=volume.mode,
                        private=ExperimentalVolumeMountPrivate(
                            driver=volume.driver,
                            group_id=volume.device.volume_id,
                            config=config,
                        ),
                    )
                )
            return self.respond(
                201,
                request_id,
                ExperimentalVolumeMountBindingResponse(
                    credentials=binding.credentials,
                    route_service_url=binding.route_service_url,
                    syslog_drain_url=binding.syslog_drain_url,
                    volume_mounts=experimental,
                    backup_agent_url=binding.backup_agent_url,
                ),
            )

        return self.respond(
            201,
            request_id,
            BindingResponse(
                credentials=binding.credentials,
                syslog_drain_url=binding.syslog_drain_url,
                route_service_url=binding.route_service_url,
                volume_mounts=binding.volume_mounts,
                backup_agent_url=binding.backup_agent_url,
                endpoints=binding.endpoints,
                metadata=metadata,
            ),
        )

    def unbind(self, request: Request) -> Response:
        """Delete a binding."""
        instance_id = request.path_value("instance_id")
        binding_id = request.path_value("binding_id")
        logger = self._binding_logger(request, _UNBIND_LOG_KEY)
        request_id = _request_identity(request)

        details = UnbindDetails(
            plan_id=request.form_value("plan_id"),
            service_id=request.form_value("service_id"),
        )
        if details.service_id == "":
            return self._rejected(logger, request_id, 400, SERVICE_ID_MISSING_KEY, SERVICE_ID_ERROR)
        if details.plan_id == "":
            return self._rejected(logger, request_id, 400, PLAN_ID_MISSING_KEY, PLAN_ID_ERROR)

        async_allowed = request.form_value("accepts_incomplete") == "true"
        try:
            spec = self.service_broker.unbind(
                request.context, instance_id, binding_id, details, async_allowed
            )
        except Exception as err:
            return self._failure(logger, request_id, err)

        if spec.is_async:
            return self.respond(202, request_id, UnbindResponse(operation_data=spec.operation_data))
        return self.respond(200, request_id, EmptyResponse())

    def get_binding(self, request: Request) -> Response:
        """Describe a binding; needs API version 2.14 or later."""
        instance_id = request.path_value("instance_id")
        binding_id = request.path_value("binding_id")
        logger = self._binding_logger(request, _GET_BINDING_LOG_KEY)
        request_id = _request_identity(request)

        if get_api_version(request).minor < 14:
            return self._rejected(
                logger, request_id, 412, API_VERSION_INVALID_KEY, _BINDING_VERSION_ERROR
            )

        details = FetchBindingDetails(
            service_id=_query_value(request, "service_id"),
            plan_id=_query_value(request, "plan_id"),
        )
        try:
            spec = self.service_broker.get_binding(request.context, instance_id, binding_id, details)
        except Exception as err:
            return self._failure(logger, request_id, err)

        return self.respond(
            200,
            request_id,
            GetBindingResponse(
                credentials=spec.credentials,
                syslog_drain_url=spec.syslog_drain_url,
                route_service_url=spec.route_service_url,
                volume_mounts=spec.volume_mounts,
                endpoints=spec.endpoints,
                metadata=_metadata_or_none(spec.metadata),
                parameters=spec.parameters,
            ),
        )

    def last_binding_operation(self, request: Request) -> Response:
        """Report the state of the last operation on a binding; needs API 2.14+."""
        instance_id = request.path_value("instance_id")
        binding_id = request.path_value("binding_id")
        poll_details = PollDetails(
            plan_id=request.form_value("plan_id"),
            service_id=request.form_value("service_id"),
            operation_data=request.form_value("operation"),
        )
        logger = self._binding_logger(request, _LAST_BINDING_OPERATION_LOG_KEY)
        request_id = _request_identity(request)

        if get_api_version(request).minor < 14:
            return self._rejected(
                logger, request_id, 412, API_VERSION_INVALID_KEY, _BINDING_VERSION_ERROR
            )

        logger.info("starting-check-for-binding-operation")
        try:
            operation = self.service_broker.last_binding_operation(
                request.context, instance_id, binding_id, poll_details
            )
        except Exception as err:
            return self._failure(logger, request_id, err)

        logger.info("done-check-for-binding-operation", state=to_json_dict(operation.state))
        return self.respond(
            200,
            request_id,
            LastOperationResponse(state=operation.state, description=operation.description),
        )


def new_api_handler(broker: ServiceBroker, logger: Optional[logging.Logger] = None) -> APIHandler:
    """Create a handler serving every endpoint of ``broker``."""
    return APIHandler(broker, logger)