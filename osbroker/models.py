"""Broker domain objects, API response bodies and their JSON form."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .context import Context

_OMIT_EMPTY = "empty"
_OMIT_NONE = "none"


def _field(name: str, *, omit: Optional[str] = None, kind: Any = object, **kwargs: Any) -> Any:
    """Declare a dataclass field with its JSON name, omission rule and decoded kind."""
    return field(metadata={"json": name, "omit": omit, "kind": kind}, **kwargs)


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, Enum):
        return _is_empty(value.value)
    if isinstance(value, (str, bytes, list, tuple, dict, Mapping)):
        return len(value) == 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def to_json_dict(value: Any) -> Any:
    """Convert a model, or any nesting of them, into plain JSON-ready values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        result: Dict[str, Any] = {}
        for item in dataclasses.fields(value):
            name = item.metadata.get("json")
            if name is None:
                continue
            current = getattr(value, item.name)
            omit = item.metadata.get("omit")
            if omit == _OMIT_EMPTY and _is_empty(current):
                continue
            if omit == _OMIT_NONE and current is None:
                continue
            result[name] = to_json_dict(current)
        return result
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): to_json_dict(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_dict(item) for item in value]
    return value


def _json_type(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _decode_value(kind: Any, value: Any, name: str) -> Any:
    if kind is object:
        return value
    if kind is str or kind is bool:
        if not isinstance(value, kind) or (kind is str and isinstance(value, bool)):
            expected = "string" if kind is str else "bool"
            raise ValueError(
                f"json: cannot unmarshal {_json_type(value)} into field {name} of type {expected}"
            )
        return value
    if kind is dict:
        if not isinstance(value, dict):
            raise ValueError(
                f"json: cannot unmarshal {_json_type(value)} into field {name} of type object"
            )
        return dict(value)
    return _from_json_dict(kind, value, name)


def _from_json_dict(cls: Any, data: Any, name: str = "") -> Any:
    """Build a model from decoded JSON, ignoring unknown keys and nulls."""
    if not isinstance(data, dict):
        target = name or cls.__name__
        raise ValueError(f"json: cannot unmarshal {_json_type(data)} into {target}")
    values: Dict[str, Any] = {}
    for item in dataclasses.fields(cls):
        json_name = item.metadata.get("json")
        if json_name is None or json_name not in data or data[json_name] is None:
            continue
        values[item.name] = _decode_value(item.metadata.get("kind", object), data[json_name], json_name)
    return cls(**values)


@dataclass
class MaintenanceInfo:
    """Maintenance information of a plan or an instance."""

    public: Dict[str, str] = _field("public", omit=_OMIT_EMPTY, kind=dict, default_factory=dict)
    private: str = _field("private", omit=_OMIT_EMPTY, kind=str, default="")
    version: str = _field("version", omit=_OMIT_EMPTY, kind=str, default="")
    description: str = _field("description", omit=_OMIT_EMPTY, kind=str, default="")

    def equals(self, other: Optional["MaintenanceInfo"]) -> bool:
        """True when version, private data and public data all match."""
        other = other if other is not None else MaintenanceInfo()
        return (
            self.version == other.version
            and self.private == other.private
            and dict(self.public or {}) == dict(other.public or {})
        )


class LastOperationState(str, Enum):
    """State of an asynchronous operation."""

    IN_PROGRESS = "in progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class LastOperation:
    """Result of polling an asynchronous operation."""

    state: LastOperationState = _field("state", default=LastOperationState.IN_PROGRESS)
    description: str = _field("description", default="")


@dataclass
class ErrorResponse:
    """Body of an error response."""

    error: str = _field("error", omit=_OMIT_EMPTY, default="")
    description: str = _field("description", default="")
    instance_usable: Optional[bool] = _field("instance_usable", omit=_OMIT_NONE, default=None)
    update_repeatable: Optional[bool] = _field("update_repeatable", omit=_OMIT_NONE, default=None)


class FailureResponse(Exception):
    """An error that carries the HTTP status and log action to respond with."""

    def __init__(
        self,
        error: BaseException,
        status_code: int,
        logger_action: str,
        *,
        error_key: str = "",
    ) -> None:
        super().__init__(str(error))
        self.error = error
        self.status_code = status_code
        self.logger_action = logger_action
        self.error_key = error_key

    def error_response(self) -> ErrorResponse:
        """The response body describing this failure."""
        return ErrorResponse(error=self.error_key, description=str(self.error))

    def validated_status_code(self, logger: Any = None) -> int:
        """The status code if it is a 4xx or 5xx code, otherwise 500."""
        if 400 <= self.status_code <= 599:
            return self.status_code
        if logger is None:
            logger = logging.getLogger("osbroker")
        logger.error(
            f"validating-status-code: invalid failure http response code: {self.status_code}, "
            "expected 4xx or 5xx, returning internalServerError: 500."
        )
        return 500


@dataclass
class EmptyResponse:
    """An empty JSON object."""


@dataclass
class CatalogResponse:
    """Body of the catalog endpoint."""

    services: List[Any] = _field("services", default_factory=list)


@dataclass
class ProvisioningResponse:
    """Body returned after provisioning an instance."""

    dashboard_url: str = _field("dashboard_url", omit=_OMIT_EMPTY, default="")
    operation_data: str = _field("operation", omit=_OMIT_EMPTY, default="")
    metadata: Any = _field("metadata", omit=_OMIT_EMPTY, default=None)


@dataclass
class GetInstanceResponse:
    """Body describing a provisioned instance."""

    service_id: str = _field("service_id", omit=_OMIT_EMPTY, default="")
    plan_id: str = _field("plan_id", omit=_OMIT_EMPTY, default="")
    dashboard_url: str = _field("dashboard_url", omit=_OMIT_EMPTY, default="")
    parameters: Any = _field("parameters", omit=_OMIT_EMPTY, default=None)
    maintenance_info: Optional[MaintenanceInfo] = _field(
        "maintenance_info", omit=_OMIT_NONE, default=None
    )
    metadata: Any = _field("metadata", omit=_OMIT_EMPTY, default=None)


@dataclass
class UpdateResponse:
    """Body returned after updating an instance."""

    dashboard_url: str = _field("dashboard_url", omit=_OMIT_EMPTY, default="")
    operation_data: str = _field("operation", omit=_OMIT_EMPTY, default="")
    metadata: Any = _field("metadata", omit=_OMIT_EMPTY, default=None)


@dataclass
class DeprovisionResponse:
    """Body returned after an asynchronous deprovision starts."""

    operation_data: str = _field("operation", omit=_OMIT_EMPTY, default="")


@dataclass
class LastOperationResponse:
    """Body of the last-operation endpoints."""

    state: LastOperationState = _field("state", default=LastOperationState.IN_PROGRESS)
    description: str = _field("description", omit=_OMIT_EMPTY, default="")


@dataclass
class AsyncBindResponse:
    """Body returned after an asynchronous bind starts."""

    operation_data: str = _field("operation", omit=_OMIT_EMPTY, default="")


@dataclass
class BindingResponse:
    """Body describing a binding."""

    credentials: Any = _field("credentials", omit=_OMIT_EMPTY, default=None)
    syslog_drain_url: str = _field("syslog_drain_url", omit=_OMIT_EMPTY, default="")
    route_service_url: str = _field("route_service_url", omit=_OMIT_EMPTY, default="")
    volume_mounts: List[Any] = _field("volume_mounts", omit=_OMIT_EMPTY, default_factory=list)
    backup_agent_url: str = _field("backup_agent_url", omit=_OMIT_EMPTY, default="")
    endpoints: List[Any] = _field("endpoints", omit=_OMIT_EMPTY, default_factory=list)
    metadata: Any = _field("metadata", omit=_OMIT_EMPTY, default=None)


@dataclass
class GetBindingResponse(BindingResponse):
    """Body describing a fetched binding, with its parameters."""

    parameters: Any = _field("parameters", omit=_OMIT_EMPTY, default=None)


@dataclass
class UnbindResponse:
    """Body returned after an asynchronous unbind starts."""

    operation_data: str = _field("operation", omit=_OMIT_EMPTY, default="")


@dataclass
class ExperimentalVolumeMountPrivate:
    """Driver-specific part of an experimental volume mount."""

    driver: str = _field("driver", default="")
    group_id: str = _field("group_id", default="")
    config: str = _field("config", default="")


@dataclass
class ExperimentalVolumeMount:
    """Volume mount in the form used by API versions 2.8 and 2.9."""

    container_path: str = _field("container_path", default="")
    mode: str = _field("mode", default="")
    private: ExperimentalVolumeMountPrivate = _field(
        "private", default_factory=ExperimentalVolumeMountPrivate
    )


@dataclass
class ExperimentalVolumeMountBindingResponse:
    """Binding body for API versions 2.8 and 2.9."""

    credentials: Any = _field("credentials", omit=_OMIT_EMPTY, default=None)
    syslog_drain_url: str = _field("syslog_drain_url", omit=_OMIT_EMPTY, default="")
    route_service_url: str = _field("route_service_url", omit=_OMIT_EMPTY, default="")
    volume_mounts: List[ExperimentalVolumeMount] = _field("volume_mounts", default_factory=list)
    backup_agent_url: str = _field("backup_agent_url", omit=_OMIT_EMPTY, default="")


@dataclass
class ServicePlan:
    """A plan offered by a catalog service."""

    id: str = _field("id", default="")
    name: str = _field("name", default="")
    description: str = _field("description", default="")
    free: Optional[bool] = _field("free", omit=_OMIT_NONE, default=None)
    bindable: Optional[bool] = _field("bindable", omit=_OMIT_NONE, default=None)
    metadata: Any = _field("metadata", omit=_OMIT_EMPTY, default=None)
    maintenance_info: Optional[MaintenanceInfo] = _field(
        "maintenance_info", omit=_OMIT_NONE, default=None
    )


@dataclass
class Service:
    """A service offered in the catalog."""

    id: str = _field("id", default="")
    name: str = _field("name", default="")
    description: str = _field("description", default="")
    bindable: bool = _field("bindable", default=False)
    plan_updatable: bool = _field("plan_updateable", omit=_OMIT_EMPTY, default=False)
    tags: List[str] = _field("tags", omit=_OMIT_EMPTY, default_factory=list)
    plans: List[ServicePlan] = _field("plans", default_factory=list)
    metadata: Any = _field("metadata", omit=_OMIT_EMPTY, default=None)


@dataclass
class SharedDevice:
    """Device shared through a volume mount."""

    volume_id: str = _field("volume_id", default="")
    mount_config: Dict[str, Any] = _field("mount_config", omit=_OMIT_EMPTY, default_factory=dict)


@dataclass
class VolumeMount:
    """A volume mount offered by a binding."""

    driver: str = _field("driver", default="")
    container_dir: str = _field("container_dir", default="")
    mode: str = _field("mode", default="")
    device_type: str = _field("device_type", default="")
    device: SharedDevice = _field("device", default_factory=SharedDevice)


@dataclass
class ProvisionDetails:
    """Request body of a provision call."""

    service_id: str = _field("service_id", kind=str, default="")
    plan_id: str = _field("plan_id", kind=str, default="")
    organization_guid: str = _field("organization_guid", kind=str, default="")
    space_guid: str = _field("space_guid", kind=str, default="")
    raw_context: Any = _field("context", omit=_OMIT_EMPTY, default=None)
    raw_parameters: Any = _field("parameters", omit=_OMIT_EMPTY, default=None)
    maintenance_info: Optional[MaintenanceInfo] = _field(
        "maintenance_info", omit=_OMIT_NONE, kind=MaintenanceInfo, default=None
    )


@dataclass
class BindDetails:
    """Request body of a bind call."""

    app_guid: str = _field("app_guid", omit=_OMIT_EMPTY, kind=str, default="")
    plan_id: str = _field("plan_id", kind=str, default="")
    service_id: str = _field("service_id", kind=str, default="")
    bind_resource: Optional[Dict[str, Any]] = _field(
        "bind_resource", omit=_OMIT_NONE, kind=dict, default=None
    )
    raw_context: Any = _field("context", omit=_OMIT_EMPTY, default=None)
    raw_parameters: Any = _field("parameters", omit=_OMIT_EMPTY, default=None)


@dataclass
class UnbindDetails:
    """Query values of an unbind call."""

    plan_id: str = _field("plan_id", kind=str, default="")
    service_id: str = _field("service_id", kind=str, default="")


@dataclass
class UpdateDetails:
    """Request body of an update call."""

    service_id: str = _field("service_id", kind=str, default="")
    plan_id: str = _field("plan_id", omit=_OMIT_EMPTY, kind=str, default="")
    raw_parameters: Any = _field("parameters", omit=_OMIT_EMPTY, default=None)
    previous_values: Dict[str, Any] = _field(
        "previous_values", omit=_OMIT_EMPTY, kind=dict, default_factory=dict
    )
    raw_context: Any = _field("context", omit=_OMIT_EMPTY, default=None)
    maintenance_info: Optional[MaintenanceInfo] = _field(
        "maintenance_info", omit=_OMIT_NONE, kind=MaintenanceInfo, default=None
    )


@dataclass
class DeprovisionDetails:
    """Query values of a deprovision call."""

    plan_id: str = _field("plan_id", kind=str, default="")
    service_id: str = _field("service_id", kind=str, default="")
    force: bool = _field("force", kind=bool, default=False)


@dataclass
class PollDetails:
    """Query values of a last-operation call."""

    service_id: str = _field("service_id", kind=str, default="")
    plan_id: str = _field("plan_id", kind=str, default="")
    operation_data: str = _field("operation", kind=str, default="")


@dataclass
class FetchInstanceDetails:
    """Query values of a get-instance call."""

    service_id: str = _field("service_id", kind=str, default="")
    plan_id: str = _field("plan_id", kind=str, default="")


@dataclass
class FetchBindingDetails:
    """Query values of a get-binding call."""

    service_id: str = _field("service_id", kind=str, default="")
    plan_id: str = _field("plan_id", kind=str, default="")


@dataclass
class ProvisionedServiceSpec:
    """What a broker reports after provisioning."""

    is_async: bool = False
    already_exists: bool = False
    dashboard_url: str = ""
    operation_data: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GetInstanceDetailsSpec:
    """What a broker reports about an existing instance."""

    service_id: str = ""
    plan_id: str = ""
    dashboard_url: str = ""
    parameters: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UpdateServiceSpec:
    """What a broker reports after updating."""

    is_async: bool = False
    dashboard_url: str = ""
    operation_data: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeprovisionServiceSpec:
    """What a broker reports after deprovisioning."""

    is_async: bool = False
    operation_data: str = ""


@dataclass
class UnbindSpec:
    """What a broker reports after unbinding."""

    is_async: bool = False
    operation_data: str = ""


@dataclass
class Binding:
    """What a broker reports after binding."""

    is_async: bool = False
    already_exists: bool = False
    operation_data: str = ""
    credentials: Any = None
    syslog_drain_url: str = ""
    route_service_url: str = ""
    volume_mounts: List[VolumeMount] = field(default_factory=list)
    backup_agent_url: str = ""
    endpoints: List[Any] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GetBindingSpec:
    """What a broker reports about an existing binding."""

    credentials: Any = None
    syslog_drain_url: str = ""
    route_service_url: str = ""
    volume_mounts: List[VolumeMount] = field(default_factory=list)
    parameters: Any = None
    endpoints: List[Any] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class ServiceBroker(Protocol):
    """The operations a service broker offers, one per API endpoint."""

    def services(self, ctx: Context) -> Sequence[Service]:
        """Return the catalog."""

    def provision(
        self, ctx: Context, instance_id: str, details: ProvisionDetails, async_allowed: bool
    ) -> ProvisionedServiceSpec:
        """Create a service instance."""

    def deprovision(
        self, ctx: Context, instance_id: str, details: DeprovisionDetails, async_allowed: bool
    ) -> DeprovisionServiceSpec:
        """Delete a service instance."""

    def get_instance(
        self, ctx: Context, instance_id: str, details: FetchInstanceDetails
    ) -> GetInstanceDetailsSpec:
        """Describe a service instance."""

    def update(
        self, ctx: Context, instance_id: str, details: UpdateDetails, async_allowed: bool
    ) -> UpdateServiceSpec:
        """Change a service instance."""

    def last_operation(self, ctx: Context, instance_id: str, details: PollDetails) -> LastOperation:
        """Report the state of an instance operation."""

    def bind(
        self,
        ctx: Context,
        instance_id: str,
        binding_id: str,
        details: BindDetails,
        async_allowed: bool,
    ) -> Binding:
        """Create a binding."""

    def unbind(
        self,
        ctx: Context,
        instance_id: str,
        binding_id: str,
        details: UnbindDetails,
        async_allowed: bool,
    ) -> UnbindSpec:
        """Delete a binding."""

    def get_binding(
        self, ctx: Context, instance_id: str, binding_id: str, details: FetchBindingDetails
    ) -> GetBindingSpec:
        """Describe a binding."""

    def last_binding_operation(
        self, ctx: Context, instance_id: str, binding_id: str, details: PollDetails
    ) -> LastOperation:
        """Report the state of a binding operation."""