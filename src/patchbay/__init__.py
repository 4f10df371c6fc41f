"""patchbay: validate, compile and live-rewire modular synth patches."""

from patchbay.compile import (
    CompileInProgressError,
    CompileReport,
    CompilerState,
    GraphCompiler,
    ResolutionFailure,
)
from patchbay.config import Settings, get_settings
from patchbay.connections import ConnectionRejected, ConnectionSet
from patchbay.controller import Patch, PatchController, Proposal
from patchbay.engine import (
    BoundModule,
    EngineError,
    EngineRegistry,
    MemoryEngine,
    MemoryHandle,
    MemoryNode,
)
from patchbay.models import (
    DESTINATION,
    AddressError,
    Connection,
    ConnectionDeclaration,
    ModuleDeclaration,
    ModuleInstance,
    ParameterTarget,
    ParamRef,
    ParamSpec,
    PatchDocument,
    Port,
    PortRef,
    PortSpec,
    SinkRef,
    SlotRef,
    parse_address,
)
from patchbay.resolve import ResolutionError, resolve_reference
from patchbay.schema import (
    ModuleKindSchema,
    SchemaRegistry,
    UnknownModuleKindError,
    builtin_registry,
)
from patchbay.topology import dangling_sources
from patchbay.validate import (
    COMPATIBILITY,
    Rejection,
    can_connect,
    check_connection,
    check_direction,
    check_duplicate,
    check_self_loop,
    check_signal,
    validate_patch,
)
from patchbay.visualize import cables, patch_to_dot, patch_to_dot_file

__all__ = [
    "COMPATIBILITY",
    "DESTINATION",
    "AddressError",
    "BoundModule",
    "CompileInProgressError",
    "CompileReport",
    "CompilerState",
    "Connection",
    "ConnectionDeclaration",
    "ConnectionRejected",
    "ConnectionSet",
    "EngineError",
    "EngineRegistry",
    "GraphCompiler",
    "MemoryEngine",
    "MemoryHandle",
    "MemoryNode",
    "ModuleDeclaration",
    "ModuleInstance",
    "ModuleKindSchema",
    "ParamRef",
    "ParamSpec",
    "ParameterTarget",
    "Patch",
    "PatchController",
    "PatchDocument",
    "Port",
    "PortRef",
    "PortSpec",
    "Proposal",
    "Rejection",
    "ResolutionError",
    "ResolutionFailure",
    "SchemaRegistry",
    "Settings",
    "SinkRef",
    "SlotRef",
    "UnknownModuleKindError",
    "builtin_registry",
    "can_connect",
    "cables",
    "check_connection",
    "check_direction",
    "check_duplicate",
    "check_self_loop",
    "check_signal",
    "dangling_sources",
    "get_settings",
    "parse_address",
    "patch_to_dot",
    "patch_to_dot_file",
    "resolve_reference",
    "validate_patch",
]
