from streamtester.config import StreamSettings, load_settings
from streamtester.errors import (
    EmptyValueSetError,
    GenerationError,
    ParameterError,
    PublishError,
    SessionConflictError,
    StreamError,
    SubscriptionError,
    UnknownSessionError,
)
from streamtester.models.parameter import Parameter
from streamtester.models.session import (
    ConsumedRecord,
    Destination,
    ProducerConfig,
    SessionKind,
    SessionSnapshot,
    SessionState,
    StopAfter,
)
from streamtester.sessions.registry import SessionRegistry

__version__ = "0.1.0"

__all__ = [
    "ConsumedRecord",
    "Destination",
    "EmptyValueSetError",
    "GenerationError",
    "Parameter",
    "ParameterError",
    "ProducerConfig",
    "PublishError",
    "SessionConflictError",
    "SessionKind",
    "SessionRegistry",
    "SessionSnapshot",
    "SessionState",
    "StopAfter",
    "StreamError",
    "StreamSettings",
    "SubscriptionError",
    "UnknownSessionError",
    "load_settings",
]
