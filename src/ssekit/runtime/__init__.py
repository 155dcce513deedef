"""Per-call runtime: the streaming session and call dispatch"""

from ssekit.runtime.dispatch import FunctionDispatcher, ScriptEvaluator, ScriptExecutor
from ssekit.runtime.session import Binding, CallContext, SessionState, StreamingSession
