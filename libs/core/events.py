TOOL_RECEIVED = "tool.received"
TOOL_VALIDATED = "tool.validated"
TOOL_VALIDATION_FAILED = "tool.validation_failed"
TOOL_COMPLETED = "tool.completed"
TOOL_FAILED = "tool.failed"
TOOL_TIMED_OUT = "tool.timed_out"
TOOL_NOT_FOUND = "tool.not_found"
TOOL_BATCH_HALTED = "tool.batch_halted"

CONTEXT_BUILT = "context.built"
CONTEXT_REFRESHED = "context.refreshed"
CONTEXT_PRUNED = "context.pruned"
CONTEXT_SESSION_CLEARED = "context.session_cleared"

CONTENT_TYPE_VALIDATED = "content_type.validated"

STORE_AFTER_COMMIT_FAILED = "store.after_commit_failed"

TOOL_EVENTS = [
    TOOL_RECEIVED,
    TOOL_VALIDATED,
    TOOL_VALIDATION_FAILED,
    TOOL_COMPLETED,
    TOOL_FAILED,
    TOOL_TIMED_OUT,
    TOOL_NOT_FOUND,
    TOOL_BATCH_HALTED,
]
CONTEXT_EVENTS = [CONTEXT_BUILT, CONTEXT_REFRESHED, CONTEXT_PRUNED, CONTEXT_SESSION_CLEARED]
