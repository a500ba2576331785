from .registry import ReviewRegistry, discard_all  # noqa: F401
from .session import (  # noqa: F401
    Direction,
    ReviewError,
    ReviewState,
    ReviewStatus,
    TerminalAction,
    TerminalEvent,
    accept,
    accept_all,
    begin_review,
    cancel,
    close,
    count_diagnostics,
    hint_line,
    hunk_at,
    navigate,
    revert,
    wait_terminal,
)
