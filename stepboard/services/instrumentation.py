from time import perf_counter
from typing import Any, Callable, Optional


def _log(logger, level: str, message: str) -> None:
    log_fn = getattr(logger, level, None)
    if callable(log_fn):
        log_fn(message)
    else:
        logger.info(message)


def timed_call(
    logger,
    operation: str,
    fn: Callable[..., Any],
    *args,
    enabled: bool = True,
    subject: Optional[str] = None,
    warn_threshold_ms: Optional[float] = None,
    expected_errors: tuple = (),
    **kwargs,
) -> Any:
    """Call `fn` and log its duration under `operation`.

    Exceptions listed in `expected_errors` are logged at info level
    (status=handled) since the caller turns them into a normal outcome.
    """
    if not enabled:
        return fn(*args, **kwargs)

    who = f" subject={subject}" if subject else ""
    started = perf_counter()
    try:
        result = fn(*args, **kwargs)
    except Exception as exc:
        elapsed_ms = (perf_counter() - started) * 1000
        if expected_errors and isinstance(exc, expected_errors):
            status, level = "handled", "info"
        else:
            status, level = "error", "error"
        _log(
            logger,
            level,
            f"[timing] operation={operation}{who} duration_ms={elapsed_ms:.2f} status={status} error={exc.__class__.__name__}",
        )
        raise

    elapsed_ms = (perf_counter() - started) * 1000
    level_to_use = "warning" if warn_threshold_ms is not None and elapsed_ms >= warn_threshold_ms else "info"
    _log(
        logger,
        level_to_use,
        f"[timing] operation={operation}{who} duration_ms={elapsed_ms:.2f} status=ok",
    )
    return result
