"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Tuple


_lock = Lock()
_started_at = time.time()

_http_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_http_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_http_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_request_transitions_total: Dict[Tuple[str, str], int] = defaultdict(int)
_sessions_materialized_total: Dict[str, int] = defaultdict(int)
_access_denied_total: Dict[str, int] = defaultdict(int)
_write_conflicts_total: Dict[str, int] = defaultdict(int)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_label(value: str, *, fallback: str = "unknown") -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def record_http_request(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    status = str(status_code)
    method_label = method.upper()
    path_label = path or "unknown"
    duration = max(duration_seconds, 0.0)

    with _lock:
        _http_requests_total[(method_label, path_label, status)] += 1
        _http_request_duration_sum[(method_label, path_label)] += duration
        _http_request_duration_count[(method_label, path_label)] += 1


def record_request_transition(*, event: str, to_status: str) -> None:
    with _lock:
        _request_transitions_total[(_normalize_label(event), _normalize_label(to_status))] += 1


def record_session_materialized(*, origin: str) -> None:
    with _lock:
        _sessions_materialized_total[_normalize_label(origin)] += 1


def record_access_denied(*, capability: str) -> None:
    with _lock:
        _access_denied_total[_normalize_label(capability)] += 1


def record_write_conflict(*, kind: str) -> None:
    with _lock:
        _write_conflicts_total[_normalize_label(kind)] += 1


def _render_counter(lines: list[str], *, name: str, help_text: str, label_names: Tuple[str, ...], values: dict) -> None:
    lines.extend(
        [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} counter",
        ]
    )
    for key, value in sorted(values.items()):
        labels = key if isinstance(key, tuple) else (key,)
        rendered = ",".join(
            f'{label}="{_escape_label(str(item))}"' for label, item in zip(label_names, labels)
        )
        lines.append(f"{name}{{{rendered}}} {value}")


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)

    with _lock:
        http_total = dict(_http_requests_total)
        duration_sum = dict(_http_request_duration_sum)
        duration_count = dict(_http_request_duration_count)
        transitions_total = dict(_request_transitions_total)
        materialized_total = dict(_sessions_materialized_total)
        denied_total = dict(_access_denied_total)
        conflicts_total = dict(_write_conflicts_total)

    lines = [
        "# HELP talkboard_build_info Build metadata.",
        "# TYPE talkboard_build_info gauge",
        (
            f'talkboard_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP talkboard_process_uptime_seconds Process uptime in seconds.",
        "# TYPE talkboard_process_uptime_seconds gauge",
        f"talkboard_process_uptime_seconds {uptime:.6f}",
    ]

    _render_counter(
        lines,
        name="talkboard_http_requests_total",
        help_text="Total HTTP requests.",
        label_names=("method", "path", "status"),
        values=http_total,
    )

    lines.extend(
        [
            "# HELP talkboard_http_request_duration_seconds Request duration summary.",
            "# TYPE talkboard_http_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'talkboard_http_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'talkboard_http_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    _render_counter(
        lines,
        name="talkboard_request_transitions_total",
        help_text="Session request state transitions.",
        label_names=("event", "to_status"),
        values=transitions_total,
    )
    _render_counter(
        lines,
        name="talkboard_sessions_materialized_total",
        help_text="Sessions created, by origin.",
        label_names=("origin",),
        values=materialized_total,
    )
    _render_counter(
        lines,
        name="talkboard_access_denied_total",
        help_text="Operations refused by the access policy.",
        label_names=("capability",),
        values=denied_total,
    )
    _render_counter(
        lines,
        name="talkboard_write_conflicts_total",
        help_text="Guarded writes lost to a concurrent writer.",
        label_names=("kind",),
        values=conflicts_total,
    )

    lines.append("")
    return "\n".join(lines)


def reset_metrics_for_tests() -> None:
    global _started_at
    with _lock:
        _http_requests_total.clear()
        _http_request_duration_sum.clear()
        _http_request_duration_count.clear()
        _request_transitions_total.clear()
        _sessions_materialized_total.clear()
        _access_denied_total.clear()
        _write_conflicts_total.clear()
    _started_at = time.time()
