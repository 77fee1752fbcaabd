"""Render a report as a GitHub-flavoured markdown issue body"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

from reportsync.models import FileType


def public_file_url(app_url: Optional[str], report_id: str, filename: str) -> Optional[str]:
    """URL of a report file served by this deployment, or None without a public base URL."""
    if not app_url:
        return None
    return f"{app_url.rstrip('/')}/api/public/files/{quote(report_id)}/{quote(filename)}"


def _get(data: Any, key: str, default: Any = None) -> Any:
    if isinstance(data, Mapping):
        value = data.get(key, default)
        return default if value is None else value
    return default


def _format_time(value: Any) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%H:%M:%S")
    except ValueError:
        return str(value)


def _environment_section(report: Any, metadata: Mapping[str, Any]) -> List[str]:
    browser = _get(metadata, "browser", {})
    device = _get(metadata, "device", {})
    viewport = _get(metadata, "viewport", {})

    os_name = _get(device, "os", "Unknown")
    if _get(device, "osVersion"):
        os_name = f"{os_name} {device['osVersion']}"
    load_time = _get(metadata, "pageLoadTime")

    rows = [
        ("Browser", f"{_get(browser, 'name', 'Unknown')} {_get(browser, 'version', '')}".rstrip()),
        ("Device", f"{_get(device, 'type', 'Unknown')} ({os_name})"),
        ("Viewport", f"{_get(viewport, 'width', '?')}x{_get(viewport, 'height', '?')}"),
        ("Timezone", _get(metadata, "timezone", "Unknown")),
        ("Page Load Time", f"{load_time}ms" if load_time else "N/A"),
        ("Timestamp", _get(metadata, "timestamp") or str(getattr(report, "created_at", "") or "")),
        ("Priority", getattr(report, "priority", "") or ""),
    ]
    lines = ["### Environment", "| Property | Value |", "|----------|-------|"]
    lines.extend(f"| {name} | {value} |" for name, value in rows)
    return lines


def _console_section(entries: List[Mapping[str, Any]]) -> List[str]:
    lines = [f"### Console Output ({len(entries)})"]
    for entry in entries:
        line = f"- `[{str(_get(entry, 'type', 'log')).upper()}]` {_get(entry, 'message', '')}"
        source = _get(entry, "source")
        if source:
            where = f"{source}:{entry['line']}" if _get(entry, "line") else source
            line += f" _({where})_"
        lines.append(line)
    return lines


def _network_section(entries: List[Mapping[str, Any]]) -> List[str]:
    lines = [
        f"### Network Errors ({len(entries)})",
        "| Status | Method | URL |",
        "|--------|--------|-----|",
    ]
    for entry in entries:
        status = _get(entry, "status", 0)
        label = "Failed" if status == 0 else status
        lines.append(
            f"| {label} {_get(entry, 'statusText', '')} | {_get(entry, 'method', '')} "
            f"| {_get(entry, 'url', '')} |"
        )
    return lines


def _activity_details(entry: Mapping[str, Any]) -> str:
    kind = _get(entry, "type", "other")
    text = _get(entry, "text")
    quoted = f'"{text}"' if text else ""
    if kind == "link":
        url = _get(entry, "url")
        return f"{quoted} {'→ ' + url if url else ''}".strip()
    if kind == "input":
        return f"{_get(entry, 'inputType', 'text')} {quoted}".strip()
    return quoted


def _activity_section(entries: List[Mapping[str, Any]]) -> List[str]:
    lines = [
        f"### User Activity Trail ({len(entries)} events)",
        "<details>",
        "<summary>Click to expand</summary>",
        "",
        "| Time | Type | Details |",
        "|------|------|---------|",
    ]
    for entry in entries:
        lines.append(
            f"| {_format_time(_get(entry, 'timestamp'))} | {str(_get(entry, 'type', 'other')).upper()} "
            f"| {_activity_details(entry)} |"
        )
    lines += ["", "</details>"]
    return lines


def _storage_section(storage: Mapping[str, Any]) -> List[str]:
    groups = [
        ("Cookies", list(_get(storage, "cookies", []))),
        ("LocalStorage", list(_get(storage, "localStorage", []))),
        ("SessionStorage", list(_get(storage, "sessionStorage", []))),
    ]
    total = sum(len(keys) for _, keys in groups)
    if total == 0:
        return []
    lines = [f"### Storage Keys ({total})", "<details>", "<summary>Click to expand</summary>", ""]
    for label, keys in groups:
        if keys:
            joined = "`, `".join(str(k) for k in keys)
            lines += [f"**{label}:** `{joined}`", ""]
    lines.append("</details>")
    return lines


def _files_section(files: Iterable[Any], file_urls: Mapping[str, str]) -> List[str]:
    screenshots: List[str] = []
    attachments: List[str] = []
    for file in files:
        url = file_urls.get(file.id)
        if not url:
            continue
        if file.type == FileType.SCREENSHOT.value:
            screenshots.append(f"![{file.filename}]({url})")
        else:
            attachments.append(f"- [{file.filename}]({url})")

    lines: List[str] = []
    if screenshots:
        lines += ["### Screenshots", ""] + screenshots
    if attachments:
        if lines:
            lines.append("")
        lines += ["### Attachments"] + attachments
    return lines


def render_issue_body(
    report: Any,
    *,
    files: Iterable[Any] = (),
    file_urls: Optional[Dict[str, str]] = None,
    app_url: Optional[str] = None,
) -> str:
    """Build the issue body for ``report``.

    ``file_urls`` maps report file ids to the URL the tracker should link to; files
    without an entry are left out.
    """
    metadata = getattr(report, "report_metadata", None) or {}

    header = ["## Bug Report", "", f"**URL:** {_get(metadata, 'url', 'N/A')}"]
    if _get(metadata, "title"):
        header.append(f"**Page Title:** {metadata['title']}")
    if _get(metadata, "referrer"):
        header.append(f"**Referrer:** {metadata['referrer']}")

    sections: List[List[str]] = [
        header,
        ["### Description", getattr(report, "description", None) or "No description provided."],
        _environment_section(report, metadata),
    ]

    console = list(_get(metadata, "consoleErrors", []))
    if console:
        sections.append(_console_section(console))
    network = list(_get(metadata, "networkErrors", []))
    if network:
        sections.append(_network_section(network))
    activity = list(_get(metadata, "userActivity", []))
    if activity:
        sections.append(_activity_section(activity))
    storage = _storage_section(_get(metadata, "storageKeys", {}))
    if storage:
        sections.append(storage)
    files_section = _files_section(files, file_urls or {})
    if files_section:
        sections.append(files_section)

    if app_url:
        report_url = f"{app_url.rstrip('/')}/admin/reports/{report.id}"
        sections.append([f"> [View full report]({report_url})"])

    sections.append(["---", "*Reported via report-sync*"])
    return "\n\n".join("\n".join(section) for section in sections) + "\n"
